"""Configuration settings for dotkc.

Only the CLI layer resolves settings; the vault classes receive explicit
paths and retention counts.
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


DEFAULT_BACKUP_KEEP = 3


def default_vault_path() -> Path:
    """Default vault location inside a synced folder."""
    if sys.platform == "darwin":
        return (
            Path.home()
            / "Library"
            / "Mobile Documents"
            / "com~apple~CloudDocs"
            / "dotkc"
            / "dotkc.vault"
        )
    # Syncthing's default shared folder
    return Path.home() / "Sync" / "dotkc" / "dotkc.vault"


def default_key_path() -> Path:
    """Default per-machine key location (never inside the synced folder)."""
    return Path.home() / ".dotkc" / "key"


@dataclass
class Settings:
    """Main settings container."""

    vault_path: Path = field(default_factory=default_vault_path)
    key_path: Path = field(default_factory=default_key_path)

    # Number of pre-write backups kept next to the vault (0 = disabled)
    backup_keep: int = DEFAULT_BACKUP_KEEP

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create settings from environment variables.

        Environment variables:
            DOTKC_VAULT: Vault file path
            DOTKC_KEY: Key file path
            DOTKC_BACKUP_KEEP: Backups to retain (default: 3, 0 disables)
            DOTKC_LOG_LEVEL: Log level (default: WARNING)
            DOTKC_LOG_FILE: Optional debug log file
        """
        settings = cls()

        if vault := os.getenv("DOTKC_VAULT"):
            settings.vault_path = Path(vault).expanduser()

        if key := os.getenv("DOTKC_KEY"):
            settings.key_path = Path(key).expanduser()

        if keep := os.getenv("DOTKC_BACKUP_KEEP"):
            try:
                settings.backup_keep = max(0, int(keep))
            except ValueError:
                raise ValueError(f"DOTKC_BACKUP_KEEP must be an integer, got {keep!r}")

        if log_level := os.getenv("DOTKC_LOG_LEVEL"):
            settings.log_level = log_level

        if log_file := os.getenv("DOTKC_LOG_FILE"):
            settings.log_file = Path(log_file).expanduser()

        return settings

    def with_paths(
        self,
        vault_path: Optional[Path] = None,
        key_path: Optional[Path] = None,
    ) -> "Settings":
        """Return a copy with command-line path overrides applied."""
        return Settings(
            vault_path=Path(vault_path).expanduser() if vault_path else self.vault_path,
            key_path=Path(key_path).expanduser() if key_path else self.key_path,
            backup_keep=self.backup_keep,
            log_level=self.log_level,
            log_file=self.log_file,
        )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def configure(settings: Optional[Settings]) -> None:
    """Set the global settings instance (``None`` re-reads the environment)."""
    global _settings
    _settings = settings
