"""Read-only diagnostics for the key file, the vault and its backups.

``vault_status`` is the compact machine-readable summary printed by
``dotkc status``; ``run_doctor`` produces the individual checks behind
``dotkc doctor``. Neither writes anything.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from ..config.settings import Settings
from ..utils.files import PRIVATE_FILE_MODE, file_mode
from .backup import BackupManager
from .exceptions import VaultError
from .keystore import KeyStore
from .store import VaultStore


class Severity(str, Enum):
    OK = "OK"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass
class CheckResult:
    id: str
    severity: Severity
    message: str
    path: Optional[Path] = None
    hint: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity.value,
            "message": self.message,
            "path": str(self.path) if self.path else None,
            "hint": self.hint or None,
        }


@dataclass
class DoctorReport:
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(c.severity != Severity.ERROR for c in self.checks)

    def add(self, *args, **kwargs) -> CheckResult:
        check = CheckResult(*args, **kwargs)
        self.checks.append(check)
        return check

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "checks": [c.to_dict() for c in self.checks]}


def _mode_ok(path: Path) -> bool:
    # Permission bits are not meaningful on Windows
    if os.name == "nt":
        return True
    return file_mode(path) & 0o077 == 0


def vault_status(settings: Settings) -> dict[str, Any]:
    """
    Summarize key and vault state.

    Returns:
        Dict with paths, existence flags, key validity and whether the vault
        decrypts under the key
    """
    keys = KeyStore(settings.key_path)
    store = VaultStore(settings.vault_path, backup_keep=settings.backup_keep)

    key: Optional[bytes] = None
    key_error: Optional[str] = None
    if keys.exists:
        try:
            key = keys.load()
        except VaultError as e:
            key_error = str(e)

    can_decrypt: Optional[bool] = None
    vault_error: Optional[str] = None
    if key is not None and store.exists:
        try:
            store.load(key)
            can_decrypt = True
        except VaultError as e:
            can_decrypt = False
            vault_error = str(e)

    return {
        "vaultPath": str(settings.vault_path),
        "keyPath": str(settings.key_path),
        "vaultExists": store.exists,
        "keyExists": keys.exists,
        "keyValid": key is not None,
        "canDecrypt": can_decrypt,
        "backupKeep": settings.backup_keep,
        "backupCount": len(store.backups.list_backups()),
        "keyError": key_error,
        "vaultError": vault_error,
    }


def run_doctor(settings: Settings) -> DoctorReport:
    """Run all checks and collect the results."""
    report = DoctorReport()
    key_path = settings.key_path
    vault_path = settings.vault_path
    keys = KeyStore(key_path)

    # Key file
    key: Optional[bytes] = None
    if not keys.exists:
        report.add(
            "key.present", Severity.ERROR, "Key file not found", key_path,
            hint="Run 'dotkc init' on the first machine, or 'dotkc key install' on others.",
        )
    else:
        report.add("key.present", Severity.OK, "Key file found", key_path)
        try:
            key = keys.load()
            report.add("key.format", Severity.OK, "Key is base64 for 32 bytes", key_path)
        except VaultError as e:
            report.add(
                "key.format", Severity.ERROR, str(e), key_path,
                hint="Reinstall the key with 'dotkc key install --force'.",
            )

        if _mode_ok(key_path):
            report.add("key.mode", Severity.OK, f"Key permissions {file_mode(key_path):o}", key_path)
        else:
            report.add(
                "key.mode", Severity.ERROR,
                f"Key file is readable by others (mode {file_mode(key_path):o})", key_path,
                hint=f"chmod {PRIVATE_FILE_MODE:o} {key_path}",
            )

    try:
        key_path.resolve().relative_to(vault_path.parent.resolve())
        report.add(
            "key.location", Severity.WARNING,
            "Key file is inside the vault's (synced) directory", key_path,
            hint="Keep the key outside the synced folder.",
        )
    except ValueError:
        report.add("key.location", Severity.OK, "Key file is outside the vault directory", key_path)

    # Vault file
    store = VaultStore(vault_path, backup_keep=settings.backup_keep)
    if not store.exists:
        report.add(
            "vault.present", Severity.WARNING, "Vault file not found", vault_path,
            hint="Run 'dotkc init' to create it, or check that file sync has finished.",
        )
    else:
        report.add("vault.present", Severity.OK, "Vault file found", vault_path)

        if key is not None:
            try:
                result = store.load(key)
                count = sum(len(s) for c in result.data.values() for s in c.values())
                report.add(
                    "vault.decrypt", Severity.OK,
                    f"Vault decrypts ({len(result.data)} services, {count} secrets)", vault_path,
                )
            except VaultError as e:
                report.add(
                    "vault.decrypt", Severity.ERROR, str(e), vault_path,
                    hint="This machine's key does not match the vault; install the right key.",
                )

        if _mode_ok(vault_path):
            report.add(
                "vault.mode", Severity.OK, f"Vault permissions {file_mode(vault_path):o}", vault_path,
            )
        else:
            report.add(
                "vault.mode", Severity.WARNING,
                f"Vault file is readable by others (mode {file_mode(vault_path):o})", vault_path,
                hint=f"chmod {PRIVATE_FILE_MODE:o} {vault_path}",
            )

    # Backups
    backups = BackupManager(vault_path, keep=settings.backup_keep)
    if backups.enabled:
        report.add(
            "backup.config", Severity.OK,
            f"Keeping {backups.keep} backups ({len(backups.list_backups())} present)",
            vault_path.parent,
        )
    else:
        report.add(
            "backup.config", Severity.WARNING, "Backups are disabled (DOTKC_BACKUP_KEEP=0)",
            vault_path.parent,
        )

    return report
