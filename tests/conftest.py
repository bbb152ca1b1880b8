"""Shared pytest fixtures for dotkc tests."""

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep tests independent of the caller's DOTKC_* environment."""
    from dotkc.config.settings import configure

    for name in (
        "DOTKC_VAULT",
        "DOTKC_KEY",
        "DOTKC_BACKUP_KEEP",
        "DOTKC_LOG_LEVEL",
        "DOTKC_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    configure(None)
    yield
    configure(None)


@pytest.fixture
def vault_key() -> bytes:
    """A fresh random 32-byte vault key."""
    from dotkc.vault import generate_key

    return generate_key()


@pytest.fixture
def vault_path(tmp_path: Path) -> Path:
    """Vault location inside a fake synced folder."""
    return tmp_path / "Sync" / "dotkc" / "dotkc.vault"


@pytest.fixture
def key_path(tmp_path: Path) -> Path:
    """Per-machine key location outside the synced folder."""
    return tmp_path / "home" / ".dotkc" / "key"


@pytest.fixture
def store(vault_path: Path):
    """VaultStore keeping the default three backups."""
    from dotkc.vault import VaultStore

    return VaultStore(vault_path, backup_keep=3)


@pytest.fixture
def repo(store, vault_key: bytes):
    """SecretRepository over an empty vault."""
    from dotkc.vault import SecretRepository

    return SecretRepository(store, vault_key)


@pytest.fixture
def acme_repo(repo):
    """Repository with a few acme secrets."""
    repo.set("acme", "prod", "TOKEN", "abc123")
    repo.set("acme", "prod", "DATABASE_URL", "postgres://db.acme.internal:5432/app")
    repo.set("acme", "staging", "TOKEN", "stg-token")
    repo.set("vercel", "acme-app-dev", "GITHUB_TOKEN", "ghp_0123456789abcdef")
    return repo


@pytest.fixture
def cli_env(monkeypatch, vault_path: Path, key_path: Path) -> dict:
    """Point the CLI at temporary vault and key files via the environment."""
    monkeypatch.setenv("DOTKC_VAULT", str(vault_path))
    monkeypatch.setenv("DOTKC_KEY", str(key_path))
    return {"vault": vault_path, "key": key_path}
