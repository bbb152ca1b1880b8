"""Vault storage engine.

Loads and saves the encrypted vault file. Saves are guarded by an
optimistic-concurrency check: the file's fingerprint observed at load time
must still match on disk, otherwise the write is rejected. The vault usually
sits on a file-sync volume where OS locks do not coordinate across machines,
so a changed file always fails closed.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..utils.files import atomic_write_bytes
from ..utils.hash import hash_bytes, hash_file
from ..utils.logging import get_logger
from . import crypto
from .backup import BackupManager
from .exceptions import (
    ConflictDetectedError,
    IOFailureError,
    UnsupportedFormatError,
)

logger = get_logger(__name__)

# service -> category -> KEY -> value
VaultData = dict[str, dict[str, dict[str, str]]]


@dataclass(frozen=True)
class VaultFingerprint:
    """On-disk state of the vault file at a point in time."""

    size: int
    mtime_ns: int
    digest: str


@dataclass
class LoadResult:
    """Decrypted vault contents plus what is needed to save them back."""

    data: VaultData = field(default_factory=dict)
    fingerprint: Optional[VaultFingerprint] = None
    existed: bool = False


def fingerprint(path: Path) -> Optional[VaultFingerprint]:
    """
    Fingerprint a file, or return None if it does not exist.

    Raises:
        IOFailureError: If the file exists but cannot be read
    """
    path = Path(path)
    try:
        st = path.stat()
        digest = hash_file(path)
    except FileNotFoundError:
        return None
    except OSError as e:
        raise IOFailureError(f"Failed to read vault {path}: {e}")
    return VaultFingerprint(size=st.st_size, mtime_ns=st.st_mtime_ns, digest=digest)


def validate_vault_data(obj: Any) -> VaultData:
    """Check the decrypted payload is a three-level mapping of strings."""
    if not isinstance(obj, dict):
        raise UnsupportedFormatError("Unsupported vault format: payload is not an object.")
    for service, categories in obj.items():
        if not isinstance(categories, dict):
            raise UnsupportedFormatError(f"Unsupported vault format: bad service {service!r}.")
        for category, secrets in categories.items():
            if not isinstance(secrets, dict) or not all(
                isinstance(v, str) for v in secrets.values()
            ):
                raise UnsupportedFormatError(
                    f"Unsupported vault format: bad category {service}:{category}."
                )
    return obj


class VaultStore:
    """
    Reads and writes one vault file.

    Usage:
        store = VaultStore(vault_path, backup_keep=3)
        result = store.load(key)
        result.data.setdefault("acme", {}).setdefault("prod", {})["TOKEN"] = "..."
        store.save(key, result.data, result.fingerprint)
    """

    def __init__(self, vault_path: Path, backup_keep: int = 3):
        """
        Args:
            vault_path: Path to the vault file
            backup_keep: Backups to retain before each overwrite (0 disables)
        """
        self.vault_path = Path(vault_path)
        self.backups = BackupManager(self.vault_path, keep=backup_keep)

    @property
    def exists(self) -> bool:
        return self.vault_path.exists()

    def load(self, key: bytes) -> LoadResult:
        """
        Load and decrypt the vault.

        Returns:
            LoadResult; ``existed`` is False (and ``data`` empty) when there
            is no vault file yet

        Raises:
            AuthenticationFailedError: Wrong key or corrupted file
            UnsupportedFormatError: Unknown envelope or payload
            IOFailureError: Filesystem error
        """
        try:
            st = self.vault_path.stat()
            raw = self.vault_path.read_bytes()
        except FileNotFoundError:
            return LoadResult()
        except OSError as e:
            raise IOFailureError(f"Failed to read vault {self.vault_path}: {e}")

        # Digest the bytes that are decrypted, not a second read of the file
        current = VaultFingerprint(
            size=st.st_size, mtime_ns=st.st_mtime_ns, digest=hash_bytes(raw)
        )

        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise UnsupportedFormatError("Unsupported vault format: file is not UTF-8 text.")

        envelope = crypto.parse_envelope_json(text)
        data = validate_vault_data(crypto.decrypt(key, envelope))

        logger.debug("Loaded vault %s (%d services)", self.vault_path, len(data))
        return LoadResult(data=data, fingerprint=current, existed=True)

    def save(
        self,
        key: bytes,
        data: VaultData,
        expected: Optional[VaultFingerprint],
    ) -> VaultFingerprint:
        """
        Encrypt and atomically write the vault.

        Args:
            key: 32-byte key
            data: Complete new vault contents
            expected: Fingerprint from the most recent load (None if the
                vault did not exist then)

        Returns:
            Fingerprint of the file just written

        Raises:
            ConflictDetectedError: The file changed since ``expected``
            InvalidValueError: ``data`` holds text that is not valid UTF-8
            BackupFailedError: The pre-write backup failed
            IOFailureError: The write failed; the old vault is intact
        """
        current = fingerprint(self.vault_path)
        if current is not None and current != expected:
            logger.info("Vault %s changed on disk; refusing to save", self.vault_path)
            raise ConflictDetectedError(str(self.vault_path))

        # Encrypt before the snapshot: a rejected payload must not rotate backups
        envelope = crypto.encrypt(key, data)

        self.backups.snapshot_before_overwrite()

        try:
            atomic_write_bytes(self.vault_path, envelope.to_json().encode("utf-8"))
        except OSError as e:
            raise IOFailureError(f"Failed to write vault {self.vault_path}: {e}")

        written = fingerprint(self.vault_path)
        logger.debug("Saved vault %s", self.vault_path)
        return written

