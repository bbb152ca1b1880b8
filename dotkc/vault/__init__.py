"""Encrypted secrets vault for dotkc.

One AES-256-GCM encrypted file holds service → category → KEY → value. The
file is meant to live in a synced folder; the key stays on each machine.

Usage:
    from dotkc.vault import KeyStore, SecretRepository, VaultStore

    key, created = KeyStore(key_path).ensure()
    repo = SecretRepository(VaultStore(vault_path, backup_keep=3), key)
    repo.set("acme", "prod", "TOKEN", "abc123")
    env = repo.resolve("acme:prod")
"""

# Exceptions
from .exceptions import (
    AuthenticationFailedError,
    BackupFailedError,
    ConflictDetectedError,
    DestinationExistsError,
    EmptyValueError,
    InvalidValueError,
    IOFailureError,
    InvalidKeyFormatError,
    KeyExistsError,
    KeyMissingError,
    NotFoundError,
    UnsupportedFormatError,
    VaultError,
)

# Key file
from .keystore import (
    KEY_SIZE,
    KeyStore,
    generate_key,
    parse_key,
)

# Envelope encryption
from .crypto import (
    VaultEnvelope,
    decrypt,
    encrypt,
    parse_envelope,
)

# Persistence
from .backup import BackupManager
from .store import (
    LoadResult,
    VaultData,
    VaultFingerprint,
    VaultStore,
    fingerprint,
)

# Secret operations
from .repository import SecretRef, SecretRepository
from .specs import SecretSpec, parse_spec, parse_specs, redact

# Diagnostics
from .doctor import (
    CheckResult,
    DoctorReport,
    Severity,
    run_doctor,
    vault_status,
)

__all__ = [
    # Exceptions
    "VaultError",
    "InvalidKeyFormatError",
    "KeyMissingError",
    "KeyExistsError",
    "AuthenticationFailedError",
    "UnsupportedFormatError",
    "ConflictDetectedError",
    "NotFoundError",
    "EmptyValueError",
    "InvalidValueError",
    "DestinationExistsError",
    "BackupFailedError",
    "IOFailureError",
    # Key file
    "KEY_SIZE",
    "KeyStore",
    "generate_key",
    "parse_key",
    # Crypto
    "VaultEnvelope",
    "encrypt",
    "decrypt",
    "parse_envelope",
    # Persistence
    "BackupManager",
    "LoadResult",
    "VaultData",
    "VaultFingerprint",
    "VaultStore",
    "fingerprint",
    # Operations
    "SecretRef",
    "SecretRepository",
    "SecretSpec",
    "parse_spec",
    "parse_specs",
    "redact",
    # Diagnostics
    "CheckResult",
    "DoctorReport",
    "Severity",
    "run_doctor",
    "vault_status",
]
