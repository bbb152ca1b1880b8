"""dotkc - Synced encrypted secrets vault with a dotenv-style runner."""

__version__ = "0.3.0"

from .vault import KeyStore, SecretRepository, VaultError, VaultStore

__all__ = [
    "__version__",
    "KeyStore",
    "SecretRepository",
    "VaultError",
    "VaultStore",
]
