"""Vault exceptions for the dotkc secrets store.

Every exception carries the process exit status the CLI uses for it, so
scripts can branch on the outcome.
"""


class VaultError(Exception):
    """Base exception for vault operations."""

    exit_code = 1


class EmptyValueError(VaultError):
    """Raised when a secret value is empty."""

    exit_code = 2

    def __init__(self, message: str = "Empty value; nothing stored."):
        super().__init__(message)


class InvalidValueError(VaultError):
    """Raised when a name or value cannot be stored as UTF-8 text."""

    exit_code = 2

    def __init__(self, message: str = "Value is not valid UTF-8 text; nothing stored."):
        super().__init__(message)


class NotFoundError(VaultError):
    """Raised when a secret or category does not exist."""

    exit_code = 3

    def __init__(self, message: str = "NOT_FOUND"):
        super().__init__(message)


class InvalidKeyFormatError(VaultError):
    """Raised when key material is not base64 for exactly 32 bytes."""

    exit_code = 4

    def __init__(self, path: str = ""):
        message = "Invalid vault key: expected base64 encoding of 32 bytes"
        if path:
            message = f"{message} ({path})"
        super().__init__(message)


class AuthenticationFailedError(VaultError):
    """Raised when the vault cannot be authenticated.

    Either the key does not match the vault, or the file is corrupted or
    truncated.
    """

    exit_code = 5

    def __init__(
        self,
        message: str = "Vault authentication failed: wrong key or corrupted vault.",
    ):
        super().__init__(message)


class UnsupportedFormatError(VaultError):
    """Raised when the vault envelope version or cipher is unknown."""

    exit_code = 6

    def __init__(self, message: str = "Unsupported vault format."):
        super().__init__(message)


class ConflictDetectedError(VaultError):
    """Raised when the vault file changed on disk since it was loaded."""

    exit_code = 7

    def __init__(self, path: str = ""):
        where = f" ({path})" if path else ""
        super().__init__(
            f"Vault changed on disk since it was read{where}. "
            "Nothing was written; re-run the command to retry."
        )


class DestinationExistsError(VaultError):
    """Raised when copy/move would overwrite a non-empty category."""

    exit_code = 8

    def __init__(self, destination: str = ""):
        message = "Destination already exists"
        if destination:
            message = f"{message}: {destination}"
        super().__init__(f"{message} (use --force to overwrite).")


class BackupFailedError(VaultError):
    """Raised when the pre-write backup could not be created."""

    exit_code = 9

    def __init__(self, message: str = "Failed to back up vault; refusing to overwrite."):
        super().__init__(message)


class IOFailureError(VaultError):
    """Raised on a filesystem error while reading or writing vault files."""

    exit_code = 10

    def __init__(self, message: str = "Vault I/O failed."):
        super().__init__(message)


class KeyExistsError(VaultError):
    """Raised when installing a key over an existing key file."""

    exit_code = 11

    def __init__(self, path: str = ""):
        where = f" at {path}" if path else ""
        super().__init__(
            f"A vault key already exists{where}. "
            "Use --force to replace it (vaults encrypted with the old key become unreadable)."
        )


class KeyMissingError(VaultError):
    """Raised when the key file does not exist."""

    exit_code = 12

    def __init__(self, path: str = ""):
        where = f" at {path}" if path else ""
        super().__init__(f"No vault key found{where}. Run 'dotkc init' or 'dotkc key install'.")
