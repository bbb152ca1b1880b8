"""Per-machine vault key file.

The key file holds the base64 encoding of 32 random bytes followed by a
newline. It lives outside the synced folder and is written with mode 0600.
Key material is never logged.
"""

import base64
import binascii
import os
from pathlib import Path
from typing import Union

from ..utils.files import atomic_write_bytes, ensure_private_dir
from ..utils.logging import get_logger
from .exceptions import (
    IOFailureError,
    InvalidKeyFormatError,
    KeyExistsError,
    KeyMissingError,
)

logger = get_logger(__name__)

KEY_SIZE = 32  # 256 bits for AES-256


def generate_key() -> bytes:
    """Generate a cryptographically secure 32-byte key."""
    return os.urandom(KEY_SIZE)


def encode_key(key: bytes) -> bytes:
    """Serialize a key to its on-disk form."""
    return base64.b64encode(key) + b"\n"


def parse_key(material: Union[str, bytes], source: str = "") -> bytes:
    """
    Validate key material and return the raw key.

    Args:
        material: Base64 text (surrounding whitespace is ignored)
        source: Where the material came from, for the error message

    Returns:
        32-byte key

    Raises:
        InvalidKeyFormatError: If the text is not base64 for exactly 32 bytes
    """
    if isinstance(material, bytes):
        try:
            material = material.decode("ascii")
        except UnicodeDecodeError:
            raise InvalidKeyFormatError(source)

    try:
        key = base64.b64decode(material.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidKeyFormatError(source)

    if len(key) != KEY_SIZE:
        raise InvalidKeyFormatError(source)
    return key


class KeyStore:
    """
    Reads, creates and installs the vault key file.

    Usage:
        store = KeyStore(Path("~/.dotkc/key").expanduser())
        key, created = store.ensure()
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> bytes:
        """
        Read and validate the existing key file.

        Raises:
            KeyMissingError: If there is no key file
            InvalidKeyFormatError: If the file is malformed
        """
        try:
            material = self.path.read_bytes()
        except FileNotFoundError:
            raise KeyMissingError(str(self.path))
        except OSError as e:
            raise IOFailureError(f"Failed to read key file {self.path}: {e}")
        return parse_key(material, str(self.path))

    def ensure(self) -> tuple[bytes, bool]:
        """
        Load the key, generating it first if the file does not exist.

        Returns:
            Tuple of (key, created)

        Raises:
            InvalidKeyFormatError: If an existing file is malformed
        """
        if self.exists:
            return self.load(), False

        key = generate_key()
        self._write(key)
        logger.info("Created new vault key at %s", self.path)
        return key, True

    def install(self, material: Union[str, bytes], force: bool = False) -> bytes:
        """
        Install supplied key material.

        Args:
            material: Base64 key text
            force: Replace an existing key file

        Returns:
            The installed key

        Raises:
            InvalidKeyFormatError: If the material is malformed
            KeyExistsError: If a key file exists and force is not set
        """
        key = parse_key(material, "supplied key")

        if self.exists and not force:
            raise KeyExistsError(str(self.path))

        self._write(key)
        logger.info("Installed vault key at %s", self.path)
        return key

    def _write(self, key: bytes) -> None:
        try:
            ensure_private_dir(self.path.parent)
            atomic_write_bytes(self.path, encode_key(key))
        except OSError as e:
            raise IOFailureError(f"Failed to write key file {self.path}: {e}")
