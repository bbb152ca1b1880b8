"""Core cryptographic primitives for vault encryption.

Uses the cryptography library's AES-256-GCM (AEAD). The vault payload is
serialized to canonical JSON, encrypted under a fresh 96-bit nonce, and
wrapped in a versioned envelope:

    {
      "version": 1,
      "cipher": "aes-256-gcm",
      "iv": "<base64 12-byte nonce>",
      "tag": "<base64 16-byte tag>",
      "ciphertext": "<base64>"
    }

Envelopes are parsed into a variant keyed by ``(version, cipher)`` and
validated before any decryption is attempted.
"""

import base64
import binascii
import json
import os
from dataclasses import dataclass
from typing import Any, ClassVar, Mapping

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import (
    AuthenticationFailedError,
    InvalidKeyFormatError,
    InvalidValueError,
    UnsupportedFormatError,
)
from .keystore import KEY_SIZE

NONCE_SIZE = 12  # 96 bits for AES-GCM
TAG_SIZE = 16  # 128-bit authentication tag


def canonical_json(obj: Any) -> bytes:
    """Serialize to deterministic UTF-8 JSON."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def _b64decode_field(obj: Mapping[str, Any], name: str) -> bytes:
    value = obj.get(name)
    if not isinstance(value, str):
        raise AuthenticationFailedError(f"Vault envelope is missing '{name}'; file is corrupted.")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise AuthenticationFailedError(f"Vault envelope field '{name}' is not valid base64.")


@dataclass(frozen=True)
class VaultEnvelope:
    """Version 1 envelope: AES-256-GCM, no associated data."""

    VERSION: ClassVar[int] = 1
    CIPHER: ClassVar[str] = "aes-256-gcm"

    iv: bytes
    tag: bytes
    ciphertext: bytes

    @property
    def version(self) -> int:
        return self.VERSION

    @property
    def cipher(self) -> str:
        return self.CIPHER

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "version": self.version,
            "cipher": self.cipher,
            "iv": base64.b64encode(self.iv).decode("ascii"),
            "tag": base64.b64encode(self.tag).decode("ascii"),
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
        }

    def to_json(self) -> str:
        """Pretty-printed JSON text as stored on disk."""
        return json.dumps(self.to_dict(), indent=2) + "\n"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VaultEnvelope":
        """Validate the structural contract of a version 1 envelope."""
        iv = _b64decode_field(data, "iv")
        tag = _b64decode_field(data, "tag")
        ciphertext = _b64decode_field(data, "ciphertext")

        if len(iv) != NONCE_SIZE:
            raise AuthenticationFailedError("Vault envelope nonce has the wrong length.")
        if len(tag) != TAG_SIZE:
            raise AuthenticationFailedError("Vault envelope tag is truncated or corrupted.")

        return cls(iv=iv, tag=tag, ciphertext=ciphertext)

    def decrypt(self, key: bytes) -> bytes:
        try:
            return AESGCM(key).decrypt(self.iv, self.ciphertext + self.tag, None)
        except InvalidTag:
            raise AuthenticationFailedError()


# Supported envelope variants; new formats are added here
ENVELOPE_VARIANTS: dict[tuple[Any, Any], type[VaultEnvelope]] = {
    (VaultEnvelope.VERSION, VaultEnvelope.CIPHER): VaultEnvelope,
}


def parse_envelope(obj: Any) -> VaultEnvelope:
    """
    Parse a raw JSON object into an envelope variant.

    Args:
        obj: Object decoded from the vault file

    Returns:
        The matching envelope

    Raises:
        UnsupportedFormatError: If ``obj`` is not an envelope or its
            ``(version, cipher)`` pair is unknown
        AuthenticationFailedError: If a known variant's fields are malformed
    """
    if not isinstance(obj, Mapping):
        raise UnsupportedFormatError("Unsupported vault format: not a vault envelope.")

    version = obj.get("version")
    cipher = obj.get("cipher")
    try:
        variant = ENVELOPE_VARIANTS.get((version, cipher))
    except TypeError:
        variant = None
    if variant is None:
        raise UnsupportedFormatError(
            f"Unsupported vault format (version={version!r}, cipher={cipher!r})."
        )
    return variant.from_dict(obj)


def parse_envelope_json(text: str) -> VaultEnvelope:
    """Parse vault file text into an envelope."""
    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        raise UnsupportedFormatError("Unsupported vault format: file is not JSON.")
    return parse_envelope(obj)


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
        raise InvalidKeyFormatError()


def encrypt(key: bytes, plain_object: Any) -> VaultEnvelope:
    """
    Encrypt a JSON-serializable object.

    Args:
        key: 32-byte key
        plain_object: Object to serialize and encrypt

    Returns:
        VaultEnvelope with a fresh random nonce

    Raises:
        InvalidValueError: If a string cannot be encoded as UTF-8 (lone
            surrogates, e.g. from undecodable command-line bytes)
    """
    _check_key(key)
    try:
        payload = canonical_json(plain_object)
    except UnicodeEncodeError:
        raise InvalidValueError()

    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(bytes(key)).encrypt(nonce, payload, None)
    # AESGCM appends the tag to the ciphertext
    return VaultEnvelope(
        iv=nonce,
        tag=sealed[-TAG_SIZE:],
        ciphertext=sealed[:-TAG_SIZE],
    )


def decrypt(key: bytes, envelope: Any) -> Any:
    """
    Decrypt an envelope back into the original object.

    Args:
        key: 32-byte key
        envelope: VaultEnvelope or the raw decoded JSON object

    Returns:
        Deserialized object

    Raises:
        UnsupportedFormatError: Unknown version/cipher
        AuthenticationFailedError: Wrong key, tampered or truncated data
    """
    _check_key(key)
    if not isinstance(envelope, VaultEnvelope):
        envelope = parse_envelope(envelope)

    plaintext = envelope.decrypt(bytes(key))
    try:
        return json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise UnsupportedFormatError("Unsupported vault format: payload is not JSON.")
