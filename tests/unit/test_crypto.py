"""Unit tests for vault envelope encryption."""

import base64
import json
import os

import pytest

from cryptography.hazmat.primitives.ciphers.aead import AESGCM


SAMPLE_DATA = {
    "acme": {
        "prod": {"TOKEN": "abc123", "DATABASE_URL": "postgres://u:p@db/app"},
        "staging": {"TOKEN": "stg"},
    },
    "vercel": {"acme-app-dev": {"GITHUB_TOKEN": "ghp_ünïcødé_✓"}},
}


def _flip_bit(envelope_dict: dict, field: str, byte_index: int) -> dict:
    raw = bytearray(base64.b64decode(envelope_dict[field]))
    raw[byte_index] ^= 0x01
    tampered = dict(envelope_dict)
    tampered[field] = base64.b64encode(bytes(raw)).decode()
    return tampered


class TestRoundTrip:
    """Encrypt/decrypt round trips."""

    def test_roundtrip(self, vault_key):
        """Decrypting an encrypted object returns it unchanged."""
        from dotkc.vault.crypto import decrypt, encrypt

        envelope = encrypt(vault_key, SAMPLE_DATA)

        assert decrypt(vault_key, envelope) == SAMPLE_DATA

    def test_roundtrip_through_json(self, vault_key):
        """The on-disk JSON text decrypts to the same object."""
        from dotkc.vault.crypto import decrypt, encrypt, parse_envelope_json

        text = encrypt(vault_key, SAMPLE_DATA).to_json()

        assert decrypt(vault_key, parse_envelope_json(text)) == SAMPLE_DATA
        assert decrypt(vault_key, json.loads(text)) == SAMPLE_DATA

    def test_empty_vault(self, vault_key):
        """An empty vault round trips."""
        from dotkc.vault.crypto import decrypt, encrypt

        assert decrypt(vault_key, encrypt(vault_key, {})) == {}


class TestEnvelopeFormat:
    """Tests for the envelope fields."""

    def test_envelope_fields(self, vault_key):
        """Envelope carries version, cipher and base64 iv/tag/ciphertext."""
        from dotkc.vault.crypto import encrypt

        data = encrypt(vault_key, SAMPLE_DATA).to_dict()

        assert set(data) == {"version", "cipher", "iv", "tag", "ciphertext"}
        assert data["version"] == 1
        assert data["cipher"] == "aes-256-gcm"
        assert len(base64.b64decode(data["iv"])) == 12
        assert len(base64.b64decode(data["tag"])) == 16

    def test_fresh_nonce_per_encryption(self, vault_key):
        """Encrypting the same data twice never reuses a nonce."""
        from dotkc.vault.crypto import encrypt

        envelopes = [encrypt(vault_key, SAMPLE_DATA) for _ in range(20)]

        assert len({e.iv for e in envelopes}) == 20
        assert len({e.ciphertext for e in envelopes}) == 20

    def test_plaintext_not_in_envelope(self, vault_key):
        """Secret values do not appear in the serialized envelope."""
        from dotkc.vault.crypto import encrypt

        text = encrypt(vault_key, SAMPLE_DATA).to_json()

        assert "abc123" not in text
        assert "acme" not in text

    def test_reads_envelope_with_non_canonical_payload(self, vault_key):
        """Envelopes written by other implementations (any JSON layout) decrypt."""
        from dotkc.vault.crypto import decrypt

        iv = os.urandom(12)
        payload = json.dumps({"svc": {"cat": {"K": "v"}}}, indent=4).encode()
        sealed = AESGCM(vault_key).encrypt(iv, payload, None)
        envelope = {
            "version": 1,
            "cipher": "aes-256-gcm",
            "iv": base64.b64encode(iv).decode(),
            "tag": base64.b64encode(sealed[-16:]).decode(),
            "ciphertext": base64.b64encode(sealed[:-16]).decode(),
        }

        assert decrypt(vault_key, envelope) == {"svc": {"cat": {"K": "v"}}}


class TestTamperDetection:
    """Authenticated encryption rejects any modification."""

    def test_flip_every_ciphertext_byte(self, vault_key):
        """Flipping a bit anywhere in the ciphertext fails authentication."""
        from dotkc.vault import AuthenticationFailedError
        from dotkc.vault.crypto import decrypt, encrypt

        envelope = encrypt(vault_key, {"a": {"b": {"C": "d"}}}).to_dict()
        size = len(base64.b64decode(envelope["ciphertext"]))

        for i in range(size):
            with pytest.raises(AuthenticationFailedError):
                decrypt(vault_key, _flip_bit(envelope, "ciphertext", i))

    @pytest.mark.parametrize("byte_index", [0, 7, 15])
    def test_flip_tag_bit(self, vault_key, byte_index):
        """Flipping a bit of the tag fails authentication."""
        from dotkc.vault import AuthenticationFailedError
        from dotkc.vault.crypto import decrypt, encrypt

        envelope = encrypt(vault_key, SAMPLE_DATA).to_dict()

        with pytest.raises(AuthenticationFailedError):
            decrypt(vault_key, _flip_bit(envelope, "tag", byte_index))

    def test_flip_iv_bit(self, vault_key):
        """A modified nonce fails authentication."""
        from dotkc.vault import AuthenticationFailedError
        from dotkc.vault.crypto import decrypt, encrypt

        envelope = encrypt(vault_key, SAMPLE_DATA).to_dict()

        with pytest.raises(AuthenticationFailedError):
            decrypt(vault_key, _flip_bit(envelope, "iv", 3))

    def test_truncated_ciphertext(self, vault_key):
        """Truncated ciphertext fails authentication."""
        from dotkc.vault import AuthenticationFailedError
        from dotkc.vault.crypto import decrypt, encrypt

        envelope = encrypt(vault_key, SAMPLE_DATA).to_dict()
        raw = base64.b64decode(envelope["ciphertext"])
        envelope["ciphertext"] = base64.b64encode(raw[:-5]).decode()

        with pytest.raises(AuthenticationFailedError):
            decrypt(vault_key, envelope)

    def test_truncated_tag(self, vault_key):
        """A short tag is rejected before decryption."""
        from dotkc.vault import AuthenticationFailedError
        from dotkc.vault.crypto import decrypt, encrypt

        envelope = encrypt(vault_key, SAMPLE_DATA).to_dict()
        envelope["tag"] = base64.b64encode(base64.b64decode(envelope["tag"])[:12]).decode()

        with pytest.raises(AuthenticationFailedError):
            decrypt(vault_key, envelope)

    @pytest.mark.parametrize("field", ["iv", "tag", "ciphertext"])
    def test_missing_or_invalid_field(self, vault_key, field):
        """Missing or non-base64 fields are treated as corruption."""
        from dotkc.vault import AuthenticationFailedError
        from dotkc.vault.crypto import decrypt, encrypt

        envelope = encrypt(vault_key, SAMPLE_DATA).to_dict()

        broken = dict(envelope)
        del broken[field]
        with pytest.raises(AuthenticationFailedError):
            decrypt(vault_key, broken)

        broken = dict(envelope)
        broken[field] = "%%% not base64 %%%"
        with pytest.raises(AuthenticationFailedError):
            decrypt(vault_key, broken)


class TestWrongKey:
    """Decrypting with another machine's key."""

    def test_wrong_key(self, vault_key):
        """A valid but different key fails authentication."""
        from dotkc.vault import AuthenticationFailedError, generate_key
        from dotkc.vault.crypto import decrypt, encrypt

        envelope = encrypt(vault_key, SAMPLE_DATA)

        with pytest.raises(AuthenticationFailedError):
            decrypt(generate_key(), envelope)

    def test_unencodable_payload(self, vault_key):
        """Strings that are not valid UTF-8 raise a vault error, not UnicodeEncodeError."""
        from dotkc.vault import InvalidValueError
        from dotkc.vault.crypto import encrypt

        with pytest.raises(InvalidValueError):
            encrypt(vault_key, {"acme": {"prod": {"TOKEN": "\udcff"}}})

    def test_key_wrong_length(self):
        """Keys must be exactly 32 bytes."""
        from dotkc.vault import InvalidKeyFormatError
        from dotkc.vault.crypto import encrypt

        with pytest.raises(InvalidKeyFormatError):
            encrypt(b"short", SAMPLE_DATA)


class TestUnsupportedFormat:
    """Envelope variants that are not understood."""

    @pytest.mark.parametrize(
        "version,cipher",
        [(2, "aes-256-gcm"), (1, "chacha20-poly1305"), (None, None), ("1", "aes-256-gcm")],
    )
    def test_unknown_variant(self, vault_key, version, cipher):
        """Unknown (version, cipher) pairs are rejected before decryption."""
        from dotkc.vault import UnsupportedFormatError
        from dotkc.vault.crypto import decrypt, encrypt

        envelope = encrypt(vault_key, SAMPLE_DATA).to_dict()
        envelope["version"] = version
        envelope["cipher"] = cipher

        with pytest.raises(UnsupportedFormatError):
            decrypt(vault_key, envelope)

    @pytest.mark.parametrize("obj", [[], "vault", 42, None])
    def test_not_an_envelope(self, vault_key, obj):
        """Non-object JSON is not a vault."""
        from dotkc.vault import UnsupportedFormatError
        from dotkc.vault.crypto import parse_envelope

        with pytest.raises(UnsupportedFormatError):
            parse_envelope(obj)

    def test_not_json(self):
        """Text that is not JSON is not a vault."""
        from dotkc.vault import UnsupportedFormatError
        from dotkc.vault.crypto import parse_envelope_json

        with pytest.raises(UnsupportedFormatError):
            parse_envelope_json("this is not json")

    def test_unhashable_version(self, vault_key):
        """Odd JSON types in the header are rejected cleanly."""
        from dotkc.vault import UnsupportedFormatError
        from dotkc.vault.crypto import parse_envelope

        with pytest.raises(UnsupportedFormatError):
            parse_envelope({"version": [1], "cipher": "aes-256-gcm"})
