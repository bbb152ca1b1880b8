"""Content digests for vault fingerprints.

A fingerprint pairs the vault file's size and mtime with a SHA-256 of its
bytes, so a same-size rewrite inside one mtime tick is still detected.
"""

import hashlib
from pathlib import Path


DIGEST_ALGORITHM = "sha256"

# Vault files are small, but a synced folder may hold anything
READ_CHUNK_SIZE = 1024 * 1024


def hash_file(
    file_path: Path,
    algorithm: str = DIGEST_ALGORITHM,
    chunk_size: int = READ_CHUNK_SIZE,
) -> str:
    """
    Hex digest of a file's contents, read in chunks.

    Raises:
        FileNotFoundError: If the file does not exist
        OSError: If it cannot be read
    """
    digest = hashlib.new(algorithm)
    with open(file_path, "rb") as f:
        while chunk := f.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def hash_bytes(data: bytes, algorithm: str = DIGEST_ALGORITHM) -> str:
    """Hex digest of bytes already in memory."""
    return hashlib.new(algorithm, data).hexdigest()
