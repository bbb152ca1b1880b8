"""Utility modules for dotkc.

Provides common utilities:
- Logging configuration
- File hashing
- Owner-only atomic file writes
"""

from .files import (
    PRIVATE_DIR_MODE,
    PRIVATE_FILE_MODE,
    atomic_write_bytes,
    ensure_private_dir,
    file_mode,
)
from .hash import (
    hash_bytes,
    hash_file,
)
from .logging import (
    console,
    err_console,
    get_logger,
    setup_logging,
)


__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "console",
    "err_console",
    # Hashing
    "hash_file",
    "hash_bytes",
    # Files
    "PRIVATE_FILE_MODE",
    "PRIVATE_DIR_MODE",
    "atomic_write_bytes",
    "ensure_private_dir",
    "file_mode",
]
