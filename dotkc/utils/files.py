"""Owner-only file helpers.

Writes go to a temporary file in the destination directory and are moved
into place with ``os.replace``, so readers (and file-sync clients) only ever
see the old file or the complete new one.
"""

import os
import stat
import tempfile
from pathlib import Path


PRIVATE_FILE_MODE = 0o600
PRIVATE_DIR_MODE = 0o700


def ensure_private_dir(path: Path) -> None:
    """Create a directory (and parents) readable only by the owner.

    Existing directories are left as they are.
    """
    Path(path).mkdir(parents=True, exist_ok=True, mode=PRIVATE_DIR_MODE)


def atomic_write_bytes(path: Path, data: bytes, mode: int = PRIVATE_FILE_MODE) -> None:
    """
    Atomically replace ``path`` with ``data``.

    Args:
        path: Destination file
        data: Full new contents
        mode: Permission bits for the final file

    Raises:
        OSError: If any step fails; the destination is then untouched and
            the temporary file is removed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.tmp-")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def file_mode(path: Path) -> int:
    """Return the permission bits of ``path`` (e.g. ``0o600``)."""
    return stat.S_IMODE(Path(path).stat().st_mode)
