"""Pre-write vault backups.

Before every overwrite the current vault file is copied next to itself as
``<vault>.bak-YYYYMMDD-HHMMSSmmm`` (UTC). Names sort lexicographically in
creation order, which is what listing and pruning rely on.
"""

import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..utils.files import PRIVATE_FILE_MODE
from ..utils.logging import get_logger
from .exceptions import BackupFailedError

logger = get_logger(__name__)

BACKUP_MARKER = ".bak-"


def timestamp_id(now: Optional[datetime] = None) -> str:
    """Millisecond-precision, zero-padded UTC timestamp."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%d-%H%M%S") + f"{now.microsecond // 1000:03d}"


class BackupManager:
    """
    Snapshots and prunes backups of one vault file.

    Usage:
        backups = BackupManager(vault_path, keep=3)
        backups.snapshot_before_overwrite()
    """

    def __init__(self, vault_path: Path, keep: int = 3):
        self.vault_path = Path(vault_path)
        self.keep = max(0, keep)

    @property
    def enabled(self) -> bool:
        return self.keep > 0

    @property
    def prefix(self) -> str:
        return f"{self.vault_path.name}{BACKUP_MARKER}"

    def list_backups(self) -> list[Path]:
        """Backup files for this vault, oldest first."""
        try:
            names = os.listdir(self.vault_path.parent)
        except OSError:
            return []
        return [
            self.vault_path.parent / name
            for name in sorted(names)
            if name.startswith(self.prefix)
        ]

    def _next_backup_path(self) -> Path:
        base = f"{self.prefix}{timestamp_id()}"
        same_ms = [p.name for p in self.list_backups() if p.name.startswith(base)]
        if not same_ms:
            return self.vault_path.parent / base

        # Same-millisecond snapshots get -01, -02, ... after the newest one,
        # which keeps lexicographic order even when earlier ones were pruned
        suffixes = [0]
        for name in same_ms:
            tail = name[len(base):]
            if tail.startswith("-") and tail[1:].isdigit():
                suffixes.append(int(tail[1:]))
        return self.vault_path.parent / f"{base}-{max(suffixes) + 1:02d}"

    def _copy_private(self, backup_path: Path) -> None:
        """Copy the vault into a new file created owner-only from the start."""
        fd = os.open(
            backup_path,
            os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0),
            PRIVATE_FILE_MODE,
        )
        try:
            with os.fdopen(fd, "wb") as dst, open(self.vault_path, "rb") as src:
                shutil.copyfileobj(src, dst)
                dst.flush()
                os.fsync(dst.fileno())
        except OSError:
            # Only the file created above is removed, never an existing backup
            try:
                backup_path.unlink()
            except OSError:
                pass
            raise

    def snapshot_before_overwrite(self) -> Optional[Path]:
        """
        Copy the current vault file aside, then prune old backups.

        Returns:
            The new backup path, or None if nothing was backed up (backups
            disabled, or no non-empty vault file yet)

        Raises:
            BackupFailedError: If the copy could not be completed
        """
        if not self.enabled:
            return None

        try:
            st = self.vault_path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise BackupFailedError(f"Failed to back up vault {self.vault_path}: {e}")

        if not self.vault_path.is_file() or st.st_size == 0:
            return None

        backup_path = self._next_backup_path()
        try:
            self._copy_private(backup_path)
        except OSError as e:
            raise BackupFailedError(
                f"Failed to back up vault to {backup_path}: {e}. Refusing to overwrite."
            )

        logger.debug("Backed up vault to %s", backup_path.name)
        self.prune()
        return backup_path

    def prune(self) -> int:
        """
        Delete the oldest backups beyond the retention count.

        Best effort: failures are logged, never raised.

        Returns:
            Number of backups removed
        """
        backups = self.list_backups()
        extra = len(backups) - self.keep
        if extra <= 0:
            return 0

        removed = 0
        for path in backups[:extra]:
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.debug("Could not prune backup %s: %s", path.name, e)

        if removed:
            logger.debug("Pruned %d old backup(s)", removed)
        return removed
