"""Unit tests for pre-write vault backups."""

import os
import re
import stat
from datetime import datetime, timezone

import pytest


BACKUP_NAME_RE = re.compile(r"^dotkc\.vault\.bak-\d{8}-\d{9}(-\d{2})?$")


@pytest.fixture
def vault_file(vault_path):
    vault_path.parent.mkdir(parents=True)
    vault_path.write_text('{"version": 1}\n')
    return vault_path


class TestTimestamp:
    """Tests for backup timestamps."""

    def test_timestamp_format(self):
        """Timestamps are zero-padded to the millisecond."""
        from dotkc.vault.backup import timestamp_id

        ts = timestamp_id(datetime(2026, 1, 2, 3, 4, 5, 7000, tzinfo=timezone.utc))
        assert ts == "20260102-030405007"


class TestSnapshot:
    """Tests for BackupManager.snapshot_before_overwrite."""

    def test_no_vault_no_backup(self, vault_path):
        """Nothing to back up before the first save."""
        from dotkc.vault import BackupManager

        vault_path.parent.mkdir(parents=True)
        backups = BackupManager(vault_path, keep=3)

        assert backups.snapshot_before_overwrite() is None
        assert backups.list_backups() == []

    def test_empty_vault_no_backup(self, vault_path):
        """An empty vault file is not worth a backup."""
        from dotkc.vault import BackupManager

        vault_path.parent.mkdir(parents=True)
        vault_path.write_bytes(b"")
        backups = BackupManager(vault_path, keep=3)

        assert backups.snapshot_before_overwrite() is None
        assert backups.list_backups() == []

    def test_snapshot_copies_bytes(self, vault_file):
        """The backup is a byte-for-byte, owner-only copy."""
        from dotkc.vault import BackupManager

        backup = BackupManager(vault_file, keep=3).snapshot_before_overwrite()

        assert backup is not None
        assert backup.parent == vault_file.parent
        assert BACKUP_NAME_RE.match(backup.name)
        assert backup.read_bytes() == vault_file.read_bytes()
        if os.name != "nt":
            assert stat.S_IMODE(backup.stat().st_mode) == 0o600

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_backup_private_while_copying(self, vault_file, monkeypatch):
        """The backup is owner-only before any byte is copied into it."""
        from dotkc.vault import BackupManager
        from dotkc.vault import backup as backup_module

        real_copy = backup_module.shutil.copyfileobj
        modes = []

        def recording_copy(src, dst, *args):
            modes.append(stat.S_IMODE(os.fstat(dst.fileno()).st_mode))
            return real_copy(src, dst, *args)

        monkeypatch.setattr(backup_module.shutil, "copyfileobj", recording_copy)
        old_umask = os.umask(0o022)
        try:
            backup = BackupManager(vault_file, keep=3).snapshot_before_overwrite()
        finally:
            os.umask(old_umask)

        assert modes == [0o600]
        assert stat.S_IMODE(backup.stat().st_mode) == 0o600

    def test_existing_backup_name_not_clobbered(self, vault_file, monkeypatch):
        """A name collision fails the backup and leaves the other file alone."""
        from dotkc.vault import BackupFailedError, BackupManager

        backups = BackupManager(vault_file, keep=3)
        taken = vault_file.parent / "dotkc.vault.bak-20260101-000000000"
        taken.write_text("someone else's backup\n")
        monkeypatch.setattr(backups, "_next_backup_path", lambda: taken)

        with pytest.raises(BackupFailedError):
            backups.snapshot_before_overwrite()

        assert taken.read_text() == "someone else's backup\n"

    def test_backups_disabled(self, vault_file):
        """keep=0 disables backups entirely."""
        from dotkc.vault import BackupManager

        backups = BackupManager(vault_file, keep=0)

        assert not backups.enabled
        assert backups.snapshot_before_overwrite() is None
        assert backups.list_backups() == []

    def test_same_millisecond_names_keep_order(self, vault_file, monkeypatch):
        """Snapshots within one millisecond still sort in creation order."""
        from dotkc.vault import BackupManager
        from dotkc.vault import backup as backup_module

        monkeypatch.setattr(backup_module, "timestamp_id", lambda now=None: "20260101-000000000")
        backups = BackupManager(vault_file, keep=10)

        created = []
        for i in range(3):
            vault_file.write_text(f"version {i}\n")
            created.append(backups.snapshot_before_overwrite())

        assert backups.list_backups() == created
        assert [p.read_text() for p in created] == ["version 0\n", "version 1\n", "version 2\n"]

    def test_copy_failure_is_fatal(self, vault_file, monkeypatch):
        """A failed copy raises BackupFailedError and leaves no partial backup."""
        from dotkc.vault import BackupFailedError, BackupManager
        from dotkc.vault import backup as backup_module

        def broken_copy(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(backup_module.shutil, "copyfileobj", broken_copy)
        backups = BackupManager(vault_file, keep=3)

        with pytest.raises(BackupFailedError, match="disk full"):
            backups.snapshot_before_overwrite()

        assert backups.list_backups() == []


class TestRetention:
    """Tests for backup pruning."""

    def test_keeps_most_recent(self, vault_file):
        """After N+k snapshots exactly N remain, the newest ones."""
        from dotkc.vault import BackupManager

        backups = BackupManager(vault_file, keep=3)
        for i in range(7):
            vault_file.write_text(f"generation {i}\n")
            backups.snapshot_before_overwrite()

        remaining = backups.list_backups()
        assert len(remaining) == 3
        assert [p.read_text() for p in remaining] == [
            "generation 4\n",
            "generation 5\n",
            "generation 6\n",
        ]

    def test_other_files_untouched(self, vault_file):
        """Only this vault's backups are listed and pruned."""
        from dotkc.vault import BackupManager

        other = vault_file.parent / "other.vault.bak-20200101-000000000"
        other.write_text("not ours")
        notes = vault_file.parent / "notes.txt"
        notes.write_text("hello")

        backups = BackupManager(vault_file, keep=1)
        for _ in range(3):
            backups.snapshot_before_overwrite()

        assert other.exists()
        assert notes.exists()
        assert len(backups.list_backups()) == 1

    def test_prune_is_best_effort(self, vault_file):
        """A backup that cannot be deleted does not raise."""
        from dotkc.vault import BackupManager

        # A directory with a backup-like name sorts first and cannot be unlinked
        stuck = vault_file.parent / "dotkc.vault.bak-00000000-000000000"
        stuck.mkdir()

        backups = BackupManager(vault_file, keep=1)
        backups.snapshot_before_overwrite()
        backups.snapshot_before_overwrite()

        assert stuck.exists()
        assert len(backups.list_backups()) >= 2
