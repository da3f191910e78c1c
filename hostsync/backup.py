from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from . import db
from .errors import BackupError, RestoreError
from .hosts import HostsFile

log = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"


def backup_path_for(path: str | Path) -> Path:
    return Path(f"{path}{BACKUP_SUFFIX}")


class BackupManager:
    """Byte copy of the hosts file taken at startup, put back at shutdown."""

    def __init__(self, hosts: HostsFile) -> None:
        self.hosts = hosts
        self.backup_path = backup_path_for(hosts.read_path)

    def snapshot(self) -> bool:
        """Copy the hosts file to the backup path.

        Failure is only a warning: the process keeps running without a
        safety net.
        """
        try:
            self._write_backup()
        except BackupError as e:
            log.warning("failed to backup hosts path=%s: %s", self.backup_path, e)
            return False
        log.info("hosts backed up path=%s", self.backup_path)
        return True

    def _write_backup(self) -> None:
        try:
            shutil.copyfile(self.hosts.read_path, self.backup_path)
        except OSError as e:
            raise BackupError(str(e)) from e

    def restore(self) -> bool:
        """Write the backup over the hosts file and delete it. Never raises."""
        try:
            content = self._load_backup()
            log.debug("restore hosts read=%s write=%s", self.backup_path, self.hosts.write_path)
            self._write_back(content)
            log.debug("delete path=%s", self.backup_path)
            self._remove_backup()
        except RestoreError as e:
            log.error("%s", e)
            return False
        db.log_event("INFO", f"hosts restored from {self.backup_path}")
        return True

    def _load_backup(self) -> bytes:
        try:
            return self.backup_path.read_bytes()
        except OSError as e:
            raise RestoreError(f"failed to read from backup hosts read={self.backup_path}: {e}") from e

    def _write_back(self, content: bytes) -> None:
        try:
            with open(self.hosts.write_path, "wb") as f:
                f.write(content)
        except OSError as e:
            raise RestoreError(
                f"failed to restore hosts read={self.backup_path} write={self.hosts.write_path}: {e}"
            ) from e

    def _remove_backup(self) -> None:
        try:
            os.remove(self.backup_path)
        except OSError as e:
            raise RestoreError(f"failed to remove backup hosts path={self.backup_path}: {e}") from e
