"""Remote webroot backups for the shell transport"""

import logging
import posixpath
import shlex
from datetime import datetime
from typing import List, Optional

from .release import backup_sort_key, select_backup
from ..api.exceptions import BackupError, TransportError
from ..constants import BACKUP_TIMESTAMP_FORMAT, BACKUP_SUFFIX, DEFAULT_BACKUP_RETAIN
from ..models.result import Result
from ..remote.shell import RemoteShell

q = shlex.quote


class BackupManager:
    """Creates `<prefix>-<YYYYMMDD-HHMMSS>.tar.gz` archives and prunes old ones"""

    def __init__(self,
                 shell: RemoteShell,
                 backup_dir: str,
                 prefix: str,
                 retain: int = DEFAULT_BACKUP_RETAIN):
        self.shell = shell
        self.backup_dir = backup_dir.rstrip("/") or "/"
        self.prefix = prefix
        self.retain = retain
        self.logger = logging.getLogger(self.__class__.__name__)

    def backup_name(self, when: Optional[datetime] = None) -> str:
        stamp = (when or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
        return f"{self.prefix}-{stamp}{BACKUP_SUFFIX}"

    def backup_path(self, name: str) -> str:
        return posixpath.join(self.backup_dir, name)

    async def _free_path(self, name: str) -> str:
        # Never overwrite an archive written earlier in the same second
        stem = name[:-len(BACKUP_SUFFIX)]
        path = self.backup_path(name)
        counter = 1
        while (await self.shell.run(f"test -e {q(path)}", check=False)).ok:
            counter += 1
            path = self.backup_path(f"{stem}-{counter}{BACKUP_SUFFIX}")
        return path

    async def create(self, webroot: str, when: Optional[datetime] = None) -> str:
        """
        Archive the webroot directory (by its basename) into the backup dir

        Uses `pigz -9` when the host has it, plain `tar -czf` otherwise.

        Returns:
            Remote path of the new archive

        Raises:
            BackupError: If the archive could not be written
        """
        path = await self._free_path(self.backup_name(when))
        parent = posixpath.dirname(webroot.rstrip("/")) or "/"
        base = posixpath.basename(webroot.rstrip("/"))

        script = (
            "set -o pipefail; "
            f"mkdir -p {q(self.backup_dir)} && "
            "if command -v pigz >/dev/null 2>&1; then "
            f"tar -C {q(parent)} -cf - {q(base)} | pigz -9 > {q(path)}; "
            f"else tar -C {q(parent)} -czf {q(path)} {q(base)}; fi"
        )

        self.logger.info("Creating backup %s", path)
        try:
            await self.shell.run(f"bash -c {q(script)}")
        except TransportError as e:
            try:
                await self.shell.run(f"rm -f {q(path)}", check=False)
            except TransportError as cleanup_error:
                self.logger.debug("Could not remove partial backup: %s", cleanup_error)
            raise BackupError(f"Backup of {webroot} failed: {e}")
        return path

    async def list_backups(self) -> List[str]:
        """Backup file names for this prefix, newest first"""
        result = await self.shell.run(
            f"find {q(self.backup_dir)} -maxdepth 1 -type f "
            f"-name {q(self.prefix + '-*' + BACKUP_SUFFIX)} -printf '%f\\n' 2>/dev/null",
            check=False,
        )
        names = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return sorted(names, key=backup_sort_key, reverse=True)

    async def prune(self, result: Optional[Result] = None) -> List[str]:
        """
        Delete backups beyond the retention count

        Failures are recorded as warnings on `result` and never raised.

        Returns:
            Names of the removed archives
        """
        removed = []
        for name in (await self.list_backups())[self.retain:]:
            path = self.backup_path(name)
            try:
                outcome = await self.shell.run(f"rm -f -- {q(path)}", check=False)
                ok, message = outcome.ok, outcome.stderr.strip()
            except TransportError as e:
                ok, message = False, str(e)

            if ok:
                removed.append(name)
                self.logger.info("Pruned old backup %s", name)
            else:
                self.logger.warning("Could not prune backup %s: %s", path, message)
                if result is not None:
                    result.add_warning("prune-backup", path, message or "rm failed")
        return removed

    async def select(self, name: Optional[str] = None) -> str:
        """Remote path of the named backup, or the newest one"""
        return self.backup_path(select_backup(await self.list_backups(), self.prefix, name))
