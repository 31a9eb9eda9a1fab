# site_deploy/remote/sftp.py
"""SFTP transport on an asyncssh SFTP session"""

import asyncio
import posixpath
import stat
from pathlib import Path
from typing import List, Optional, Set

import asyncssh

from .base import RemoteFS, RemoteFile, RemoteTree
from .shell import connect_ssh
from ..api.exceptions import TransportError


class SFTPRemoteFS(RemoteFS):
    """RemoteFS over SFTP

    Uploads run concurrently on one SFTP session. Directory creation is
    serialized so parallel workers never race on the same parent.
    """

    def __init__(self,
                 host: str,
                 user: str,
                 root: str,
                 port: int = 22,
                 password: Optional[str] = None,
                 key_path: Optional[str] = None,
                 timeout: float = 30.0):
        super().__init__(root, timeout)
        self.host = host
        self.user = user
        self.port = port
        self.password = password
        self.key_path = key_path
        self._conn: Optional[asyncssh.SSHClientConnection] = None
        self._sftp: Optional[asyncssh.SFTPClient] = None
        self._known_dirs: Set[str] = set()
        self._dir_lock: Optional[asyncio.Lock] = None

    async def _do_connect(self) -> None:
        self._dir_lock = asyncio.Lock()
        self._conn = await connect_ssh(
            self.host, self.port, self.user,
            password=self.password,
            key_path=self.key_path,
            timeout=self.timeout,
        )
        try:
            self._sftp = await self._conn.start_sftp_client()
        except (OSError, asyncssh.Error) as e:
            self._conn.close()
            raise TransportError(f"Failed to start SFTP session on {self.host}: {e}")

    async def _do_close(self) -> None:
        if self._sftp is not None:
            self._sftp.exit()
            self._sftp = None
        if self._conn is not None:
            self._conn.close()
            await self._conn.wait_closed()
            self._conn = None
        self._known_dirs.clear()

    @property
    def sftp(self) -> asyncssh.SFTPClient:
        if self._sftp is None:
            raise TransportError("SFTP session is not open")
        return self._sftp

    @staticmethod
    def _is_dir(entry: asyncssh.SFTPName) -> bool:
        if entry.attrs.permissions is not None:
            return stat.S_ISDIR(entry.attrs.permissions)
        return str(entry.longname or "").startswith("d")

    async def list_tree(self, base: str = ".") -> RemoteTree:
        tree = RemoteTree()
        start = self.resolve(base)
        pending = [("", start)]

        while pending:
            rel_dir, abs_dir = pending.pop()
            try:
                entries = await self.sftp.readdir(abs_dir)
            except (asyncssh.SFTPError, OSError) as e:
                # Missing root or unreadable subtree
                self.logger.debug("Skipping %s: %s", abs_dir, e)
                continue

            for entry in entries:
                name = entry.filename
                if name in (".", ".."):
                    continue
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if self._is_dir(entry):
                    tree.dirs.append(rel)
                    pending.append((rel, posixpath.join(abs_dir, name)))
                else:
                    tree.files.append(RemoteFile(rel=rel, size=entry.attrs.size or 0))

        return tree

    async def list_entries(self, path: str) -> List[str]:
        try:
            names = await self.sftp.listdir(self.resolve(path))
        except (asyncssh.SFTPError, OSError):
            return []
        return [name for name in names if name not in (".", "..")]

    async def ensure_dir(self, path: str) -> None:
        target = self.resolve(path)
        if target in self._known_dirs:
            return
        async with self._dir_lock:
            if target in self._known_dirs:
                return
            try:
                await self.sftp.makedirs(target, exist_ok=True)
            except (asyncssh.SFTPError, OSError) as e:
                raise TransportError(f"Failed to create directory {target}: {e}")
            self._known_dirs.add(target)

    async def put(self, local_path: Path, remote_path: str) -> None:
        target = self.resolve(remote_path)
        await self.ensure_dir(posixpath.dirname(target))
        try:
            await self.sftp.put(str(local_path), target)
        except (asyncssh.SFTPError, OSError) as e:
            raise TransportError(f"Failed to upload {remote_path}: {e}")

    async def get(self, remote_path: str, local_path: Path) -> None:
        Path(local_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            await self.sftp.get(self.resolve(remote_path), str(local_path))
        except (asyncssh.SFTPError, OSError) as e:
            raise TransportError(f"Failed to download {remote_path}: {e}")

    async def delete(self, path: str) -> bool:
        target = self.resolve(path)
        try:
            await self.sftp.remove(target)
            return True
        except (asyncssh.SFTPError, OSError):
            pass
        try:
            await self.sftp.rmdir(target)
            self._known_dirs.discard(target)
            return True
        except (asyncssh.SFTPError, OSError) as e:
            self.logger.debug("delete %s failed: %s", target, e)
            return False

    async def rmdir(self, path: str) -> bool:
        target = self.resolve(path)
        try:
            await self.sftp.rmdir(target)
        except (asyncssh.SFTPError, OSError) as e:
            self.logger.debug("rmdir %s failed: %s", target, e)
            return False
        self._known_dirs.discard(target)
        return True
