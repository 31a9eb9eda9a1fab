# site_deploy/remote/ftp.py
"""FTP / FTPS transport on ftplib, run in the default executor"""

import asyncio
import ftplib
import posixpath
import ssl
from pathlib import Path
from typing import Callable, List, Optional, Set, Tuple

from .base import RemoteFS, RemoteFile, RemoteTree
from ..api.exceptions import TransportError
from ..constants import FTPSecureMode, DEFAULT_CONCURRENCY
from ..utils.async_utils import sync_to_async

# (name, is_dir, size)
ListEntry = Tuple[str, bool, int]


class ImplicitFTP_TLS(ftplib.FTP_TLS):
    """FTP_TLS variant that wraps the control socket on connect (port 990)"""

    _sock = None

    @property
    def sock(self):
        return self._sock

    @sock.setter
    def sock(self, value):
        if value is not None and not isinstance(value, ssl.SSLSocket):
            value = self.context.wrap_socket(value, server_hostname=self.host)
        self._sock = value


def parse_list_line(line: str) -> Optional[ListEntry]:
    """Parse one Unix style LIST line

    Returns None for lines that are not entries ("total 12", '.' and '..').
    """
    parts = line.split(None, 8)
    if len(parts) < 9:
        return None
    perms, name = parts[0], parts[8]
    if perms.startswith("l"):
        name = name.split(" -> ", 1)[0]
    if name in (".", ".."):
        return None
    try:
        size = int(parts[4])
    except ValueError:
        size = 0
    return name, perms.startswith("d"), size


def _list_mlsd(ftp: ftplib.FTP, path: str) -> List[ListEntry]:
    entries = []
    for name, facts in ftp.mlsd(path, facts=["type", "size"]):
        kind = facts.get("type", "").lower()
        if kind in ("cdir", "pdir") or name in (".", ".."):
            continue
        entries.append((name, kind == "dir", int(facts.get("size") or 0)))
    return entries


def _list_unix(ftp: ftplib.FTP, path: str) -> List[ListEntry]:
    lines: List[str] = []
    ftp.retrlines(f"LIST {path}", lines.append)
    return [entry for entry in map(parse_list_line, lines) if entry]


def _store(ftp: ftplib.FTP, local_path: Path, remote_path: str) -> None:
    with open(local_path, "rb") as fh:
        ftp.storbinary(f"STOR {remote_path}", fh)


def _retrieve(ftp: ftplib.FTP, remote_path: str, local_path: Path) -> None:
    with open(local_path, "wb") as fh:
        ftp.retrbinary(f"RETR {remote_path}", fh.write)


def _delete_file(ftp: ftplib.FTP, path: str) -> None:
    ftp.delete(path)


def _remove_dir(ftp: ftplib.FTP, path: str) -> None:
    ftp.rmd(path)


def _make_dirs(ftp: ftplib.FTP, path: str) -> None:
    current = "/" if path.startswith("/") else ""
    for segment in [s for s in path.split("/") if s]:
        current = posixpath.join(current, segment) if current else segment
        try:
            ftp.mkd(current)
        except ftplib.error_perm:
            # Already exists (or not creatable, which the upload will report)
            pass


class FTPRemoteFS(RemoteFS):
    """RemoteFS over FTP or FTPS

    Keeps a pool of up to `concurrency` control connections so uploads run
    in parallel; each blocking ftplib call runs in the default executor.
    """

    def __init__(self,
                 host: str,
                 user: str,
                 password: str,
                 root: str,
                 port: int = 21,
                 secure: FTPSecureMode = FTPSecureMode.EXPLICIT,
                 concurrency: int = DEFAULT_CONCURRENCY,
                 timeout: float = 30.0):
        super().__init__(root, timeout)
        self.host = host
        self.user = user
        self.password = password
        self.port = port
        self.secure = secure
        self.pool_size = max(1, concurrency)
        self._idle: Optional[asyncio.Queue] = None
        self._opened = 0
        self._all: List[ftplib.FTP] = []
        self._mlsd = True
        self._known_dirs: Set[str] = set()
        self._dir_lock: Optional[asyncio.Lock] = None

    def _open(self) -> ftplib.FTP:
        if self.secure == FTPSecureMode.IMPLICIT:
            ftp = ImplicitFTP_TLS()
        elif self.secure == FTPSecureMode.EXPLICIT:
            ftp = ftplib.FTP_TLS()
        else:
            ftp = ftplib.FTP()
        ftp.encoding = "utf-8"
        ftp.connect(self.host, self.port, timeout=self.timeout)
        ftp.login(self.user, self.password)
        if isinstance(ftp, ftplib.FTP_TLS):
            ftp.prot_p()
        return ftp

    async def _new_connection(self) -> ftplib.FTP:
        try:
            ftp = await sync_to_async(self._open)()
        except ftplib.all_errors as e:
            raise TransportError(f"Failed to connect to ftp://{self.user}@{self.host}:{self.port}: {e}")
        self._all.append(ftp)
        return ftp

    async def _do_connect(self) -> None:
        self._idle = asyncio.Queue()
        self._dir_lock = asyncio.Lock()
        self._opened = 1
        self._idle.put_nowait(await self._new_connection())
        self.logger.debug("Connected to %s (%s)", self.host, self.secure.value)

    async def _acquire(self) -> ftplib.FTP:
        if not self._idle.empty():
            return self._idle.get_nowait()
        if self._opened < self.pool_size:
            self._opened += 1
            try:
                return await self._new_connection()
            except TransportError:
                self._opened -= 1
                raise
        return await self._idle.get()

    def _discard(self, ftp: ftplib.FTP) -> None:
        self._opened -= 1
        if ftp in self._all:
            self._all.remove(ftp)
        ftp.close()

    async def _call(self, func: Callable, *args):
        """Run func(ftp, *args) on a pooled connection"""
        if self._idle is None:
            raise TransportError("FTP connection is not open")
        ftp = await self._acquire()
        try:
            result = await sync_to_async(func)(ftp, *args)
        except (OSError, EOFError):
            # Connection is unusable; drop it from the pool
            self._discard(ftp)
            raise
        except BaseException:
            self._idle.put_nowait(ftp)
            raise
        self._idle.put_nowait(ftp)
        return result

    async def _do_close(self) -> None:
        for ftp in self._all:
            try:
                await sync_to_async(ftp.quit)()
            except ftplib.all_errors:
                ftp.close()
        self._all.clear()
        self._idle = None
        self._opened = 0
        self._known_dirs.clear()

    async def _list_dir(self, path: str) -> List[ListEntry]:
        if self._mlsd:
            try:
                return await self._call(_list_mlsd, path)
            except ftplib.error_perm as e:
                if not str(e).startswith(("500", "501", "502")):
                    raise
                self.logger.debug("MLSD unsupported, falling back to LIST")
                self._mlsd = False
        return await self._call(_list_unix, path)

    async def list_tree(self, base: str = ".") -> RemoteTree:
        tree = RemoteTree()
        pending = [("", self.resolve(base))]

        while pending:
            rel_dir, abs_dir = pending.pop()
            try:
                entries = await self._list_dir(abs_dir)
            except ftplib.all_errors as e:
                self.logger.debug("Skipping %s: %s", abs_dir, e)
                continue

            for name, is_dir, size in entries:
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if is_dir:
                    tree.dirs.append(rel)
                    pending.append((rel, posixpath.join(abs_dir, name)))
                else:
                    tree.files.append(RemoteFile(rel=rel, size=size))

        return tree

    async def list_entries(self, path: str) -> List[str]:
        try:
            return [name for name, _, _ in await self._list_dir(self.resolve(path))]
        except ftplib.all_errors:
            return []

    async def ensure_dir(self, path: str) -> None:
        target = self.resolve(path)
        if target in self._known_dirs:
            return
        async with self._dir_lock:
            if target in self._known_dirs:
                return
            try:
                await self._call(_make_dirs, target)
            except ftplib.all_errors as e:
                raise TransportError(f"Failed to create directory {target}: {e}")
            self._known_dirs.add(target)

    async def put(self, local_path: Path, remote_path: str) -> None:
        target = self.resolve(remote_path)
        await self.ensure_dir(posixpath.dirname(target))
        try:
            await self._call(_store, local_path, target)
        except ftplib.all_errors as e:
            raise TransportError(f"Failed to upload {remote_path}: {e}")

    async def get(self, remote_path: str, local_path: Path) -> None:
        Path(local_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            await self._call(_retrieve, self.resolve(remote_path), local_path)
        except ftplib.all_errors as e:
            raise TransportError(f"Failed to download {remote_path}: {e}")

    async def delete(self, path: str) -> bool:
        target = self.resolve(path)
        try:
            await self._call(_delete_file, target)
            return True
        except ftplib.all_errors:
            pass
        return await self.rmdir(path)

    async def rmdir(self, path: str) -> bool:
        target = self.resolve(path)
        try:
            await self._call(_remove_dir, target)
        except ftplib.all_errors as e:
            self.logger.debug("rmdir %s failed: %s", target, e)
            return False
        self._known_dirs.discard(target)
        return True
