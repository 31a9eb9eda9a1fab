# site_deploy/remote/shell.py
"""Shell transport: SSH command execution plus batched tar transfer"""

import asyncio
import logging
import os
import posixpath
import shlex
import tarfile
import tempfile
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import asyncssh

from .base import RemoteFS, RemoteFile, RemoteTree, UploadItem
from ..api.exceptions import TransportError
from ..constants import DEFAULT_CONCURRENCY
from ..utils.async_utils import sync_to_async

q = shlex.quote


async def connect_ssh(host: str,
                      port: int,
                      username: str,
                      password: Optional[str] = None,
                      key_path: Optional[str] = None,
                      timeout: float = 30.0) -> asyncssh.SSHClientConnection:
    """
    Open an SSH connection

    Raises:
        TransportError: On connection or authentication failure
    """
    options = dict(
        host=host,
        port=port,
        username=username,
        known_hosts=None,
        connect_timeout=timeout,
    )
    if password:
        options['password'] = password
    if key_path:
        options['client_keys'] = [os.path.expanduser(key_path)]

    try:
        return await asyncssh.connect(**options)
    except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
        raise TransportError(f"Failed to connect to {username}@{host}:{port}: {e}")


@dataclass
class CommandResult:
    """Outcome of one remote command"""
    command: str
    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class RemoteShell(ABC):
    """Runs commands and copies single files on the remote host"""

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    async def run(self, command: str, check: bool = True) -> CommandResult:
        """
        Run a shell command

        Raises:
            TransportError: If check is set and the command exits non-zero
        """
        pass

    @abstractmethod
    async def put_file(self, local_path: Path, remote_path: str) -> None:
        pass

    @abstractmethod
    async def get_file(self, remote_path: str, local_path: Path) -> None:
        pass

    @staticmethod
    def _checked(result: CommandResult, check: bool) -> CommandResult:
        if check and not result.ok:
            detail = (result.stderr or result.stdout).strip()
            raise TransportError(
                f"Remote command failed ({result.exit_status}): {result.command}"
                + (f"\n{detail}" if detail else "")
            )
        return result


class SSHShell(RemoteShell):
    """RemoteShell over an asyncssh connection"""

    def __init__(self,
                 host: str,
                 user: str,
                 port: int = 22,
                 password: Optional[str] = None,
                 key_path: Optional[str] = None,
                 connect_timeout: float = 30.0,
                 command_timeout: Optional[float] = None):
        self.host = host
        self.user = user
        self.port = port
        self.password = password
        self.key_path = key_path
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self._conn: Optional[asyncssh.SSHClientConnection] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    async def connect(self) -> None:
        if self._conn is None:
            self._conn = await connect_ssh(
                self.host, self.port, self.user,
                password=self.password,
                key_path=self.key_path,
                timeout=self.connect_timeout,
            )

    async def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            await self._conn.wait_closed()
            self._conn = None

    @property
    def conn(self) -> asyncssh.SSHClientConnection:
        if self._conn is None:
            raise TransportError("SSH connection is not open")
        return self._conn

    async def run(self, command: str, check: bool = True) -> CommandResult:
        self.logger.debug("$ %s", command)
        try:
            completed = await self.conn.run(command, check=False, timeout=self.command_timeout)
        except asyncssh.TimeoutError:
            raise TransportError(f"Command timed out after {self.command_timeout}s: {command}")
        except (OSError, asyncssh.Error) as e:
            raise TransportError(f"Command execution failed: {command}: {e}")

        result = CommandResult(
            command=command,
            exit_status=completed.exit_status if completed.exit_status is not None else -1,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        return self._checked(result, check)

    async def put_file(self, local_path: Path, remote_path: str) -> None:
        try:
            await asyncssh.scp(str(local_path), (self.conn, remote_path))
        except (OSError, asyncssh.Error) as e:
            raise TransportError(f"Failed to upload {local_path} to {remote_path}: {e}")

    async def get_file(self, remote_path: str, local_path: Path) -> None:
        try:
            await asyncssh.scp((self.conn, remote_path), str(local_path))
        except (OSError, asyncssh.Error) as e:
            raise TransportError(f"Failed to download {remote_path}: {e}")


def parse_find_output(output: str) -> RemoteTree:
    """Parse `find -printf '%y\\t%s\\t%P\\n'` lines into a RemoteTree"""
    tree = RemoteTree()
    for line in output.splitlines():
        parts = line.split("\t", 2)
        if len(parts) != 3 or not parts[2]:
            continue
        kind, size, rel = parts
        if kind == "d":
            tree.dirs.append(rel)
        else:
            try:
                tree.files.append(RemoteFile(rel=rel, size=int(size)))
            except ValueError:
                tree.files.append(RemoteFile(rel=rel))
    return tree


def _build_batch_archive(items: Sequence[UploadItem], archive_path: str) -> None:
    with tarfile.open(archive_path, "w:gz") as tar:
        for local_path, remote_rel in items:
            tar.add(str(local_path), arcname=remote_rel, recursive=False)


class ShellRemoteFS(RemoteFS):
    """RemoteFS on top of a RemoteShell

    Batch uploads are packed into one tar.gz, copied once and unpacked by
    a single remote command, so the effective concurrency is 1.
    """

    supports_snapshots = True

    def __init__(self, shell: RemoteShell, root: str, remote_tmp: Optional[str] = None,
                 timeout: float = 30.0):
        super().__init__(root, timeout)
        self.shell = shell
        remote_tmp = remote_tmp or posixpath.join(posixpath.dirname(self.root), ".site-deploy-tmp")
        self.work_dir = posixpath.join(remote_tmp, f"site-deploy-{uuid.uuid4().hex[:12]}")

    async def _do_connect(self) -> None:
        await self.shell.connect()

    async def _do_close(self) -> None:
        await self.shell.close()

    async def list_tree(self, base: str = ".") -> RemoteTree:
        # find keeps going past unreadable subtrees; its exit status is ignored
        path = self.resolve(base)
        result = await self.shell.run(
            f"find {q(path)} -mindepth 1 -printf '%y\\t%s\\t%P\\n' 2>/dev/null",
            check=False,
        )
        return parse_find_output(result.stdout)

    async def list_entries(self, path: str) -> List[str]:
        result = await self.shell.run(f"ls -A {q(self.resolve(path))} 2>/dev/null", check=False)
        return [line for line in result.stdout.splitlines() if line]

    async def ensure_dir(self, path: str) -> None:
        await self.shell.run(f"mkdir -p {q(self.resolve(path))}")

    async def put(self, local_path: Path, remote_path: str) -> None:
        target = self.resolve(remote_path)
        await self.ensure_dir(posixpath.dirname(target))
        await self.shell.put_file(local_path, target)

    async def get(self, remote_path: str, local_path: Path) -> None:
        Path(local_path).parent.mkdir(parents=True, exist_ok=True)
        await self.shell.get_file(self.resolve(remote_path), local_path)

    async def delete(self, path: str) -> bool:
        target = q(self.resolve(path))
        result = await self.shell.run(
            f"rm -f -- {target} 2>/dev/null || rmdir -- {target} 2>/dev/null", check=False
        )
        return result.ok

    async def rmdir(self, path: str) -> bool:
        try:
            result = await self.shell.run(f"rmdir -- {q(self.resolve(path))} 2>/dev/null", check=False)
        except TransportError as e:
            self.logger.debug("rmdir %s failed: %s", path, e)
            return False
        return result.ok

    async def put_many(self,
                       items: Sequence[UploadItem],
                       concurrency: int = DEFAULT_CONCURRENCY,
                       callback: Optional[Callable[[str, int, int], None]] = None) -> int:
        items = list(items)
        if not items:
            return 0
        if any(remote.startswith("/") for _, remote in items):
            return await super().put_many(items, concurrency, callback)

        remote_archive = posixpath.join(self.work_dir, f"batch-{uuid.uuid4().hex[:8]}.tar.gz")
        try:
            fd, archive = tempfile.mkstemp(prefix="site-deploy-", suffix=".tar.gz")
            os.close(fd)
        except OSError as e:
            raise TransportError(f"Cannot create local batch archive: {e}")
        try:
            await sync_to_async(_build_batch_archive)(items, archive)
            self.logger.info("Uploading batch of %d files as one archive", len(items))
            await self.shell.run(f"mkdir -p {q(self.work_dir)}")
            await self.shell.put_file(Path(archive), remote_archive)
            await self.shell.run(
                f"mkdir -p {q(self.root)} && tar -xzf {q(remote_archive)} -C {q(self.root)}; "
                f"status=$?; rm -f {q(remote_archive)}; exit $status"
            )
        except OSError as e:
            raise TransportError(f"Batch upload failed: {e}")
        finally:
            os.unlink(archive)

        if callback:
            for done, (_, remote) in enumerate(items, start=1):
                callback(remote, done, len(items))
        return len(items)
