# site_deploy/remote/base.py
"""Remote filesystem adapter abstract base class"""

import logging
import posixpath
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Set, Tuple

from ..constants import DEFAULT_CONCURRENCY
from ..utils.async_utils import run_bounded


@dataclass(frozen=True)
class RemoteFile:
    """A file below the webroot"""
    rel: str
    size: int = 0


@dataclass
class RemoteTree:
    """Files and directories enumerated relative to a base"""

    files: List[RemoteFile] = field(default_factory=list)
    dirs: List[str] = field(default_factory=list)

    @property
    def file_set(self) -> Set[str]:
        return {f.rel for f in self.files}

    @property
    def rel_paths(self) -> List[str]:
        return [f.rel for f in self.files]


# (local path, remote path relative to the root)
UploadItem = Tuple[Path, str]


class RemoteFS(ABC):
    """Capability surface every transport implements

    An adapter is bound to a root directory (the webroot). Relative paths
    resolve against it; paths starting with '/' are used as given.
    """

    #: Whether the transport can run remote commands (backup, snapshot, rollback)
    supports_snapshots = False

    def __init__(self, root: str, timeout: float = 30.0):
        """
        Initialize remote filesystem

        Args:
            root: Remote directory relative paths resolve against
            timeout: Per-connection/command timeout in seconds
        """
        self.root = root.rstrip("/") or "/"
        self.timeout = timeout
        self._connected = False
        self.logger = logging.getLogger(self.__class__.__name__)

    def resolve(self, path: str) -> str:
        """Turn a path relative to the root into a remote path"""
        if path.startswith("/"):
            return posixpath.normpath(path)
        if path in ("", "."):
            return self.root
        return posixpath.join(self.root, path)

    async def connect(self) -> None:
        """Open the connection (idempotent)"""
        if not self._connected:
            await self._do_connect()
            self._connected = True

    @abstractmethod
    async def _do_connect(self) -> None:
        """Actual connection logic to be implemented by subclasses"""
        pass

    async def close(self) -> None:
        """Close the connection"""
        if self._connected:
            await self._do_close()
            self._connected = False

    async def _do_close(self) -> None:
        """Actual cleanup logic to be implemented by subclasses"""
        pass

    @abstractmethod
    async def list_tree(self, base: str = ".") -> RemoteTree:
        """
        Recursively list files and directories below base

        Unreadable subtrees are skipped rather than failing the listing.

        Returns:
            RemoteTree with paths relative to base
        """
        pass

    @abstractmethod
    async def list_entries(self, path: str) -> List[str]:
        """
        List the names directly inside a directory

        Returns:
            Entry names, empty when the directory is missing
        """
        pass

    @abstractmethod
    async def ensure_dir(self, path: str) -> None:
        """Create a directory and its parents (idempotent)"""
        pass

    @abstractmethod
    async def put(self, local_path: Path, remote_path: str) -> None:
        """
        Upload a file, creating parent directories as needed

        Raises:
            TransportError: If the transfer fails
        """
        pass

    @abstractmethod
    async def get(self, remote_path: str, local_path: Path) -> None:
        """
        Download a file

        Raises:
            TransportError: If the transfer fails
        """
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """
        Remove a file, falling back to directory removal

        Returns:
            True if something was removed, False if both attempts failed
        """
        pass

    @abstractmethod
    async def rmdir(self, path: str) -> bool:
        """
        Remove an empty directory (best effort)

        Returns:
            True if removed; failures are swallowed
        """
        pass

    async def put_many(self,
                       items: Sequence[UploadItem],
                       concurrency: int = DEFAULT_CONCURRENCY,
                       callback: Optional[Callable[[str, int, int], None]] = None) -> int:
        """
        Upload many files through a bounded worker pool

        Stops dispatching on the first failure and re-raises it once the
        uploads already in flight have finished.

        Args:
            items: (local path, remote path) pairs
            concurrency: Maximum parallel uploads
            callback: Progress callback (remote path, completed, total)

        Returns:
            Number of uploaded files
        """

        async def upload(item: UploadItem):
            local_path, remote_path = item
            await self.put(local_path, remote_path)

        progress = None
        if callback:
            progress = lambda item, done, total: callback(item[1], done, total)

        return await run_bounded(items, upload, concurrency, progress)

    async def __aenter__(self):
        """Async context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()
