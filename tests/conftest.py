"""Shared fixtures: in-memory RemoteFS, local-subprocess RemoteShell, archive builders"""

import asyncio
import posixpath
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

from site_deploy.api.exceptions import TransportError
from site_deploy.remote.base import RemoteFS, RemoteFile, RemoteTree
from site_deploy.remote.shell import CommandResult, RemoteShell

MUTATING_OPS = {"put", "delete", "rmdir", "ensure_dir"}


class FakeRemoteFS(RemoteFS):
    """RemoteFS over a dict of relative path -> bytes, recording every call"""

    def __init__(self, files: Optional[Dict[str, bytes]] = None, dirs=(), root: str = "/srv/www/public_html"):
        super().__init__(root)
        self.files: Dict[str, bytes] = dict(files or {})
        self.dirs: Set[str] = set(dirs)
        for rel in self.files:
            self._add_parents(rel)
        self.calls: List[Tuple[str, str]] = []
        self.fail_put: Set[str] = set()
        self.fail_delete: Set[str] = set()
        self.fail_rmdir: Set[str] = set()

    def _key(self, path: str) -> str:
        if path.startswith(self.root + "/"):
            return path[len(self.root) + 1:]
        if path in (".", "", self.root):
            return ""
        return path

    def _add_parents(self, rel: str) -> None:
        parent = posixpath.dirname(rel)
        while parent and not parent.startswith("/"):
            self.dirs.add(parent)
            parent = posixpath.dirname(parent)

    @property
    def mutations(self) -> List[Tuple[str, str]]:
        return [call for call in self.calls if call[0] in MUTATING_OPS]

    def ops(self, name: str) -> List[str]:
        return [path for op, path in self.calls if op == name]

    async def _do_connect(self) -> None:
        self.calls.append(("connect", self.root))

    async def _do_close(self) -> None:
        self.calls.append(("close", self.root))

    async def list_tree(self, base: str = ".") -> RemoteTree:
        self.calls.append(("list_tree", base))
        return RemoteTree(
            files=[RemoteFile(rel, len(data)) for rel, data in sorted(self.files.items())
                   if not rel.startswith("/")],
            dirs=sorted(d for d in self.dirs if not d.startswith("/")),
        )

    async def list_entries(self, path: str) -> List[str]:
        self.calls.append(("list_entries", path))
        key = self._key(path)
        prefix = key.rstrip("/") + "/" if key else ""
        names = set()
        for entry in list(self.files) + list(self.dirs):
            if entry.startswith(prefix) and entry != key:
                names.add(entry[len(prefix):].split("/", 1)[0])
        return sorted(names)

    async def ensure_dir(self, path: str) -> None:
        self.calls.append(("ensure_dir", path))
        key = self._key(path)
        if key:
            self.dirs.add(key)
            self._add_parents(key)

    async def put(self, local_path: Path, remote_path: str) -> None:
        self.calls.append(("put", remote_path))
        if remote_path in self.fail_put:
            raise TransportError(f"upload refused: {remote_path}")
        key = self._key(remote_path)
        self.files[key] = Path(local_path).read_bytes()
        self._add_parents(key)

    async def get(self, remote_path: str, local_path: Path) -> None:
        self.calls.append(("get", remote_path))
        key = self._key(remote_path)
        if key not in self.files:
            raise TransportError(f"no such file: {remote_path}")
        Path(local_path).parent.mkdir(parents=True, exist_ok=True)
        Path(local_path).write_bytes(self.files[key])

    async def delete(self, path: str) -> bool:
        self.calls.append(("delete", path))
        if path in self.fail_delete:
            return False
        key = self._key(path)
        if key in self.files:
            del self.files[key]
            return True
        return False

    async def rmdir(self, path: str) -> bool:
        self.calls.append(("rmdir", path))
        key = self._key(path)
        if path in self.fail_rmdir or key not in self.dirs:
            return False
        if any(e.startswith(key + "/") for e in list(self.files) + list(self.dirs)):
            return False
        self.dirs.discard(key)
        return True


class LocalShell(RemoteShell):
    """RemoteShell that runs commands on this machine through bash"""

    def __init__(self):
        self.commands: List[str] = []
        self.fail_on: List[str] = []

    async def run(self, command: str, check: bool = True) -> CommandResult:
        self.commands.append(command)
        if any(fragment in command for fragment in self.fail_on):
            return self._checked(CommandResult(command, 1, "", "injected failure"), check)

        process = await asyncio.create_subprocess_exec(
            "bash", "-c", command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        result = CommandResult(command, process.returncode, stdout.decode(), stderr.decode())
        return self._checked(result, check)

    async def put_file(self, local_path: Path, remote_path: str) -> None:
        Path(remote_path).parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local_path, remote_path)

    async def get_file(self, remote_path: str, local_path: Path) -> None:
        shutil.copyfile(remote_path, local_path)


def write_tree(root: Path, files: Dict[str, bytes]) -> Path:
    """Create files below root; returns root"""
    root.mkdir(parents=True, exist_ok=True)
    for rel, data in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    return root


def read_tree(root: Path) -> Dict[str, bytes]:
    """Map of relative path -> bytes for every file below root"""
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def make_zip(path: Path, files: Dict[str, bytes]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for rel, data in files.items():
            zf.writestr(rel, data)
    return path


def make_tar(path: Path, source: Path, arcname: str) -> Path:
    with tarfile.open(path, "w:gz") as tar:
        tar.add(str(source), arcname=arcname)
    return path


@pytest.fixture
def local_release(tmp_path):
    """Factory: write files into a local release dir and return (root, rel paths)"""

    def build(files: Dict[str, bytes]):
        root = write_tree(tmp_path / "release", files)
        return root, sorted(files)

    return build


@pytest.fixture
def local_shell():
    return LocalShell()


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    for name in ("SITE_DEPLOY_YES", "SITE_DEPLOY_CONFIG", "SITE_DEPLOY_FTP_PASS", "SITE_DEPLOY_SFTP_PASS"):
        monkeypatch.delenv(name, raising=False)
