"""Local release trees: archive extraction, file listing and backup selection"""

import logging
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import List, Optional, Sequence

from ..api.exceptions import ArtifactError
from ..constants import DOCUMENT_ROOT_NAME, RESTORE_ARCHIVE_SUFFIXES

logger = logging.getLogger(__name__)


def list_files(root: Path) -> List[str]:
    """Relative POSIX paths of all regular files under root, sorted"""
    root = Path(root)
    return sorted(
        path.relative_to(root).as_posix()
        for path in root.rglob("*")
        if path.is_file() and not path.is_symlink()
    )


def infer_document_root(extracted: Path, webroot_name: Optional[str] = None) -> Path:
    """Find the directory inside an extracted backup that maps to the webroot

    Backups hold the webroot directory by name (`public_html/`). When the
    archive has a single top-level directory with that name, or with the
    webroot's basename, its contents are the document root; otherwise the
    archive root is.
    """
    extracted = Path(extracted)
    names = {DOCUMENT_ROOT_NAME}
    if webroot_name:
        names.add(webroot_name)

    for name in names:
        candidate = extracted / name
        if candidate.is_dir():
            others = [p for p in extracted.iterdir() if p.name != name]
            if not others:
                return candidate
    return extracted


def archive_kind(path: Path) -> str:
    name = Path(path).name.lower()
    if name.endswith(".zip"):
        return "zip"
    if name.endswith((".tar.gz", ".tgz")):
        return "tar"
    raise ArtifactError(
        f"Unsupported archive: {path} (expected one of {', '.join(RESTORE_ARCHIVE_SUFFIXES)})"
    )


def _safe_members(tar: tarfile.TarFile, dest: Path):
    dest = dest.resolve()
    for member in tar.getmembers():
        if not (member.isfile() or member.isdir()):
            continue
        target = (dest / member.name).resolve()
        if target != dest and dest not in target.parents:
            raise ArtifactError(f"Archive member escapes extraction dir: {member.name}")
        yield member


def extract_archive(archive: Path, dest: Path) -> None:
    """
    Extract a .zip, .tar.gz or .tgz archive into dest

    Raises:
        ArtifactError: If the archive is missing, unsupported or corrupt
    """
    archive = Path(archive)
    if not archive.is_file():
        raise ArtifactError(f"Archive not found: {archive}")

    kind = archive_kind(archive)
    try:
        if kind == "zip":
            with zipfile.ZipFile(archive) as zf:
                for info in zf.infolist():
                    target = (dest / info.filename).resolve()
                    if dest.resolve() not in target.parents and target != dest.resolve():
                        raise ArtifactError(f"Archive member escapes extraction dir: {info.filename}")
                zf.extractall(dest)
        else:
            with tarfile.open(archive, "r:gz") as tar:
                tar.extractall(dest, members=list(_safe_members(tar, dest)))
    except (zipfile.BadZipFile, tarfile.TarError, EOFError, OSError) as e:
        raise ArtifactError(f"Cannot extract {archive}: {e}")


class LocalReleaseTree:
    """An archive extracted to a private temp dir, removed on exit

    Use as a context manager so the directory goes away whatever the
    outcome of the run.
    """

    def __init__(self, archive: Path, workdir: Path, root: Path):
        self.archive = Path(archive)
        self.workdir = Path(workdir)
        self.root = Path(root)
        self.files: List[str] = list_files(self.root)

    @property
    def archive_size(self) -> Optional[int]:
        try:
            return self.archive.stat().st_size
        except OSError:
            return None

    @classmethod
    def extract(cls, archive: Path, infer_root: bool = False,
                webroot_name: Optional[str] = None) -> 'LocalReleaseTree':
        """
        Extract archive into a fresh temp dir

        Args:
            archive: Release zip or backup archive
            infer_root: Look for the webroot directory inside (restore)
            webroot_name: Basename of the remote webroot
        """
        workdir = Path(tempfile.mkdtemp(prefix="site-deploy-"))
        try:
            extract_archive(Path(archive), workdir)
            root = infer_document_root(workdir, webroot_name) if infer_root else workdir
            tree = cls(archive, workdir, root)
        except BaseException:
            shutil.rmtree(workdir, ignore_errors=True)
            raise
        logger.debug("Extracted %s to %s (%d files)", archive, workdir, len(tree.files))
        return tree

    def cleanup(self) -> None:
        shutil.rmtree(self.workdir, ignore_errors=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()


def backup_sort_key(name: str) -> str:
    """Sort key for backup names: the name without its archive suffix

    `<prefix>-<stamp>-2` (a second backup in the same second) then sorts
    after `<prefix>-<stamp>`.
    """
    lower = name.lower()
    for suffix in RESTORE_ARCHIVE_SUFFIXES:
        if lower.endswith(suffix):
            return name[:-len(suffix)]
    return name


def select_backup(names: Sequence[str], prefix: str, name: Optional[str] = None) -> str:
    """
    Pick a backup file name

    An exact name must be present; otherwise the newest (by name, which
    embeds the timestamp) archive starting with prefix wins.

    Raises:
        ArtifactError: If nothing matches
    """
    if name:
        if name in names:
            return name
        raise ArtifactError(f"Backup not found: {name}")

    candidates = sorted(
        (n for n in names if n.startswith(prefix) and n.lower().endswith(RESTORE_ARCHIVE_SUFFIXES)),
        key=backup_sort_key,
        reverse=True,
    )
    if not candidates:
        raise ArtifactError(f"No backups matching '{prefix}*' found")
    return candidates[0]
