"""Two-phase reconciliation of a remote webroot against a release tree"""

import logging
import posixpath
from pathlib import Path
from typing import Callable, Iterable, Optional, Set

from rich.console import Console
from rich.markup import escape

from .preserve import PreserveMatcher, normalize_rel
from ..constants import (
    DEFAULT_CONCURRENCY,
    MARK_DELETE,
    MARK_UPLOAD,
    MARK_MERGE,
    MARK_PRUNE,
)
from ..models.plan import ReconciliationPlan
from ..models.result import ReconcileResult, OperationStatus
from ..remote.base import RemoteFS, RemoteTree

# progress(phase, remote path, completed, total)
ProgressCallback = Callable[[str, str, int, int], None]


def _ancestors(paths: Iterable[str]) -> Set[str]:
    dirs = set()
    for path in paths:
        parent = posixpath.dirname(path)
        while parent and parent not in dirs:
            dirs.add(parent)
            parent = posixpath.dirname(parent)
    return dirs


class Reconciler:
    """Converges a remote tree to a local release tree

    Phase A is authoritative outside preserved space: remote files with no
    local counterpart are deleted, then every local file is uploaded.
    Phase B only adds preserved files that do not exist remotely. Empty
    non-preserved directories are pruned afterwards, best effort.
    """

    def __init__(self,
                 remote: RemoteFS,
                 matcher: PreserveMatcher,
                 concurrency: int = DEFAULT_CONCURRENCY,
                 dry_run: bool = False,
                 console: Optional[Console] = None,
                 progress: Optional[ProgressCallback] = None):
        self.remote = remote
        self.matcher = matcher
        self.concurrency = concurrency
        self.dry_run = dry_run
        self.console = console or Console()
        self.progress = progress
        self.logger = logging.getLogger(self.__class__.__name__)

    def plan(self, local_files: Iterable[str], remote_tree: RemoteTree) -> ReconciliationPlan:
        """Compute the operations for one run; touches nothing"""
        local = sorted({normalize_rel(p) for p in local_files})
        local_preserved, local_other = self.matcher.partition(local)
        _, remote_other = self.matcher.partition(remote_tree.rel_paths)

        local_other_set = set(local_other)
        remote_all = remote_tree.file_set

        to_delete = sorted(p for p in remote_other if p not in local_other_set)
        to_merge = [p for p in local_preserved if p not in remote_all]

        # Directories that will hold uploaded files can never end up empty
        keep = _ancestors(local)
        prune = [
            d for d in remote_tree.dirs
            if d not in keep and not self.matcher.is_preserved_dir(d)
        ]
        prune.sort(key=lambda d: (d.count("/"), len(d)), reverse=True)

        return ReconciliationPlan(
            to_delete=to_delete,
            to_upload_authoritative=list(local_other),
            to_merge_only=to_merge,
            prune_candidates=prune,
        )

    def print_plan(self, plan: ReconciliationPlan) -> None:
        """Print each planned operation with a diff marker"""
        for path in plan.to_delete:
            self.console.print(f"[red]{MARK_DELETE}[/red] {escape(path)}")
        for path in plan.to_upload_authoritative:
            self.console.print(f"[green]{MARK_UPLOAD}[/green] {escape(path)}")
        for path in plan.to_merge_only:
            self.console.print(f"[cyan]{MARK_MERGE}[/cyan] {escape(path)}")
        for path in plan.prune_candidates:
            self.console.print(f"[dim]{MARK_PRUNE} {escape(path)} (if empty)[/dim]")

    async def apply(self, plan: ReconciliationPlan, local_root: Path) -> ReconcileResult:
        """Execute a plan against the remote

        Raises:
            TransportError: If an upload or the connection fails
        """
        result = ReconcileResult(plan=plan, dry_run=self.dry_run)

        if self.dry_run:
            self.print_plan(plan)
            result.complete(OperationStatus.DRY_RUN)
            return result

        local_root = Path(local_root)

        # Phase A: deletes strictly before uploads
        for path in plan.to_delete:
            if await self.remote.delete(path):
                result.deleted += 1
                self.logger.debug("deleted %s", path)
            else:
                warning = result.add_warning("delete", path, "could not remove remote file")
                self.logger.warning("%s", warning)

        result.uploaded = await self._upload("upload", plan.to_upload_authoritative, local_root)

        # Phase B: additive only
        result.merged = await self._upload("merge", plan.to_merge_only, local_root)

        await self._prune(plan, result)

        self.logger.info(
            "Reconciled: %d deleted, %d uploaded, %d merged, %d pruned, %d warnings",
            result.deleted, result.uploaded, result.merged, result.pruned, len(result.warnings),
        )
        result.complete(OperationStatus.SUCCESS)
        return result

    async def reconcile(self,
                        local_files: Iterable[str],
                        local_root: Path,
                        remote_tree: Optional[RemoteTree] = None) -> ReconcileResult:
        """List (unless given), plan and apply in one call"""
        if remote_tree is None:
            remote_tree = await self.remote.list_tree()
        plan = self.plan(local_files, remote_tree)
        self.logger.info("Plan: %s", plan.summary())
        return await self.apply(plan, local_root)

    async def _upload(self, phase: str, paths, local_root: Path) -> int:
        if not paths:
            return 0
        items = [(local_root / path, path) for path in paths]

        callback = None
        if self.progress:
            callback = lambda path, done, total: self.progress(phase, path, done, total)

        return await self.remote.put_many(items, self.concurrency, callback)

    async def _prune(self, plan: ReconciliationPlan, result: ReconcileResult) -> None:
        for directory in plan.prune_candidates:
            if await self.remote.list_entries(directory):
                continue
            if await self.remote.rmdir(directory):
                result.pruned += 1
            else:
                warning = result.add_warning("rmdir", directory, "could not remove empty directory")
                self.logger.warning("%s", warning)
