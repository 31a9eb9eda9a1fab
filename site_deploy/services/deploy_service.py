"""Deploy and restore flows"""

import logging
import posixpath
import shlex
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Tuple

from rich.console import Console

from ..api.exceptions import ArtifactError, TransportError
from ..core.backup_manager import BackupManager
from ..core.confirmation import ConfirmationGate, DeployPreview
from ..core.healthcheck import HealthChecker
from ..core.hooks import HookRunner
from ..core.preserve import PreserveMatcher
from ..core.reconciler import Reconciler, ProgressCallback
from ..core.release import LocalReleaseTree, select_backup
from ..core.rollback import DeployContext, RollbackController
from ..constants import EMOJI_SUCCESS, EMOJI_WARNING, EMOJI_ERROR, HOOK_PRE, HOOK_POST
from ..models.config import DeployTarget
from ..models.result import DeployResult, RestoreResult, OperationStatus, ReconcileResult
from ..remote.base import RemoteFS, RemoteTree
from ..remote.factory import RemoteFSFactory
from ..remote.shell import ShellRemoteFS

q = shlex.quote


class DeploymentOrchestrator:
    """Sequences gate, backup, snapshot, reconciliation, health check and rollback

    One orchestrator serves one target. All per-run state lives in a
    DeployContext created by the run, so instances can be reused.
    """

    def __init__(self,
                 target: DeployTarget,
                 assume_yes: bool = False,
                 interactive: Optional[bool] = None,
                 console: Optional[Console] = None,
                 remote: Optional[RemoteFS] = None,
                 progress: Optional[ProgressCallback] = None):
        """Initialize the orchestrator

        Args:
            target: Resolved deploy target
            assume_yes: Consent given up front (--yes or SITE_DEPLOY_YES)
            interactive: Override terminal detection for the prompt
            console: Console for previews and status lines
            remote: Prebuilt RemoteFS (defaults to one built from target)
            progress: Upload progress callback
        """
        self.target = target
        self.console = console or Console()
        self.gate = ConfirmationGate(target.confirm, assume_yes, interactive, self.console)
        self.matcher = PreserveMatcher(target.preserve)
        self._remote = remote
        self.progress = progress
        self.logger = logging.getLogger(self.__class__.__name__)

    def _create_remote(self) -> RemoteFS:
        if self._remote is not None:
            return self._remote
        return RemoteFSFactory.create(self.target)

    def _reconciler(self, remote: RemoteFS, dry_run: bool) -> Reconciler:
        return Reconciler(
            remote,
            self.matcher,
            concurrency=self.target.concurrency,
            dry_run=dry_run,
            console=self.console,
            progress=self.progress,
        )

    def _is_shell(self, remote: RemoteFS) -> bool:
        return self.target.supports_snapshots and isinstance(remote, ShellRemoteFS)

    def _deploy_rows(self) -> List[Tuple[str, str]]:
        rows = []
        if self.target.supports_snapshots:
            rows.append(("Backup", posixpath.join(
                self.target.backup_dir or "",
                f"{self.target.backup_prefix}-<timestamp>.tar.gz (keep {self.target.backup_retain})",
            )))
            rows.append(("Rollback", "on health check failure"
                         if self.target.rollback.rollback_on_fail else "disabled"))
        rows.append(("Health check", self.target.healthcheck.describe()))
        return rows

    def _preview(self, action: str, release: LocalReleaseTree, dry_run: bool,
                 extra: List[Tuple[str, str]]) -> DeployPreview:
        return DeployPreview(
            action=action,
            transport=self.target.transport.value,
            target=self.target.get_display_info(),
            webroot=self.target.webroot,
            artifact=str(release.archive),
            artifact_size=release.archive_size,
            local_files=len(release.files),
            preserve=list(self.matcher.rules),
            dry_run=dry_run,
            extra=extra,
        )

    def _new_result(self, cls, artifact: Path, dry_run: bool):
        return cls(
            transport=self.target.transport.value,
            target=self.target.get_display_info(),
            webroot=self.target.webroot,
            artifact=str(artifact),
            dry_run=dry_run,
        )

    def _hooks(self, remote: RemoteFS) -> HookRunner:
        shell = remote.shell if isinstance(remote, ShellRemoteFS) else None
        return HookRunner(self.target.hooks, shell, self.console)

    async def _chown(self, remote: RemoteFS, result: DeployResult, dry_run: bool) -> None:
        owner = self.target.chown
        if not owner or not self._is_shell(remote):
            return
        if dry_run:
            self.console.print(f"[yellow]Would chown[/yellow] -R {owner} {remote.root}")
            return
        try:
            outcome = await remote.shell.run(f"chown -R {q(owner)} {q(remote.root)}", check=False)
            ok, message = outcome.ok, outcome.stderr.strip()
        except TransportError as e:
            ok, message = False, str(e)
        if not ok:
            self.logger.warning("chown %s %s skipped: %s", owner, remote.root, message)
            result.add_warning("chown", remote.root, message or "chown failed")

    @staticmethod
    def _absorb(result: DeployResult, reconcile: ReconcileResult) -> None:
        result.reconcile = reconcile
        result.warnings.extend(reconcile.warnings)

    async def deploy(self, artifact: Path, dry_run: bool = False) -> DeployResult:
        """
        Deploy a release archive to the target webroot

        Args:
            artifact: Release zip
            dry_run: Plan and print only; no mutating remote call is made

        Returns:
            DeployResult; a failed health check is an outcome, not an exception

        Raises:
            ConfigError, ConsentError, TransportError, BackupError, RollbackError,
            HookError (strict hooks only; a failing pre hook aborts before any change)
        """
        result = self._new_result(DeployResult, artifact, dry_run)

        with LocalReleaseTree.extract(artifact) as release:
            if not release.files:
                raise ArtifactError(f"Release archive is empty: {artifact}")
            result.local_files = len(release.files)

            self.gate.confirm(self._preview("deploy", release, dry_run, self._deploy_rows()))

            async with self._create_remote() as remote:
                hooks = self._hooks(remote)
                await hooks.run(HOOK_PRE, result, dry_run)
                if self._is_shell(remote):
                    await self._deploy_with_snapshot(remote, release, result, dry_run)
                else:
                    await self._deploy_in_place(remote, release, result, dry_run)
                await hooks.run(HOOK_POST, result, dry_run)

        return result

    async def _deploy_in_place(self, remote: RemoteFS, release: LocalReleaseTree,
                               result: DeployResult, dry_run: bool) -> None:
        reconciler = self._reconciler(remote, dry_run)
        self._absorb(result, await reconciler.reconcile(release.files, release.root))

        if dry_run:
            result.complete(OperationStatus.DRY_RUN)
            return

        if self.target.healthcheck.enabled:
            result.health = await HealthChecker(self.target.healthcheck).check()

        if result.health_failed:
            result.message = f"Health check failed: {result.health.detail} (no rollback on {self.target.transport.value})"
            result.complete(OperationStatus.FAILED)
        else:
            result.message = "Deployment completed"
            result.complete(OperationStatus.SUCCESS)

    async def _deploy_with_snapshot(self, remote: ShellRemoteFS, release: LocalReleaseTree,
                                    result: DeployResult, dry_run: bool) -> None:
        target = self.target
        ctx = DeployContext.create(target.webroot)
        reconciler = self._reconciler(remote, dry_run)

        if dry_run:
            await self._simulate_snapshot_deploy(remote, reconciler, release, result, ctx)
            return

        backups = BackupManager(remote.shell, target.backup_dir, target.backup_prefix, target.backup_retain)
        controller = RollbackController(
            remote.shell, backups, self.matcher.rules, target.rollback, work_dir=remote.work_dir,
        )

        result.backup_path = await controller.backup(ctx, result)
        if result.backup_path:
            self.console.print(f"{EMOJI_SUCCESS} Backup: {result.backup_path}")

        # From the rename on, any failure (including cancellation) must swap the live tree back
        try:
            await controller.snapshot(ctx)
            tree = await remote.list_tree()
            self._absorb(result, await reconciler.reconcile(release.files, release.root, tree))
        except BaseException as e:
            if target.rollback.rollback_on_fail and ctx.snapshot_taken:
                self.console.print(f"{EMOJI_ERROR} Deploy interrupted ({e.__class__.__name__}), "
                                   f"restoring pre-deploy snapshot")
                await controller.rollback(ctx, result)
            result.rollback_state = ctx.state.value
            raise

        await self._chown(remote, result, dry_run=False)
        controller.mark_reconciled(ctx)
        result.pre_snapshot = ctx.pre_dir if ctx.snapshot_taken else None

        health = await HealthChecker(target.healthcheck).check()
        result.health = health
        controller.mark_health_checked(ctx, health)

        if health.passed:
            await controller.cleanup(ctx, result)
            if ctx.snapshot_taken and not target.rollback.keep_pre_snapshot:
                result.pre_snapshot = None
            result.message = "Deployment completed"
            result.complete(OperationStatus.SUCCESS)
        elif target.rollback.rollback_on_fail:
            self.console.print(f"{EMOJI_ERROR} Health check failed: {health.detail}")
            await controller.rollback(ctx, result)
            result.pre_snapshot = None
            result.failed_snapshot = ctx.failed_dir if target.rollback.keep_failed else None
            result.message = f"Health check failed, rolled back: {health.detail}"
            result.complete(OperationStatus.ROLLED_BACK)
        else:
            warning = result.add_warning(
                "healthcheck", target.webroot,
                f"rollback disabled; pre-deploy snapshot left at {ctx.pre_dir}",
            )
            self.console.print(f"{EMOJI_WARNING} {warning}")
            result.message = f"Health check failed: {health.detail}"
            result.complete(OperationStatus.FAILED)

        result.rollback_state = ctx.state.value

    async def _simulate_snapshot_deploy(self, remote: ShellRemoteFS, reconciler: Reconciler,
                                        release: LocalReleaseTree, result: DeployResult,
                                        ctx: DeployContext) -> None:
        target = self.target
        backups = BackupManager(remote.shell, target.backup_dir, target.backup_prefix, target.backup_retain)
        self.console.print(f"[yellow]Would back up[/yellow] {target.webroot} "
                           f"to {backups.backup_path(backups.backup_name())}")
        self.console.print(f"[yellow]Would snapshot[/yellow] {target.webroot} to {ctx.pre_dir}")

        # After the snapshot the fresh webroot only holds the carried-over preserved paths
        live = await remote.list_tree()
        simulated = RemoteTree(
            files=[f for f in live.files if self.matcher.is_preserved(f.rel)],
            dirs=[d for d in live.dirs if self.matcher.is_preserved_dir(d)],
        )
        self._absorb(result, await reconciler.reconcile(release.files, release.root, simulated))
        await self._chown(remote, result, dry_run=True)
        result.rollback_state = ctx.state.value
        result.complete(OperationStatus.DRY_RUN)

    async def restore(self,
                      backup: Optional[Path] = None,
                      backup_name: Optional[str] = None,
                      dry_run: bool = False) -> RestoreResult:
        """
        Reconcile the webroot against a backup archive

        The archive is a local file, or the exact-named / newest matching
        backup in the remote backup directory. No backup or snapshot is
        taken for a restore.

        Raises:
            ConfigError, ArtifactError, ConsentError, TransportError
        """
        if not dry_run:
            # Fail fast on missing consent before any connection
            self.gate.needs_prompt()

        if backup is not None:
            result = self._new_result(RestoreResult, backup, dry_run)
            result.source = str(backup)
            with LocalReleaseTree.extract(backup, infer_root=True,
                                          webroot_name=self.target.webroot_name) as release:
                self.gate.confirm(self._preview("restore", release, dry_run,
                                                [("Backup", str(backup))]))
                async with self._create_remote() as remote:
                    await self._restore_from(remote, release, result, dry_run)
            return result

        async with self._create_remote() as remote:
            name = await self._select_remote_backup(remote, backup_name)
            remote_path = posixpath.join(self.target.backup_dir, name)
            result = self._new_result(RestoreResult, remote_path, dry_run)
            result.source = remote_path

            download_dir = Path(tempfile.mkdtemp(prefix="site-deploy-backup-"))
            try:
                local_copy = download_dir / name
                self.console.print(f"Downloading {remote_path}")
                await remote.get(remote_path, local_copy)
                with LocalReleaseTree.extract(local_copy, infer_root=True,
                                              webroot_name=self.target.webroot_name) as release:
                    self.gate.confirm(self._preview("restore", release, dry_run,
                                                    [("Backup", remote_path)]))
                    await self._restore_from(remote, release, result, dry_run)
            finally:
                shutil.rmtree(download_dir, ignore_errors=True)
        return result

    async def _select_remote_backup(self, remote: RemoteFS, name: Optional[str]) -> str:
        if not self.target.backup_dir:
            raise ArtifactError("No backup directory configured; pass --backup-dir or --backup")
        if self._is_shell(remote):
            names = await BackupManager(remote.shell, self.target.backup_dir,
                                        self.target.backup_prefix).list_backups()
        else:
            names = await remote.list_entries(self.target.backup_dir)
        return select_backup(names, self.target.backup_prefix or "", name)

    async def _restore_from(self, remote: RemoteFS, release: LocalReleaseTree,
                            result: RestoreResult, dry_run: bool) -> None:
        if not release.files:
            raise ArtifactError(f"Backup contains no files: {release.archive}")
        result.local_files = len(release.files)

        if not dry_run:
            await remote.ensure_dir(".")
        reconciler = self._reconciler(remote, dry_run)
        self._absorb(result, await reconciler.reconcile(release.files, release.root))
        await self._chown(remote, result, dry_run)
        result.message = "Restore completed" if not dry_run else "Dry run"
        result.complete(OperationStatus.DRY_RUN if dry_run else OperationStatus.SUCCESS)
