"""Snapshot and rollback state machine for the shell transport"""

import logging
import posixpath
import shlex
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from .backup_manager import BackupManager
from .preserve import normalize_rel
from ..api.exceptions import DeployError, RollbackError, TransportError
from ..constants import BACKUP_TIMESTAMP_FORMAT, PRE_SNAPSHOT_SUFFIX, FAILED_SNAPSHOT_SUFFIX
from ..models.config import RollbackPolicy
from ..models.result import HealthCheckResult, Result
from ..remote.shell import RemoteShell

q = shlex.quote


class RollbackState(Enum):
    """Deploy states on a transport that can snapshot"""
    PRE_DEPLOY = "pre_deploy"
    BACKED_UP = "backed_up"
    RECONCILED = "reconciled"
    HEALTH_CHECKED = "health_checked"
    CLEANED_UP = "cleaned_up"
    ROLLED_BACK = "rolled_back"


_TRANSITIONS = {
    RollbackState.PRE_DEPLOY: {RollbackState.BACKED_UP},
    # A reconciliation failure after the snapshot swaps straight back
    RollbackState.BACKED_UP: {RollbackState.RECONCILED, RollbackState.ROLLED_BACK},
    RollbackState.RECONCILED: {RollbackState.HEALTH_CHECKED},
    RollbackState.HEALTH_CHECKED: {RollbackState.CLEANED_UP, RollbackState.ROLLED_BACK},
    RollbackState.CLEANED_UP: set(),
    RollbackState.ROLLED_BACK: set(),
}


@dataclass
class DeployContext:
    """Per-run state handed through the deploy call chain"""

    run_id: str
    webroot: str
    pre_dir: str
    failed_dir: str
    backup_path: Optional[str] = None
    snapshot_taken: bool = False
    state: RollbackState = RollbackState.PRE_DEPLOY
    history: List[RollbackState] = field(default_factory=list)

    @classmethod
    def create(cls, webroot: str, run_id: Optional[str] = None) -> 'DeployContext':
        run_id = run_id or f"{datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)}-{uuid.uuid4().hex[:6]}"
        webroot = webroot.rstrip("/")
        parent = posixpath.dirname(webroot) or "/"
        name = posixpath.basename(webroot)
        return cls(
            run_id=run_id,
            webroot=webroot,
            pre_dir=posixpath.join(parent, f"{name}{PRE_SNAPSHOT_SUFFIX}{run_id}"),
            failed_dir=posixpath.join(parent, f"{name}{FAILED_SNAPSHOT_SUFFIX}{run_id}"),
        )


class RollbackController:
    """Drives PRE_DEPLOY -> BACKED_UP -> RECONCILED -> HEALTH_CHECKED -> end

    Every change of the active webroot is a rename issued as one remote
    command; the previous tree is never copied back.
    """

    def __init__(self,
                 shell: RemoteShell,
                 backups: BackupManager,
                 preserve: Sequence[str],
                 policy: RollbackPolicy,
                 work_dir: Optional[str] = None):
        self.shell = shell
        self.backups = backups
        self.preserve = [normalize_rel(rule) for rule in preserve]
        self.policy = policy
        self.work_dir = work_dir
        self.logger = logging.getLogger(self.__class__.__name__)

    def _advance(self, ctx: DeployContext, state: RollbackState) -> None:
        if state not in _TRANSITIONS[ctx.state]:
            raise DeployError(f"Illegal deploy state transition: {ctx.state.value} -> {state.value}")
        self.logger.debug("%s -> %s", ctx.state.value, state.value)
        ctx.history.append(ctx.state)
        ctx.state = state

    async def _exists(self, path: str) -> bool:
        return (await self.shell.run(f"test -d {q(path)}", check=False)).ok

    async def backup(self, ctx: DeployContext, result: Optional[Result] = None) -> Optional[str]:
        """
        Archive the live webroot and prune old archives

        A missing webroot (first deploy) has nothing to protect and is not
        an error.

        Raises:
            BackupError: If the archive cannot be created
        """
        if await self._exists(ctx.webroot):
            ctx.backup_path = await self.backups.create(ctx.webroot)
            await self.backups.prune(result)
        else:
            self.logger.warning("Webroot %s does not exist yet; nothing to back up", ctx.webroot)
        self._advance(ctx, RollbackState.BACKED_UP)
        return ctx.backup_path

    def _carry_script(self, ctx: DeployContext) -> str:
        steps = []
        for rule in self.preserve:
            rel = rule.rstrip("/")
            if not rel or ".." in rel.split("/"):
                continue
            src = posixpath.join(ctx.pre_dir, rel)
            dst = posixpath.join(ctx.webroot, rel)
            steps.append(
                f"if [ -e {q(src)} ]; then mkdir -p {q(posixpath.dirname(dst))}; "
                f"cp -a {q(src)} {q(dst)}; fi"
            )
        return "set -e; " + "; ".join(steps) if steps else ""

    async def snapshot(self, ctx: DeployContext) -> None:
        """
        Rename the live webroot aside and start an empty one

        Preserved paths are copied from the snapshot into the new webroot so
        live user content stays online while the snapshot stays untouched.

        Raises:
            TransportError: If the rename or the copy fails
        """
        if ctx.state != RollbackState.BACKED_UP:
            raise DeployError(f"Snapshot requires state backed_up, not {ctx.state.value}")

        if await self._exists(ctx.webroot):
            if await self._exists(ctx.pre_dir):
                raise DeployError(f"Snapshot path already exists: {ctx.pre_dir}")
            try:
                # -T: never move into an existing directory of the same name
                await self.shell.run(f"mv -T {q(ctx.webroot)} {q(ctx.pre_dir)} && mkdir -p {q(ctx.webroot)}")
            except TransportError:
                ctx.snapshot_taken = await self._exists(ctx.pre_dir)
                raise
            ctx.snapshot_taken = True
            self.logger.info("Snapshot: %s -> %s", ctx.webroot, ctx.pre_dir)

            script = self._carry_script(ctx)
            if script:
                await self.shell.run(f"bash -c {q(script)}")
        else:
            await self.shell.run(f"mkdir -p {q(ctx.webroot)}")

    def mark_reconciled(self, ctx: DeployContext) -> None:
        self._advance(ctx, RollbackState.RECONCILED)

    def mark_health_checked(self, ctx: DeployContext, health: HealthCheckResult) -> None:
        self._advance(ctx, RollbackState.HEALTH_CHECKED)
        self.logger.info("Health check %s: %s", "passed" if health.passed else "failed", health.detail)

    async def _remove(self, path: str, result: Optional[Result], what: str) -> None:
        try:
            outcome = await self.shell.run(f"rm -rf -- {q(path)}", check=False)
            ok, message = outcome.ok, outcome.stderr.strip()
        except TransportError as e:
            ok, message = False, str(e)
        if not ok:
            self.logger.warning("Could not remove %s %s: %s", what, path, message)
            if result is not None:
                result.add_warning(f"remove-{what}", path, message or "rm failed")

    async def cleanup(self, ctx: DeployContext, result: Optional[Result] = None) -> None:
        """Success path: drop the work dir and, unless kept, the pre-deploy snapshot"""
        self._advance(ctx, RollbackState.CLEANED_UP)
        if self.work_dir:
            await self._remove(self.work_dir, result, "work-dir")
        if ctx.snapshot_taken and not self.policy.keep_pre_snapshot:
            await self._remove(ctx.pre_dir, result, "pre-snapshot")

    async def rollback(self, ctx: DeployContext, result: Optional[Result] = None) -> None:
        """
        Swap the new webroot aside and the snapshot back in

        Raises:
            RollbackError: If the rename swap fails
        """
        move_aside = f"{{ [ ! -e {q(ctx.webroot)} ] || mv -T {q(ctx.webroot)} {q(ctx.failed_dir)}; }}"
        if ctx.snapshot_taken:
            command = f"{move_aside} && mv -T {q(ctx.pre_dir)} {q(ctx.webroot)}"
        else:
            command = move_aside

        try:
            await self.shell.run(command)
        except TransportError as e:
            raise RollbackError(
                f"Rollback failed, manual intervention required "
                f"(webroot {ctx.webroot}, snapshot {ctx.pre_dir}): {e}"
            )
        self._advance(ctx, RollbackState.ROLLED_BACK)
        self.logger.warning("Rolled back: %s restored, failed tree at %s", ctx.webroot, ctx.failed_dir)

        if self.work_dir:
            await self._remove(self.work_dir, result, "work-dir")
        if not self.policy.keep_failed:
            await self._remove(ctx.failed_dir, result, "failed-tree")
