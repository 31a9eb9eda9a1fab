"""Tests for the snapshot/rollback deploy flow over a local shell"""

import asyncio
import io
from pathlib import Path

import pytest
from rich.console import Console

from site_deploy.api.exceptions import DeployError, TransportError
from site_deploy.constants import TransportType
from site_deploy.core.backup_manager import BackupManager
from site_deploy.core.rollback import DeployContext, RollbackController, RollbackState
from site_deploy.models.config import DeployTarget, RollbackPolicy
from site_deploy.models.result import OperationStatus
from site_deploy.remote.shell import ShellRemoteFS
from site_deploy.services.deploy_service import DeploymentOrchestrator

from conftest import make_zip, read_tree, write_tree

LIVE = {
    "index.html": b"<h1>v1</h1>",
    "stale.txt": b"only in v1",
    "css/site.css": b"body{}",
    "uploads/a.jpg": b"user upload",
}

RELEASE = {
    "index.html": b"<h1>v2</h1>",
    "js/app.js": b"console.log(2)",
    "uploads/a.jpg": b"placeholder from build",
    "uploads/b.jpg": b"new default image",
}


@pytest.fixture
def layout(tmp_path):
    webroot = tmp_path / "web" / "example.com" / "public_html"
    return {
        "webroot": webroot,
        "backups": tmp_path / "backups",
        "tmp": tmp_path / "tmp",
        "zip": make_zip(tmp_path / "site.zip", RELEASE),
    }


def make_target(layout, **settings):
    data = {
        "host": "localhost",
        "user": "deploy",
        "webroot": str(layout["webroot"]),
        "domain": "example.com",
        "backup_dir": str(layout["backups"]),
        "remote_tmp": str(layout["tmp"]),
        "preserve": "uploads/",
        "confirm": "never",
    }
    data.update(settings)
    return DeployTarget.from_dict(TransportType.SHELL, data)


def deploy(layout, shell, dry_run=False, **settings):
    target = make_target(layout, **settings)
    remote = ShellRemoteFS(shell, target.webroot, remote_tmp=target.remote_tmp)
    orchestrator = DeploymentOrchestrator(
        target, remote=remote, console=Console(file=io.StringIO(), width=200),
    )
    return asyncio.run(orchestrator.deploy(layout["zip"], dry_run=dry_run)), remote


class TestHealthyDeploy:
    """Health check passes"""

    def test_webroot_matches_release_and_keeps_uploads(self, layout, local_shell):
        write_tree(layout["webroot"], LIVE)

        result, remote = deploy(layout, local_shell, healthcheck={"command": "true"})

        assert result.status == OperationStatus.SUCCESS
        assert result.rollback_state == RollbackState.CLEANED_UP.value
        assert read_tree(layout["webroot"]) == {
            "index.html": b"<h1>v2</h1>",
            "js/app.js": b"console.log(2)",
            "uploads/a.jpg": b"user upload",
            "uploads/b.jpg": b"new default image",
        }
        assert result.reconcile.merged == 1

    def test_backup_and_pre_snapshot_kept(self, layout, local_shell):
        write_tree(layout["webroot"], LIVE)

        result, remote = deploy(layout, local_shell)

        assert result.backup_path and Path(result.backup_path).is_file()
        assert Path(result.pre_snapshot).is_dir()
        assert read_tree(Path(result.pre_snapshot)) == LIVE
        assert not Path(remote.work_dir).exists()

    def test_pre_snapshot_removed_when_not_kept(self, layout, local_shell):
        write_tree(layout["webroot"], LIVE)

        result, _ = deploy(layout, local_shell, keep_pre_snapshot=False)

        assert result.status == OperationStatus.SUCCESS
        assert result.pre_snapshot is None
        assert not list(layout["webroot"].parent.glob("public_html.pre-*"))

    def test_first_deploy_without_webroot(self, layout, local_shell):
        result, _ = deploy(layout, local_shell)

        assert result.status == OperationStatus.SUCCESS
        assert result.backup_path is None
        assert read_tree(layout["webroot"]) == RELEASE


class TestFailedHealthCheck:
    """Health check fails"""

    def test_rollback_restores_exact_previous_content(self, layout, local_shell):
        write_tree(layout["webroot"], LIVE)
        before = read_tree(layout["webroot"])

        result, _ = deploy(layout, local_shell, healthcheck={"command": "exit 3"})

        assert result.status == OperationStatus.ROLLED_BACK
        assert result.health_failed
        assert result.rollback_state == RollbackState.ROLLED_BACK.value
        assert read_tree(layout["webroot"]) == before
        assert read_tree(Path(result.failed_snapshot))["index.html"] == b"<h1>v2</h1>"
        assert not list(layout["webroot"].parent.glob("public_html.pre-*"))

    def test_failed_tree_removed_when_not_kept(self, layout, local_shell):
        write_tree(layout["webroot"], LIVE)

        result, _ = deploy(layout, local_shell, healthcheck={"command": "false"}, keep_failed=False)

        assert result.status == OperationStatus.ROLLED_BACK
        assert result.failed_snapshot is None
        assert not list(layout["webroot"].parent.glob("public_html.failed-*"))

    def test_no_rollback_leaves_new_tree_and_snapshot(self, layout, local_shell):
        write_tree(layout["webroot"], LIVE)

        result, _ = deploy(layout, local_shell, healthcheck={"command": "false"}, rollback_on_fail=False)

        assert result.status == OperationStatus.FAILED
        assert result.rollback_state == RollbackState.HEALTH_CHECKED.value
        assert read_tree(layout["webroot"])["index.html"] == b"<h1>v2</h1>"
        assert read_tree(Path(result.pre_snapshot)) == LIVE
        assert any(w.operation == "healthcheck" for w in result.warnings)

    def test_reconcile_failure_swaps_snapshot_back(self, layout, local_shell):
        write_tree(layout["webroot"], LIVE)
        before = read_tree(layout["webroot"])
        local_shell.fail_on.append("tar -xzf")

        with pytest.raises(TransportError):
            deploy(layout, local_shell)

        assert read_tree(layout["webroot"]) == before


class TestInterruptedDeploy:
    """Failures that are not transport errors still swap the snapshot back"""

    def test_local_disk_full_while_packing_uploads(self, layout, local_shell, monkeypatch):
        write_tree(layout["webroot"], LIVE)
        before = read_tree(layout["webroot"])

        def no_space(items, archive_path):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr("site_deploy.remote.shell._build_batch_archive", no_space)

        with pytest.raises(TransportError):
            deploy(layout, local_shell)

        assert read_tree(layout["webroot"]) == before
        assert not list(layout["webroot"].parent.glob("public_html.pre-*"))

    @pytest.mark.parametrize("error", [RuntimeError("unexpected"), asyncio.CancelledError()])
    def test_any_exception_during_upload(self, layout, local_shell, monkeypatch, error):
        write_tree(layout["webroot"], LIVE)
        before = read_tree(layout["webroot"])

        async def interrupted(self, items, concurrency=4, callback=None):
            raise error

        monkeypatch.setattr(ShellRemoteFS, "put_many", interrupted)

        with pytest.raises(type(error)):
            deploy(layout, local_shell)

        assert read_tree(layout["webroot"]) == before

    def test_no_swap_when_rollback_disabled(self, layout, local_shell):
        write_tree(layout["webroot"], LIVE)
        local_shell.fail_on.append("tar -xzf")

        with pytest.raises(TransportError):
            deploy(layout, local_shell, rollback_on_fail=False)

        snapshots = list(layout["webroot"].parent.glob("public_html.pre-*"))
        assert len(snapshots) == 1
        assert read_tree(snapshots[0]) == LIVE


class TestDryRun:
    """Dry runs touch nothing"""

    def test_no_backup_no_rename(self, layout, local_shell):
        write_tree(layout["webroot"], LIVE)

        result, _ = deploy(layout, local_shell, dry_run=True)

        assert result.status == OperationStatus.DRY_RUN
        assert read_tree(layout["webroot"]) == LIVE
        assert not layout["backups"].exists()
        assert not any(cmd.startswith("mv ") for cmd in local_shell.commands)
        # The simulated post-snapshot tree holds only preserved files
        assert result.plan.to_delete == []
        assert result.plan.to_merge_only == ["uploads/b.jpg"]


class TestStateMachine:
    """Transition rules"""

    def make_controller(self, tmp_path, shell):
        backups = BackupManager(shell, str(tmp_path / "backups"), "site")
        return RollbackController(shell, backups, ["uploads/"], RollbackPolicy())

    def test_illegal_transition_rejected(self, tmp_path, local_shell):
        controller = self.make_controller(tmp_path, local_shell)
        ctx = DeployContext.create(str(tmp_path / "public_html"), run_id="1")

        with pytest.raises(DeployError):
            controller.mark_reconciled(ctx)

    def test_snapshot_requires_backed_up(self, tmp_path, local_shell):
        controller = self.make_controller(tmp_path, local_shell)
        ctx = DeployContext.create(str(tmp_path / "public_html"), run_id="1")

        with pytest.raises(DeployError):
            asyncio.run(controller.snapshot(ctx))

    def test_context_paths(self):
        ctx = DeployContext.create("/home/u/web/example.com/public_html/", run_id="20250101-000000")
        assert ctx.webroot == "/home/u/web/example.com/public_html"
        assert ctx.pre_dir == "/home/u/web/example.com/public_html.pre-20250101-000000"
        assert ctx.failed_dir == "/home/u/web/example.com/public_html.failed-20250101-000000"

    def test_run_ids_are_unique_within_a_second(self):
        first = DeployContext.create("/srv/public_html")
        second = DeployContext.create("/srv/public_html")
        assert first.run_id != second.run_id
        assert first.pre_dir != second.pre_dir

    def test_snapshot_refuses_existing_pre_dir(self, tmp_path, local_shell):
        webroot = write_tree(tmp_path / "public_html", {"index.html": b"live"})
        controller = self.make_controller(tmp_path, local_shell)
        ctx = DeployContext.create(str(webroot), run_id="1")
        write_tree(Path(ctx.pre_dir), {"index.html": b"older run"})
        asyncio.run(controller.backup(ctx))

        with pytest.raises(DeployError):
            asyncio.run(controller.snapshot(ctx))

        assert not ctx.snapshot_taken
        assert read_tree(webroot) == {"index.html": b"live"}
        assert read_tree(Path(ctx.pre_dir)) == {"index.html": b"older run"}

    def test_back_to_back_deploys_keep_separate_snapshots(self, layout, local_shell):
        write_tree(layout["webroot"], LIVE)

        first, _ = deploy(layout, local_shell)
        second, _ = deploy(layout, local_shell)

        assert first.pre_snapshot != second.pre_snapshot
        assert read_tree(Path(first.pre_snapshot)) == LIVE
        assert read_tree(Path(second.pre_snapshot))["index.html"] == b"<h1>v2</h1>"
        assert first.backup_path != second.backup_path
