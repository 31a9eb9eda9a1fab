"""Restores from the remote backup directory over the shell transport"""

import asyncio
import io
from datetime import datetime

import pytest
from rich.console import Console

from site_deploy.api.exceptions import ArtifactError
from site_deploy.constants import TransportType
from site_deploy.core.backup_manager import BackupManager
from site_deploy.models.config import DeployTarget
from site_deploy.models.result import OperationStatus
from site_deploy.remote.shell import ShellRemoteFS
from site_deploy.services.deploy_service import DeploymentOrchestrator

from conftest import read_tree, write_tree

OLDER = {"index.html": b"v1", "about.html": b"about v1", "uploads/a.jpg": b"upload"}
NEWER = {"index.html": b"v2", "uploads/a.jpg": b"upload"}
LIVE = {
    "index.html": b"v3 broken",
    "debug.log": b"not in any backup",
    "uploads/a.jpg": b"upload",
    "uploads/since-backup.jpg": b"uploaded after the backup",
}


@pytest.fixture
def site(tmp_path, local_shell):
    """Webroot with two backups taken at different times, then changed again"""
    webroot = tmp_path / "web" / "example.com" / "public_html"
    backups = tmp_path / "backups"
    target = DeployTarget.from_dict(TransportType.SHELL, {
        "host": "localhost",
        "user": "deploy",
        "domain": "example.com",
        "webroot": str(webroot),
        "backup_dir": str(backups),
        "remote_tmp": str(tmp_path / "tmp"),
        "preserve": "uploads/",
        "confirm": "never",
    })
    manager = BackupManager(local_shell, str(backups), target.backup_prefix)

    write_tree(webroot, OLDER)
    older = asyncio.run(manager.create(str(webroot), datetime(2025, 1, 1, 9, 0, 0)))
    for path in list(webroot.rglob("*")):
        if path.is_file():
            path.unlink()
    write_tree(webroot, NEWER)
    newer = asyncio.run(manager.create(str(webroot), datetime(2025, 3, 1, 9, 0, 0)))
    write_tree(webroot, LIVE)

    return {"target": target, "webroot": webroot, "backups": backups,
            "older": older, "newer": newer}


def restore(site, shell, **kwargs):
    target = site["target"]
    remote = ShellRemoteFS(shell, target.webroot, remote_tmp=target.remote_tmp)
    orchestrator = DeploymentOrchestrator(target, remote=remote, console=Console(file=io.StringIO(), width=200))
    return asyncio.run(orchestrator.restore(**kwargs))


class TestRemoteRestore:
    """Newest or named archive from the backup directory"""

    def test_newest_backup_by_default(self, site, local_shell):
        result = restore(site, local_shell)

        assert result.status == OperationStatus.SUCCESS
        assert result.source == site["newer"]
        assert read_tree(site["webroot"]) == {
            "index.html": b"v2",
            "uploads/a.jpg": b"upload",
            "uploads/since-backup.jpg": b"uploaded after the backup",
        }

    def test_exact_backup_name(self, site, local_shell):
        name = site["older"].rsplit("/", 1)[-1]

        result = restore(site, local_shell, backup_name=name)

        assert result.source == site["older"]
        assert read_tree(site["webroot"]) == {
            "index.html": b"v1",
            "about.html": b"about v1",
            "uploads/a.jpg": b"upload",
            "uploads/since-backup.jpg": b"uploaded after the backup",
        }

    def test_unknown_backup_name(self, site, local_shell):
        with pytest.raises(ArtifactError, match="not found"):
            restore(site, local_shell, backup_name="example.com-public_html-19990101-000000.tar.gz")

        assert read_tree(site["webroot"]) == LIVE

    def test_backups_of_other_sites_ignored(self, site, local_shell):
        write_tree(site["backups"], {"other.org-public_html-20300101-000000.tar.gz": b"not ours"})

        result = restore(site, local_shell)

        assert result.source == site["newer"]

    def test_dry_run_changes_nothing(self, site, local_shell):
        result = restore(site, local_shell, dry_run=True)

        assert result.status == OperationStatus.DRY_RUN
        assert read_tree(site["webroot"]) == LIVE

    def test_restore_takes_no_new_backup(self, site, local_shell):
        before = sorted(p.name for p in site["backups"].iterdir())
        restore(site, local_shell)
        assert sorted(p.name for p in site["backups"].iterdir()) == before

    def test_empty_backup_dir(self, site, local_shell):
        for path in site["backups"].iterdir():
            path.unlink()

        with pytest.raises(ArtifactError, match="No backups"):
            restore(site, local_shell)
