"""CLI tests through click's CliRunner with an in-memory remote"""

import textwrap
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from site_deploy.cli.main import cli

from conftest import FakeRemoteFS, make_tar, make_zip, write_tree

FACTORY = "site_deploy.services.deploy_service.RemoteFSFactory.create"
HOOKS = "      hooks:\n        pre_local: exit 3\n"


@pytest.fixture
def project(tmp_path):
    config = tmp_path / ".site-deploy.yaml"
    config.write_text(textwrap.dedent("""\
        deploy:
          default: sftp
          targets:
            sftp:
              host: sftp.example.com
              user: web
              domain: example.com
              preserve: "uploads/"
        """))
    archive = make_zip(tmp_path / "site.zip", {"index.html": b"v2", "uploads/new.jpg": b"n"})
    return {"config": str(config), "zip": str(archive), "root": tmp_path}


@pytest.fixture
def remote():
    return FakeRemoteFS({"index.html": b"v1", "old.html": b"o", "uploads/a.jpg": b"a"})


def invoke(*args):
    return CliRunner().invoke(cli, ["-q", *args])


class TestUpload:
    """upload and upload:<transport>"""

    def test_dry_run_prints_plan_and_changes_nothing(self, project, remote):
        with patch(FACTORY, return_value=remote):
            result = invoke("upload:sftp", "--config", project["config"], "--zip", project["zip"], "--dry-run")

        assert result.exit_code == 0, result.output
        assert "- rm old.html" in result.output
        assert "+ up index.html" in result.output
        assert "+ merge uploads/new.jpg" in result.output
        assert remote.mutations == []

    def test_transport_argument(self, project, remote):
        with patch(FACTORY, return_value=remote):
            result = invoke("upload", "sftp", "--config", project["config"], "--zip", project["zip"], "--dry-run")
        assert result.exit_code == 0, result.output

    def test_non_interactive_without_consent_fails_before_connecting(self, project, remote):
        with patch(FACTORY, return_value=remote) as factory:
            result = invoke("upload:sftp", "--config", project["config"], "--zip", project["zip"])

        assert result.exit_code == 1
        assert "--yes" in result.output
        factory.assert_not_called()
        assert remote.calls == []

    def test_yes_deploys(self, project, remote):
        with patch(FACTORY, return_value=remote):
            result = invoke("upload:sftp", "--config", project["config"], "--zip", project["zip"], "--yes")

        assert result.exit_code == 0, result.output
        assert remote.files == {"index.html": b"v2", "uploads/a.jpg": b"a", "uploads/new.jpg": b"n"}

    def test_env_consent(self, project, remote, monkeypatch):
        monkeypatch.setenv("SITE_DEPLOY_YES", "1")
        with patch(FACTORY, return_value=remote):
            result = invoke("upload:sftp", "--config", project["config"], "--zip", project["zip"])
        assert result.exit_code == 0, result.output

    def test_failed_health_check_exits_2(self, project, remote):
        with patch(FACTORY, return_value=remote):
            result = invoke("upload:sftp", "--config", project["config"], "--zip", project["zip"],
                            "--force", "--healthcheck-cmd", "false")
        assert result.exit_code == 2

    def test_config_error(self, project):
        result = invoke("upload:ftp", "--config", project["config"], "--zip", project["zip"], "--yes")
        assert result.exit_code == 1
        assert "SD001" in result.output

    def test_missing_artifact(self, project):
        result = invoke("upload:sftp", "--config", project["config"], "--zip", str(project["root"] / "nope.zip"))
        assert result.exit_code == 1
        assert "SD006" in result.output

    def test_json_output(self, project, remote):
        with patch(FACTORY, return_value=remote):
            result = invoke("upload:sftp", "--config", project["config"], "--zip", project["zip"],
                            "--yes", "--output", "json")

        assert result.exit_code == 0, result.output
        assert '"status": "success"' in result.output
        assert '"deleted": 1' in result.output

    def test_failing_hook_aborts(self, project, remote):
        hooked = project["root"] / "hooked.yaml"
        hooked.write_text(open(project["config"]).read() + HOOKS)

        with patch(FACTORY, return_value=remote):
            result = invoke("upload:sftp", "--config", str(hooked), "--zip", project["zip"], "--yes")

        assert result.exit_code == 1
        assert "SD009" in result.output
        assert remote.mutations == []

    def test_no_hooks_skips_them(self, project, remote):
        hooked = project["root"] / "hooked.yaml"
        hooked.write_text(open(project["config"]).read() + HOOKS)

        with patch(FACTORY, return_value=remote):
            result = invoke("upload:sftp", "--config", str(hooked), "--zip", project["zip"],
                            "--yes", "--no-hooks")

        assert result.exit_code == 0, result.output
        assert remote.files["index.html"] == b"v2"


class TestRestore:
    """restore from a local archive"""

    def test_restore_local_backup(self, project, remote):
        backup = make_zip(project["root"] / "backup.zip", {"public_html/index.html": b"restored"})
        with patch(FACTORY, return_value=remote):
            result = invoke("restore:sftp", "--config", project["config"], "--backup", str(backup), "--yes")

        assert result.exit_code == 0, result.output
        assert remote.files == {"index.html": b"restored", "uploads/a.jpg": b"a"}

    def test_restore_requires_consent(self, project, remote):
        backup = make_zip(project["root"] / "backup.zip", {"index.html": b"x"})
        with patch(FACTORY, return_value=remote) as factory:
            result = invoke("restore", "sftp", "--config", project["config"], "--backup", str(backup))

        assert result.exit_code == 1
        factory.assert_not_called()

    def test_restore_named_remote_backup(self, project, remote):
        snapshot = write_tree(project["root"] / "snap" / "public_html", {"index.html": b"from backup"})
        archive = make_tar(project["root"] / "backup.tar.gz", snapshot, "public_html")
        backups = "/home/web/backups"
        remote.files[f"{backups}/example.com-public_html-20250101-120000.tar.gz"] = archive.read_bytes()
        remote.files[f"{backups}/example.com-public_html-20250301-120000.tar.gz"] = b"newest, not chosen"

        with patch(FACTORY, return_value=remote):
            result = invoke("restore:sftp", "--config", project["config"], "--backup-dir", backups,
                            "--backup-name", "example.com-public_html-20250101-120000.tar.gz", "--yes")

        assert result.exit_code == 0, result.output
        assert remote.files["index.html"] == b"from backup"
        assert "old.html" not in remote.files
        assert remote.files["uploads/a.jpg"] == b"a"


class TestHelp:
    """Command registration"""

    def test_commands_listed(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("upload", "upload:shell", "upload:sftp", "upload:ftp", "restore", "restore:shell"):
            assert name in result.output
