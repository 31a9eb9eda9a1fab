"""Tests for the SFTP adapter with a mocked asyncssh session"""

import asyncio
import stat
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import asyncssh
import pytest

from site_deploy.api.exceptions import TransportError
from site_deploy.remote.sftp import SFTPRemoteFS


def entry(name, is_dir=False, size=0, permissions=True):
    mode = (stat.S_IFDIR | 0o755) if is_dir else (stat.S_IFREG | 0o644)
    longname = ("drwxr-xr-x" if is_dir else "-rw-r--r--") + f" 1 u g {size} Jan 01 12:00 {name}"
    return SimpleNamespace(
        filename=name,
        longname=longname,
        attrs=SimpleNamespace(permissions=mode if permissions else None, size=size),
    )


def fake_sftp(listing=None):
    """SFTPClient mock whose readdir output comes from {abs path: [entries or exception]}"""
    listing = listing or {}
    sftp = MagicMock()

    async def readdir(path):
        found = listing.get(path)
        if found is None:
            raise asyncssh.SFTPNoSuchFile(f"No such file: {path}")
        if isinstance(found, Exception):
            raise found
        return found

    sftp.readdir = AsyncMock(side_effect=readdir)
    for name in ("listdir", "makedirs", "put", "get", "remove", "rmdir"):
        setattr(sftp, name, AsyncMock())
    return sftp


def run_with(sftp, coro_factory):
    fs = SFTPRemoteFS("sftp.example.com", "u", "/www")
    conn = MagicMock()
    conn.start_sftp_client = AsyncMock(return_value=sftp)
    conn.wait_closed = AsyncMock()

    async def scenario():
        async with fs:
            return await coro_factory(fs)

    with patch("site_deploy.remote.sftp.connect_ssh", AsyncMock(return_value=conn)):
        return asyncio.run(scenario()), fs


class TestListTree:
    """Recursive readdir walk"""

    def test_walks_subdirectories(self):
        sftp = fake_sftp({
            "/www": [entry("."), entry("..", is_dir=True), entry("index.html", size=12),
                     entry("assets", is_dir=True)],
            "/www/assets": [entry(".", is_dir=True), entry("app.js", size=3),
                            entry("img", is_dir=True)],
            "/www/assets/img": [entry("logo.png", size=7)],
        })

        tree, _ = run_with(sftp, lambda fs: fs.list_tree())

        assert sorted(tree.dirs) == ["assets", "assets/img"]
        assert sorted((f.rel, f.size) for f in tree.files) == [
            ("assets/app.js", 3), ("assets/img/logo.png", 7), ("index.html", 12),
        ]

    def test_unreadable_subtree_is_skipped(self):
        sftp = fake_sftp({
            "/www": [entry("index.html", size=1), entry("private", is_dir=True),
                     entry("gone", is_dir=True)],
            "/www/private": PermissionError("Permission denied"),
        })

        tree, _ = run_with(sftp, lambda fs: fs.list_tree())

        assert sorted(tree.dirs) == ["gone", "private"]
        assert [f.rel for f in tree.files] == ["index.html"]

    def test_missing_root_is_empty(self):
        tree, _ = run_with(fake_sftp(), lambda fs: fs.list_tree())
        assert tree.files == [] and tree.dirs == []

    def test_longname_decides_without_permissions(self):
        sftp = fake_sftp({
            "/www": [entry("css", is_dir=True, permissions=False)],
            "/www/css": [entry("site.css", size=4, permissions=False)],
        })

        tree, _ = run_with(sftp, lambda fs: fs.list_tree())

        assert tree.dirs == ["css"]
        assert [f.rel for f in tree.files] == ["css/site.css"]


class TestWrites:
    """Uploads, directory creation and deletes"""

    def test_put_many_creates_each_directory_once(self, local_release):
        root, rels = local_release({
            "a/1.txt": b"1", "a/2.txt": b"2", "a/3.txt": b"3", "b/4.txt": b"4",
        })
        sftp = fake_sftp()
        items = [(root / rel, rel) for rel in rels]
        progress = []

        count, _ = run_with(sftp, lambda fs: fs.put_many(
            items, concurrency=4, callback=lambda path, done, total: progress.append(done),
        ))

        assert count == 4
        assert sorted(progress) == [1, 2, 3, 4]
        created = sorted(call.args[0] for call in sftp.makedirs.await_args_list)
        assert created == ["/www/a", "/www/b"]
        uploaded = sorted(call.args[1] for call in sftp.put.await_args_list)
        assert uploaded == ["/www/a/1.txt", "/www/a/2.txt", "/www/a/3.txt", "/www/b/4.txt"]

    def test_put_failure_is_transport_error(self, local_release):
        root, _ = local_release({"index.html": b"x"})
        sftp = fake_sftp()
        sftp.put.side_effect = asyncssh.SFTPPermissionDenied("Permission denied")

        with pytest.raises(TransportError, match="index.html"):
            run_with(sftp, lambda fs: fs.put(root / "index.html", "index.html"))

    def test_ensure_dir_failure_is_transport_error(self):
        sftp = fake_sftp()
        sftp.makedirs.side_effect = asyncssh.SFTPFailure("quota exceeded")

        with pytest.raises(TransportError, match="/www/cache"):
            run_with(sftp, lambda fs: fs.ensure_dir("cache"))

    def test_delete_falls_back_to_rmdir(self):
        sftp = fake_sftp()
        sftp.remove.side_effect = asyncssh.SFTPFailure("Is a directory")

        removed, _ = run_with(sftp, lambda fs: fs.delete("old"))

        assert removed is True
        sftp.rmdir.assert_awaited_once_with("/www/old")

    def test_delete_reports_failure(self):
        sftp = fake_sftp()
        sftp.remove.side_effect = asyncssh.SFTPPermissionDenied("Permission denied")
        sftp.rmdir.side_effect = asyncssh.SFTPPermissionDenied("Permission denied")

        removed, _ = run_with(sftp, lambda fs: fs.delete("locked.txt"))

        assert removed is False

    def test_rmdir_forgets_cached_directory(self):
        sftp = fake_sftp()

        async def scenario(fs):
            await fs.ensure_dir("cache")
            await fs.rmdir("cache")
            await fs.ensure_dir("cache")

        run_with(sftp, scenario)

        assert sftp.makedirs.await_count == 2


class TestListEntries:
    """Backup directory listing"""

    def test_dot_entries_dropped(self):
        sftp = fake_sftp()
        sftp.listdir.return_value = [".", "..", "example.com-public_html-20250101-120000.tar.gz"]

        names, _ = run_with(sftp, lambda fs: fs.list_entries("/home/web/backups"))

        assert names == ["example.com-public_html-20250101-120000.tar.gz"]
        sftp.listdir.assert_awaited_once_with("/home/web/backups")

    def test_missing_directory_is_empty(self):
        sftp = fake_sftp()
        sftp.listdir.side_effect = asyncssh.SFTPNoSuchFile("No such file")

        names, _ = run_with(sftp, lambda fs: fs.list_entries("/home/web/backups"))

        assert names == []
