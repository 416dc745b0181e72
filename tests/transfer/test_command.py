"""Tests for rsync command construction and redaction."""

from __future__ import annotations

from pathlib import Path

import pytest

from docsync.core.config import RemoteConfig, TransferConfig
from docsync.transfer.command import REDACTED_PASSWORD_FILE, CommandBuilder, redact


@pytest.fixture
def remote() -> RemoteConfig:
    return RemoteConfig(host="node", user="sync", module="files", base_path="docs")


class TestUpload:
    """Tests for upload argument vectors."""

    def test_default_order(self, remote: RemoteConfig) -> None:
        """Flags, then source, then destination."""
        builder = CommandBuilder(remote, TransferConfig())
        argv = builder.build_upload(Path("/data/a.pdf"), "a.pdf")
        assert argv == [
            "rsync",
            "-a",
            "--partial",
            "--mkpath",
            "--timeout=300",
            "-z",
            "/data/a.pdf",
            "rsync://sync@node:873/files/docs/a.pdf",
        ]

    def test_full_order(self, remote: RemoteConfig, tmp_path: Path) -> None:
        """Port, password file, bwlimit, exclude and include appear in fixed order."""
        remote.port = 8873
        transfer = TransferConfig(
            compress=False,
            dry_run=True,
            bandwidth_limit=256,
            exclude_from=Path("/etc/docsync/exclude"),
            include_from=Path("/etc/docsync/include"),
        )
        builder = CommandBuilder(remote, transfer)
        argv = builder.build_upload(Path("/data/a.pdf"), "a.pdf", password_file=Path("/tmp/pw"))

        assert "-z" not in argv
        expected_tail = [
            "--dry-run",
            "--port=8873",
            "--password-file=/tmp/pw",
            "--bwlimit=256",
            "--exclude-from=/etc/docsync/exclude",
            "--include-from=/etc/docsync/include",
            "/data/a.pdf",
            "rsync://sync@node:8873/files/docs/a.pdf",
        ]
        assert argv[-len(expected_tail):] == expected_tail

    def test_windows_paths_normalized(self, remote: RemoteConfig) -> None:
        builder = CommandBuilder(remote, TransferConfig())
        argv = builder.build_upload(
            Path("C:\\up\\a.pdf"), "a.pdf", password_file=Path("C:\\tmp\\pw")
        )
        assert "--password-file=/cygdrive/c/tmp/pw" in argv
        assert argv[-2] == "/cygdrive/c/up/a.pdf"


class TestOtherOperations:
    def test_download_swaps_source_and_destination(self, remote: RemoteConfig) -> None:
        builder = CommandBuilder(remote, TransferConfig())
        argv = builder.build_download("sub//a.pdf", Path("/cache/x.part"))
        assert argv[-2:] == ["rsync://sync@node:873/files/docs/sub/a.pdf", "/cache/x.part"]

    def test_delete_targets_single_file(self, remote: RemoteConfig) -> None:
        """Delete syncs an empty dir over the parent, scoped to one name."""
        builder = CommandBuilder(remote, TransferConfig())
        argv = builder.build_delete("sub/a.pdf", Path("/tmp/empty"), password_file=Path("/tmp/pw"))
        assert "-r" in argv
        assert "--delete" in argv
        assert argv.index("--password-file=/tmp/pw") < argv.index("--include=a.pdf")
        assert argv[-4:] == [
            "--include=a.pdf",
            "--exclude=*",
            "/tmp/empty/",
            "rsync://sync@node:873/files/docs/sub/",
        ]

    def test_list(self, remote: RemoteConfig) -> None:
        builder = CommandBuilder(remote, TransferConfig())
        assert builder.build_list("a.pdf") == [
            "rsync",
            "--list-only",
            "rsync://sync@node:873/files/docs/a.pdf",
        ]


class TestRedact:
    def test_password_file_replaced(self) -> None:
        line = redact(["rsync", "-a", "--password-file=/tmp/rsync_pass_x", "/a", "rsync://u@h/m/a"])
        assert "/tmp/rsync_pass_x" not in line
        assert REDACTED_PASSWORD_FILE in line
        assert line.startswith("rsync -a ")

    def test_no_password_file(self) -> None:
        assert redact(["rsync", "/a", "/b"]) == "rsync /a /b"
