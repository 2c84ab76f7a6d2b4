"""Tests for the remote audit log."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from conftest import FailingTransport, audit_lines, make_runtime
from envman.audit import AuditLog, current_user, sha256_file
from envman.models import AuditRecord


class TestAuditRecord:
    """Tests for the one-line text format."""

    def test_format_line(self) -> None:
        entry = AuditRecord(
            timestamp=datetime(2025, 1, 31, 23, 59, 59, tzinfo=timezone.utc),
            user="alice",
            action="LOAD",
            config_name="db_2025_01_31_23_59_59.env",
            details="Dest: .env, Hash: abc",
        )
        assert entry.format_line() == (
            "2025-01-31T23:59:59Z - User: alice - Action: LOAD - "
            "Config: 'db_2025_01_31_23_59_59.env' - Details: Dest: .env, Hash: abc"
        )


class TestAuditLog:
    """Tests for appending to the remote log."""

    def test_appends_lines_in_order(self, runtime, log_file: Path) -> None:
        runtime.audit.record("LIST", "ALL_AND_LATEST_SYMLINK", "first")
        runtime.audit.record("LATEST", "latest.env", "second", failed=True)

        lines = audit_lines(log_file)
        assert len(lines) == 2
        assert lines[0].endswith("Details: first")
        assert "Action: LATEST_FAIL" in lines[1]

    def test_creates_log_directory(self, runtime, log_file: Path) -> None:
        assert not log_file.parent.exists()
        runtime.audit.record("LIST", "x", "y")
        assert log_file.exists()

    def test_quotes_in_details_survive(self, runtime, log_file: Path) -> None:
        runtime.audit.record("SAVE", "it's", "Source: '$HOME/x'; rm -rf /")
        assert audit_lines(log_file)[-1].endswith("Details: Source: '$HOME/x'; rm -rf /")

    def test_write_failure_is_a_warning(self, config, clock, log_file: Path, caplog) -> None:
        runtime = make_runtime(config, clock, FailingTransport(fail_when="printf"))

        with caplog.at_level(logging.WARNING, logger="envman.audit"):
            entry = runtime.audit.record("LIST", "x", "y")

        assert entry.action == "LIST"
        assert not log_file.exists()
        assert "Failed to write to remote log" in caplog.text
        assert "Log message was:" in caplog.text

    def test_unwritable_log_location(self, config, clock, log_file: Path, caplog) -> None:
        # A regular file where the log directory should be blocks the append.
        log_file.parent.parent.mkdir(parents=True, exist_ok=True)
        log_file.parent.write_text("in the way")
        runtime = make_runtime(config, clock)

        with caplog.at_level(logging.WARNING, logger="envman.audit"):
            runtime.audit.record("LIST", "x", "y")

        assert "Failed to write to remote log" in caplog.text

    def test_default_user(self, runtime) -> None:
        audit = AuditLog(runtime.store, "/tmp/unused.log")
        assert audit.user == current_user()
        assert audit.user


class TestHashing:
    def test_sha256_file(self, tmp_path: Path) -> None:
        path = tmp_path / "f"
        path.write_bytes(b"abc")
        assert sha256_file(path) == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )
