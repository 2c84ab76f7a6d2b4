"""Tests for load and review (envman.retriever)."""

from __future__ import annotations

import io
import os
from pathlib import Path

import pytest

from conftest import FailingTransport, audit_lines, make_runtime
from envman.errors import (
    NoMatchError,
    SymlinkMissingOrInvalid,
    TargetNotFoundError,
    TransferError,
    TruncatedTransferError,
)
from envman.models import MatchKind

DB_OLD = "db_2025_01_01_10_00_00.env"
DB_NEW = "db_2025_02_01_10_00_00.env"
API = "api_2025_01_15_08_00_00.env"


@pytest.fixture
def populated(base_dir: Path) -> Path:
    """Storage directory with two db snapshots, one api snapshot, latest -> api."""
    base_dir.mkdir(parents=True)
    (base_dir / DB_OLD).write_text("DB=old\n")
    (base_dir / DB_NEW).write_text("DB=new\n")
    (base_dir / API).write_text("API=1\n")
    os.symlink(API, base_dir / "latest.env")
    return base_dir


class TestLoad:
    """Downloading snapshots into local files."""

    def test_load_latest(self, runtime, populated: Path, work_dir: Path) -> None:
        output = work_dir / ".env"
        result = runtime.retriever.load("", output)

        assert output.read_text() == "API=1\n"
        assert result.resolution.kind == MatchKind.EXACT_LATEST
        assert result.resolution.filename == API
        assert result.bytes_written == len("API=1\n")

    def test_load_nickname_discloses_candidates(self, runtime, populated: Path, work_dir: Path) -> None:
        seen = []
        output = work_dir / "db.env"
        result = runtime.retriever.load("db", output, on_resolved=seen.append)

        assert output.read_text() == "DB=new\n"
        assert len(seen) == 1
        assert seen[0].candidates == [DB_OLD, DB_NEW]
        assert result.resolution == seen[0]

    def test_load_exact_filename(self, runtime, populated: Path, work_dir: Path) -> None:
        output = work_dir / "old.env"
        runtime.retriever.load(DB_OLD, output)
        assert output.read_text() == "DB=old\n"

    def test_load_creates_parent_dirs(self, runtime, populated: Path, work_dir: Path) -> None:
        output = work_dir / "nested" / "deeper" / ".env"
        runtime.retriever.load("api", output)
        assert output.read_text() == "API=1\n"

    def test_load_overwrites_existing_file(self, runtime, populated: Path, work_dir: Path) -> None:
        output = work_dir / ".env"
        output.write_text("STALE=1\n")
        runtime.retriever.load("", output)
        assert output.read_text() == "API=1\n"
        assert [p.name for p in work_dir.iterdir()] == [".env"]

    def test_load_empty_snapshot(self, runtime, base_dir: Path, work_dir: Path) -> None:
        base_dir.mkdir(parents=True)
        (base_dir / "blank_2025_01_01_00_00_00.env").write_bytes(b"")
        output = work_dir / "blank.env"

        result = runtime.retriever.load("blank", output)

        assert output.exists()
        assert output.read_bytes() == b""
        assert result.bytes_written == 0

    def test_load_audit_record(self, runtime, populated: Path, work_dir: Path, log_file: Path) -> None:
        output = work_dir / ".env"
        result = runtime.retriever.load("db", output)
        line = audit_lines(log_file)[-1]
        assert "Action: LOAD - Config: 'db_2025_02_01_10_00_00.env'" in line
        assert f"Dest: {output}, Hash: {result.content_hash}" in line

    def test_retrieve_dispatches_on_destination(self, runtime, populated: Path, work_dir: Path) -> None:
        output = work_dir / "x.env"
        runtime.retriever.retrieve("api", output)
        assert output.read_text() == "API=1\n"

        sink = io.BytesIO()
        runtime.retriever.retrieve("api", sink)
        assert sink.getvalue() == b"API=1\n"


class TestLoadFailures:
    """Failed loads leave no local file behind and are audited."""

    def test_no_pointer(self, runtime, base_dir: Path, work_dir: Path, log_file: Path) -> None:
        base_dir.mkdir(parents=True)
        output = work_dir / ".env"

        with pytest.raises(SymlinkMissingOrInvalid):
            runtime.retriever.retrieve("", output)

        assert not output.exists()
        line = audit_lines(log_file)[-1]
        assert "Action: LOAD_FAIL - Config: 'latest.env'" in line
        assert "Resolution failed: error_symlink_resolve for target local file" in line

    def test_no_match(self, runtime, populated: Path, work_dir: Path, log_file: Path) -> None:
        with pytest.raises(NoMatchError):
            runtime.retriever.load("cache", work_dir / ".env")
        line = audit_lines(log_file)[-1]
        assert "Action: LOAD_FAIL - Config: 'cache'" in line
        assert "no_fuzzy_match" in line

    def test_dangling_pointer(self, runtime, populated: Path, work_dir: Path) -> None:
        os.remove(populated / API)
        with pytest.raises(TargetNotFoundError):
            runtime.retriever.load("", work_dir / ".env")
        assert not (work_dir / ".env").exists()

    def test_read_failure(self, config, clock, populated: Path, work_dir: Path, log_file: Path) -> None:
        runtime = make_runtime(config, clock, FailingTransport(fail_when="cat -- "))
        output = work_dir / ".env"
        output.write_text("KEEP=1\n")

        with pytest.raises(TransferError):
            runtime.retriever.load("api", output)

        assert output.read_text() == "KEEP=1\n"
        assert "Action: LOAD_FAIL" in audit_lines(log_file)[-1]

    def test_truncated_download(self, runtime, populated: Path, work_dir: Path, log_file: Path, monkeypatch) -> None:
        monkeypatch.setattr(runtime.store, "read_bytes", lambda path: b"")
        output = work_dir / ".env"

        with pytest.raises(TruncatedTransferError):
            runtime.retriever.load("api", output)

        assert not output.exists()
        assert "Downloaded file empty, source not" in audit_lines(log_file)[-1]

    def test_size_check_failure_keeps_local_file(
        self, config, clock, populated: Path, work_dir: Path, log_file: Path, monkeypatch
    ) -> None:
        """An empty download is not trusted when the source cannot be checked."""
        transport = FailingTransport(fail_when="test -s", returncode=255, stderr="Connection closed")
        runtime = make_runtime(config, clock, transport)
        monkeypatch.setattr(runtime.store, "read_bytes", lambda path: b"")
        output = work_dir / ".env"
        output.write_text("KEEP=1\n")

        with pytest.raises(TransferError):
            runtime.retriever.load("api", output)

        assert output.read_text() == "KEEP=1\n"
        line = audit_lines(log_file)[-1]
        assert "Action: LOAD_FAIL" in line
        assert "could not check source" in line


class TestReview:
    """Streaming snapshots to a display sink."""

    def test_review_latest(self, runtime, populated: Path, log_file: Path) -> None:
        sink = io.BytesIO()
        result = runtime.retriever.review(None, sink)

        assert sink.getvalue() == b"API=1\n"
        assert result.resolution.filename == API
        line = audit_lines(log_file)[-1]
        assert "Action: REVIEW - Config: 'api_2025_01_15_08_00_00.env' - Details: Content displayed" in line

    def test_review_calls_back_before_content(self, runtime, populated: Path) -> None:
        sink = io.BytesIO()
        order = []
        runtime.retriever.review("db", sink, on_resolved=lambda r: order.append(sink.tell()))
        assert order == [0]
        assert sink.getvalue() == b"DB=new\n"

    def test_review_failure(self, runtime, populated: Path, log_file: Path) -> None:
        with pytest.raises(NoMatchError):
            runtime.retriever.review("cache", io.BytesIO())
        line = audit_lines(log_file)[-1]
        assert "Action: REVIEW_FAIL - Config: 'cache' - Details: Resolution failed: no_fuzzy_match" in line

    def test_review_read_failure(self, config, clock, populated: Path, log_file: Path) -> None:
        runtime = make_runtime(config, clock, FailingTransport(fail_when="cat -- "))
        with pytest.raises(TransferError):
            runtime.retriever.review("api", io.BytesIO())
        assert "Failed to cat remote file:" in audit_lines(log_file)[-1]

    def test_display_failure_is_audited(self, runtime, populated: Path, log_file: Path) -> None:
        class ClosedPipe(io.BytesIO):
            def write(self, data):
                raise BrokenPipeError("Broken pipe")

        with pytest.raises(TransferError):
            runtime.retriever.review("api", ClosedPipe())

        line = audit_lines(log_file)[-1]
        assert "Action: REVIEW_FAIL - Config: 'api_2025_01_15_08_00_00.env'" in line
        assert "Failed to display content: Broken pipe" in line
