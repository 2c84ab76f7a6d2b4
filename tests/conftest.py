"""Shared test fixtures for envman.

Remote storage is simulated with a temporary directory driven through
LocalTransport, so the same shell scripts that run over ssh run here.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

from envman.models import EnvmanConfig
from envman.runtime import EnvmanRuntime
from envman.transport import LocalTransport, RemoteResult, Transport


class StepClock:
    """Deterministic clock that advances one minute per call."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 1, 31, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(minutes=1)
        return current


class FailingTransport(LocalTransport):
    """LocalTransport that fails commands containing a marker string."""

    def __init__(
        self,
        fail_when: Optional[str] = None,
        fail_copy: bool = False,
        stderr: str = "simulated transport failure",
        returncode: int = 1,
    ) -> None:
        self.fail_when = fail_when
        self.fail_copy = fail_copy
        self.stderr = stderr
        self.returncode = returncode
        self.commands: list[str] = []
        self.copies: list[tuple[Path, str]] = []

    def run(self, command: str) -> RemoteResult:
        self.commands.append(command)
        if self.fail_when and self.fail_when in command:
            return RemoteResult(returncode=self.returncode, stderr=self.stderr)
        return super().run(command)

    def copy_to_remote(self, local_path: Path, remote_path: str) -> int:
        self.copies.append((local_path, remote_path))
        if self.fail_copy:
            return 1
        return super().copy_to_remote(local_path, remote_path)


@pytest.fixture
def remote_root(tmp_path: Path) -> Path:
    """Root of the simulated remote filesystem."""
    root = tmp_path / "remote"
    root.mkdir()
    return root


@pytest.fixture
def base_dir(remote_root: Path) -> Path:
    """Snapshot storage directory (not created until the first save)."""
    return remote_root / "configs"


@pytest.fixture
def log_file(remote_root: Path) -> Path:
    """Remote audit log path."""
    return remote_root / "log" / "envman.log"


@pytest.fixture
def staging_dir(remote_root: Path) -> Path:
    return remote_root / "staging"


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    """Local working directory holding the user's env files."""
    work = tmp_path / "work"
    work.mkdir()
    return work


@pytest.fixture
def config(base_dir: Path, log_file: Path, staging_dir: Path, work_dir: Path) -> EnvmanConfig:
    """Local-transport configuration with no sudo and no chown."""
    return EnvmanConfig(
        transport="local",
        base_dir=str(base_dir),
        log_file=str(log_file),
        staging_dir=str(staging_dir),
        local_env_file=work_dir / ".env",
        use_sudo=False,
        owner=None,
    )


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


def make_runtime(
    config: EnvmanConfig,
    clock: StepClock,
    transport: Optional[Transport] = None,
) -> EnvmanRuntime:
    """Build a runtime over LocalTransport (or the given transport)."""
    return EnvmanRuntime(
        config,
        transport=transport or LocalTransport(),
        clock=clock,
        user="tester",
    )


@pytest.fixture
def runtime(config: EnvmanConfig, clock: StepClock) -> EnvmanRuntime:
    return make_runtime(config, clock)


@pytest.fixture
def env_file(work_dir: Path) -> Path:
    """A local env file with some content."""
    path = work_dir / ".env"
    path.write_text("DATABASE_URL=postgres://db/app\nDEBUG=false\n")
    return path


def audit_lines(log_file: Path) -> list[str]:
    """Lines of the simulated remote audit log."""
    if not log_file.exists():
        return []
    return log_file.read_text().splitlines()
