"""
Transports -- how envman reaches the storage host.

A transport does two things: run a shell command on the storage side and
capture its output, and copy a local file to a path on that side.
Nothing above this layer knows whether the bytes travel over ssh or
stay on the local disk.

SSH: ssh/scp subprocesses, optional identity file and port.
Local: the same scripts run through ``sh -c`` on this machine. For
mounted storage and for exercising the protocol without a server.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .models import EnvmanConfig, RemoteHost, TransportType

logger = logging.getLogger("envman.transport")

# Exit status ssh itself uses for connection-level failures.
SSH_FAILURE = 255


@dataclass
class RemoteResult:
    """Captured outcome of one remote command."""

    returncode: int
    stdout: bytes = b""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def text(self) -> str:
        """stdout decoded as UTF-8, undecodable bytes replaced."""
        return self.stdout.decode("utf-8", errors="replace")


def _relay_stderr(stderr: str) -> None:
    for line in stderr.splitlines():
        if line.strip():
            logger.warning("[REMOTE STDERR] %s", line)


class Transport(ABC):
    """Abstract command/file transport to the storage host."""

    @abstractmethod
    def run(self, command: str) -> RemoteResult:
        """Execute a shell command on the storage side.

        Args:
            command: Command line, interpreted by the remote shell.

        Returns:
            RemoteResult with exit status and captured output.
        """

    @abstractmethod
    def copy_to_remote(self, local_path: Path, remote_path: str) -> int:
        """Copy a local file to an absolute path on the storage side.

        Returns:
            Exit status, 0 on success.
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable transport name."""


class SSHTransport(Transport):
    """ssh/scp based transport.

    Args:
        host: Parsed ``user@host[:port]``.
        identity_file: Private key passed as ``-i`` to ssh and scp.
        ssh_options: Extra ``-o`` options, e.g. ``BatchMode=yes``.
    """

    def __init__(
        self,
        host: RemoteHost,
        identity_file: Optional[Path] = None,
        ssh_options: Sequence[str] = (),
    ) -> None:
        self.host = host
        self.identity_file = identity_file
        self.ssh_options = list(ssh_options)

    @property
    def name(self) -> str:
        return f"ssh:{self.host.destination}"

    def _common_opts(self) -> list[str]:
        opts: list[str] = []
        if self.identity_file:
            opts += ["-i", str(self.identity_file)]
        for option in self.ssh_options:
            opts += ["-o", option]
        return opts

    def ssh_command(self, command: str) -> list[str]:
        """argv for running ``command`` on the host."""
        argv = ["ssh", "-T", *self._common_opts()]
        if self.host.port:
            argv += ["-p", str(self.host.port)]
        return [*argv, self.host.destination, "--", command]

    def scp_command(self, local_path: Path, remote_path: str) -> list[str]:
        """argv for copying ``local_path`` to ``remote_path`` on the host."""
        argv = ["scp", "-q", *self._common_opts()]
        if self.host.port:
            argv += ["-P", str(self.host.port)]
        return [*argv, str(local_path), f"{self.host.destination}:{remote_path}"]

    def run(self, command: str) -> RemoteResult:
        argv = self.ssh_command(command)
        logger.debug("ssh %s: %s", self.host.destination, command)
        try:
            proc = subprocess.run(argv, capture_output=True, check=False)
        except OSError as exc:
            logger.error("Could not launch ssh: %s", exc)
            return RemoteResult(returncode=SSH_FAILURE, stderr=str(exc))

        stderr = proc.stderr.decode("utf-8", errors="replace")
        _relay_stderr(stderr)
        return RemoteResult(returncode=proc.returncode, stdout=proc.stdout, stderr=stderr)

    def copy_to_remote(self, local_path: Path, remote_path: str) -> int:
        argv = self.scp_command(local_path, remote_path)
        logger.debug("scp %s -> %s:%s", local_path, self.host.destination, remote_path)
        try:
            proc = subprocess.run(argv, capture_output=True, text=True, check=False)
        except OSError as exc:
            logger.error("Could not launch scp: %s", exc)
            return SSH_FAILURE
        _relay_stderr(proc.stderr)
        return proc.returncode


class LocalTransport(Transport):
    """Runs storage-side scripts on this machine.

    The storage directory is a plain local (or mounted) path.
    """

    @property
    def name(self) -> str:
        return "local"

    def run(self, command: str) -> RemoteResult:
        logger.debug("sh: %s", command)
        proc = subprocess.run(["sh", "-c", command], capture_output=True, check=False)
        stderr = proc.stderr.decode("utf-8", errors="replace")
        _relay_stderr(stderr)
        return RemoteResult(returncode=proc.returncode, stdout=proc.stdout, stderr=stderr)

    def copy_to_remote(self, local_path: Path, remote_path: str) -> int:
        try:
            Path(remote_path).parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(local_path, remote_path)
        except OSError as exc:
            logger.error("Local copy failed: %s", exc)
            return 1
        return 0


def create_transport(config: EnvmanConfig) -> Transport:
    """Factory function to create the configured transport.

    Args:
        config: envman configuration.

    Returns:
        Instantiated Transport.

    Raises:
        ValueError: If ssh is selected without a host.
    """
    if config.transport == TransportType.LOCAL:
        return LocalTransport()

    host = config.remote_host
    if host is None:
        raise ValueError("ssh transport requires 'host' (user@host[:port])")
    return SSHTransport(
        host,
        identity_file=config.identity_file,
        ssh_options=config.ssh_options,
    )
