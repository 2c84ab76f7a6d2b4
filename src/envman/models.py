"""
Pydantic models for envman configuration and results.

Snapshots are immutable once published; every model here describes
either how to reach the storage host or what an operation produced.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

PLACEHOLDER_HOST = "your_user@your_server.com"

_HOST_RE = re.compile(r"^(?P<user>[^@]+)@(?P<host>[^:@]+)(?::(?P<port>[^:]*))?$")


class TransportType(str, Enum):
    """How envman reaches the storage directory."""

    SSH = "ssh"
    LOCAL = "local"


class RemoteHost(BaseModel):
    """A parsed ``user@host[:port]`` connection target."""

    user: str
    host: str
    port: Optional[int] = None

    @classmethod
    def parse(cls, spec: str) -> "RemoteHost":
        """Parse a ``user@host[:port]`` string.

        Args:
            spec: Connection string from the config.

        Returns:
            RemoteHost: The parsed target.

        Raises:
            ValueError: If the string is a placeholder or malformed.
        """
        spec = spec.strip()
        if spec == PLACEHOLDER_HOST:
            raise ValueError(f"host '{spec}' is a placeholder, please configure it")
        match = _HOST_RE.match(spec)
        if not match:
            raise ValueError(f"invalid host '{spec}', expected user@host[:port]")

        port = None
        raw_port = match.group("port")
        if raw_port is not None:
            if not raw_port.isdigit() or not 1 <= int(raw_port) <= 65535:
                raise ValueError(f"invalid port number in host: {raw_port}")
            port = int(raw_port)
        return cls(user=match.group("user"), host=match.group("host"), port=port)

    @property
    def destination(self) -> str:
        """The ``user@host`` form ssh and scp expect."""
        return f"{self.user}@{self.host}"


class EnvmanConfig(BaseModel):
    """Persistent configuration for an envman installation."""

    host: Optional[str] = None
    transport: TransportType = TransportType.SSH
    base_dir: str
    log_file: str
    local_env_file: Path = Path(".env")
    symlink_name: str = "latest.env"
    unnamed_prefix: str = "unnamed"
    identity_file: Optional[Path] = None
    use_sudo: bool = True
    owner: Optional[str] = "root:root"
    mode: str = "640"
    staging_dir: str = "/tmp"
    ssh_options: list[str] = Field(default_factory=list)

    @field_validator("host")
    @classmethod
    def _check_host(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            RemoteHost.parse(value)
        return value

    @field_validator("base_dir", "log_file", "staging_dir")
    @classmethod
    def _check_remote_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"remote path must be absolute: {value}")
        return value.rstrip("/") or "/"

    @field_validator("symlink_name", "unnamed_prefix")
    @classmethod
    def _check_reserved_name(cls, value: str) -> str:
        from .naming import NAME_PATTERN, parse_filename

        if not NAME_PATTERN.fullmatch(value):
            raise ValueError(f"'{value}' must match [A-Za-z0-9_.-]+")
        if parse_filename(value) is not None:
            raise ValueError(f"'{value}' collides with the snapshot filename pattern")
        return value

    @field_validator("mode", mode="before")
    @classmethod
    def _check_mode(cls, value) -> str:
        value = str(value)
        if not re.fullmatch(r"[0-7]{3,4}", value):
            raise ValueError(f"mode must be octal, got '{value}'")
        return value

    @property
    def remote_host(self) -> Optional[RemoteHost]:
        """Parsed connection target, or None for local storage."""
        return RemoteHost.parse(self.host) if self.host else None

    @property
    def symlink_path(self) -> str:
        """Absolute remote path of the latest pointer."""
        return f"{self.base_dir}/{self.symlink_name}"


class Snapshot(BaseModel):
    """One immutable, timestamped copy of a config file on the remote side."""

    logical_name: str
    stamp: str
    separator: str = "_"
    content_hash: Optional[str] = None

    @property
    def filename(self) -> str:
        """Canonical remote filename."""
        return f"{self.logical_name}{self.separator}{self.stamp}.env"

    @property
    def created_at(self) -> Optional[datetime]:
        """UTC time encoded in the filename, or None if it is not a real date."""
        from .naming import TIMESTAMP_FORMAT

        try:
            return datetime.strptime(self.stamp, TIMESTAMP_FORMAT).replace(
                tzinfo=timezone.utc
            )
        except ValueError:
            return None


class MatchKind(str, Enum):
    """How a resolution request was satisfied."""

    EXACT_LATEST = "exact_latest"
    EXACT_FULLNAME = "exact_fullname"
    SINGLE_FUZZY_MATCH = "single_fuzzy_match"
    MULTIPLE_FUZZY_MATCHES = "multiple_fuzzy_matches_newest_selected"


class ResolutionResult(BaseModel):
    """The concrete remote file a target resolved to.

    ``candidates`` is only populated for ambiguous nickname matches and is
    sorted oldest to newest; the selected file is always its last entry.
    """

    target: str
    path: str
    filename: str
    kind: MatchKind
    candidates: list[str] = Field(default_factory=list)

    @property
    def is_ambiguous(self) -> bool:
        return self.kind == MatchKind.MULTIPLE_FUZZY_MATCHES

    @property
    def details(self) -> str:
        """Match description in the audit log's vocabulary."""
        if self.is_ambiguous:
            return f"{self.kind.value} {' '.join(self.candidates)}"
        return self.kind.value


class AuditRecord(BaseModel):
    """A single line of the remote append-only audit log."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    user: str
    action: str
    config_name: str
    details: str

    def format_line(self) -> str:
        """Render the record in the log's one-line text format."""
        ts = self.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return (
            f"{ts} - User: {self.user} - Action: {self.action}"
            f" - Config: '{self.config_name}' - Details: {self.details}"
        )


class RetrievalResult(BaseModel):
    """Outcome of a load or review."""

    resolution: ResolutionResult
    destination: str
    bytes_written: int
    content_hash: Optional[str] = None
