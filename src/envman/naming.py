"""
Snapshot naming scheme.

A snapshot filename is ``{name}{sep}{YYYY_MM_DD_HH_MM_SS}.env`` where
``sep`` is ``_`` on write and either ``_`` or ``-`` on read. The fixed
width timestamp makes lexicographic order equal chronological order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .errors import InvalidNameError
from .models import Snapshot

TIMESTAMP_FORMAT = "%Y_%m_%d_%H_%M_%S"
SNAPSHOT_SUFFIX = ".env"
WRITE_SEPARATOR = "_"
LATEST_KEYWORD = "latest"

NAME_PATTERN = re.compile(r"[A-Za-z0-9_.-]+")
SNAPSHOT_PATTERN = re.compile(
    r"(?P<name>[A-Za-z0-9_.-]+)"
    r"(?P<sep>[_-])"
    r"(?P<stamp>[0-9]{4}(?:_[0-9]{2}){5})"
    r"\.env"
)


class TargetKind(str, Enum):
    """Classification of a requested target string."""

    LATEST = "latest"
    EXACT_FILE = "exact_file"
    PREFIX = "prefix"


@dataclass(frozen=True)
class Target:
    """A classified target: the kind plus the string it applies to."""

    kind: TargetKind
    value: str = ""


def validate_name(name: str) -> str:
    """Check a nickname against the allowed character set.

    Args:
        name: Nickname or reserved prefix.

    Returns:
        str: The name, unchanged.

    Raises:
        InvalidNameError: If the name is empty or has disallowed characters.
    """
    if not name or not NAME_PATTERN.fullmatch(name):
        raise InvalidNameError(
            f"Invalid nickname '{name}'. Use alphanumeric characters, "
            "underscores, dashes, or dots.",
            target=name,
        )
    return name


def format_timestamp(moment: datetime) -> str:
    """Format a moment as the UTC, second-precision filename stamp."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def build_filename(logical_name: str, moment: datetime) -> str:
    """Build the canonical filename for a new snapshot.

    Args:
        logical_name: Nickname, or the reserved unnamed prefix.
        moment: When the snapshot is taken.

    Returns:
        str: e.g. ``db_2025_01_31_23_59_59.env``.

    Raises:
        InvalidNameError: If ``logical_name`` is not a valid nickname.
    """
    validate_name(logical_name)
    return f"{logical_name}{WRITE_SEPARATOR}{format_timestamp(moment)}{SNAPSHOT_SUFFIX}"


def parse_filename(filename: str) -> Optional[Snapshot]:
    """Tokenize a filename into its snapshot parts.

    Returns:
        Snapshot, or None when the name does not fully match the pattern.
    """
    match = SNAPSHOT_PATTERN.fullmatch(filename)
    if not match:
        return None
    return Snapshot(
        logical_name=match.group("name"),
        separator=match.group("sep"),
        stamp=match.group("stamp"),
    )


def classify_target(target: Optional[str]) -> Target:
    """Decide how a requested target should be resolved.

    Empty or ``latest`` goes through the latest pointer, a full snapshot
    filename is taken literally, and anything else is a nickname prefix.
    """
    if not target or target == LATEST_KEYWORD:
        return Target(TargetKind.LATEST)
    if parse_filename(target) is not None:
        return Target(TargetKind.EXACT_FILE, target)
    return Target(TargetKind.PREFIX, target)


def matches_prefix(filename: str, prefix: str) -> bool:
    """True when ``filename`` is a snapshot of nickname ``prefix``."""
    snapshot = parse_filename(filename)
    return snapshot is not None and snapshot.logical_name == prefix


def chronological_key(filename: str) -> tuple[str, str]:
    """Sort key ordering snapshot filenames oldest first.

    Orders by timestamp, then by full name, so the separator never
    decides which of two snapshots is newer.
    """
    snapshot = parse_filename(filename)
    return (snapshot.stamp if snapshot else "", filename)
