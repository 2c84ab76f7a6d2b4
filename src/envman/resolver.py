"""
Target resolution -- from what the user typed to one remote file.

Three strategies, picked by naming.classify_target():

    ""/"latest"      follow the latest pointer, whose final target must be
                     directly inside the storage directory
    full filename    taken literally
    anything else    nickname prefix; the newest matching snapshot wins
                     and every candidate is reported back

Whatever the strategy, the resolved path must exist as a regular file
on the storage side before a result is returned.
"""

from __future__ import annotations

import logging
import posixpath
from typing import Callable, Iterable, Optional

from .errors import (
    NoMatchError,
    SymlinkMissingOrInvalid,
    TargetNotFoundError,
)
from .models import EnvmanConfig, MatchKind, ResolutionResult
from .naming import TargetKind, chronological_key, classify_target, matches_prefix
from .remote_store import RemoteStore

logger = logging.getLogger("envman.resolver")


def _pointer_filename(raw: str, base_dir: str, symlink_name: str) -> Optional[str]:
    """Filename a pointer target names, or None if it leaves ``base_dir``."""
    base = posixpath.normpath(base_dir)
    path = raw if posixpath.isabs(raw) else posixpath.join(base, raw)
    path = posixpath.normpath(path)
    if posixpath.dirname(path) != base:
        return None
    filename = posixpath.basename(path)
    if filename in ("", symlink_name):
        return None
    return filename


def resolve(
    target: Optional[str],
    *,
    base_dir: str,
    symlink_name: str,
    list_directory: Callable[[], Iterable[str]],
    read_symlink: Callable[[], Optional[str]],
    is_file: Callable[[str], bool],
) -> ResolutionResult:
    """Resolve a requested target to a concrete file in ``base_dir``.

    For a fixed listing and pointer state this is deterministic and has
    no side effects beyond calling the three capabilities.

    Args:
        target: Empty/"latest", a full snapshot filename, or a nickname.
        base_dir: Absolute path of the storage directory.
        symlink_name: Reserved name of the latest pointer.
        list_directory: Returns filenames directly under ``base_dir``.
        read_symlink: Returns the pointer target, or None. RemoteStore
            supplies the end of the whole link chain.
        is_file: True if a path is an existing regular file.

    Returns:
        ResolutionResult describing the selected file.

    Raises:
        SymlinkMissingOrInvalid: Latest requested but the pointer is
            absent, unreadable, or points outside ``base_dir``.
        NoMatchError: No snapshot carries the given nickname.
        TargetNotFoundError: The selected path is not a regular file.
    """
    requested = target or ""
    classified = classify_target(target)
    candidates: list[str] = []

    if classified.kind == TargetKind.LATEST:
        raw = read_symlink()
        filename = _pointer_filename(raw, base_dir, symlink_name) if raw else None
        if filename is None:
            raise SymlinkMissingOrInvalid(
                f"Could not resolve '{symlink_name}' symlink on remote, it is "
                "missing, or points outside config dir.",
                target=requested or symlink_name,
            )
        kind = MatchKind.EXACT_LATEST

    elif classified.kind == TargetKind.EXACT_FILE:
        filename = classified.value
        kind = MatchKind.EXACT_FULLNAME

    else:
        prefix = classified.value
        matches = sorted(
            (f for f in list_directory() if matches_prefix(f, prefix)),
            key=chronological_key,
        )
        if not matches:
            raise NoMatchError(
                f"No remote config found for nickname prefix "
                f"'{prefix}_*.env' or '{prefix}-*.env'.",
                target=prefix,
            )
        filename = matches[-1]
        if len(matches) == 1:
            kind = MatchKind.SINGLE_FUZZY_MATCH
        else:
            kind = MatchKind.MULTIPLE_FUZZY_MATCHES
            candidates = matches

    path = posixpath.join(base_dir, filename)
    if not is_file(path):
        raise TargetNotFoundError(
            f"Resolved remote file '{path}' does not exist or is not a regular file.",
            target=requested or symlink_name,
        )

    return ResolutionResult(
        target=requested,
        path=path,
        filename=filename,
        kind=kind,
        candidates=candidates,
    )


class Resolver:
    """resolve() bound to a RemoteStore.

    Args:
        config: envman configuration.
        store: Remote store supplying listing, pointer and existence checks.
    """

    def __init__(self, config: EnvmanConfig, store: RemoteStore) -> None:
        self.config = config
        self.store = store

    def resolve(self, target: Optional[str]) -> ResolutionResult:
        result = resolve(
            target,
            base_dir=self.config.base_dir,
            symlink_name=self.config.symlink_name,
            list_directory=self.store.list_snapshot_files,
            read_symlink=self.store.read_latest_target,
            is_file=self.store.is_file,
        )
        logger.debug(
            "Resolved %r to %s (%s)", target or "", result.filename, result.kind.value
        )
        return result
