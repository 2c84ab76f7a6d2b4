"""
Remote audit log.

Every save, load, list, latest and review is appended as one text line
to a log file on the storage host. Auditing is best-effort: a failed
append is logged locally and never fails the action being audited.
"""

from __future__ import annotations

import getpass
import hashlib
import logging
from pathlib import Path
from typing import Callable, Optional

from .errors import AuditLogWriteError
from .models import AuditRecord
from .remote_store import RemoteStore

logger = logging.getLogger("envman.audit")

FAIL_SUFFIX = "_FAIL"


def current_user() -> str:
    """Name of the local user, or ``unknown_user``."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown_user"


def sha256_file(filepath: Path) -> str:
    """Compute SHA-256 of a file.

    Args:
        filepath: Path to the file.

    Returns:
        str: Hex digest.
    """
    h = hashlib.sha256()
    with open(filepath, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


class AuditLog:
    """Appends AuditRecords to the configured remote log file.

    Args:
        store: Remote store used to run the append.
        log_file: Absolute remote path of the log.
        user: Local user to attribute actions to.
    """

    def __init__(
        self,
        store: RemoteStore,
        log_file: str,
        user: Optional[str] = None,
        clock: Optional[Callable] = None,
    ) -> None:
        self.store = store
        self.log_file = log_file
        self.user = user or current_user()
        self._clock = clock

    def record(
        self,
        action: str,
        config_name: str,
        details: str,
        failed: bool = False,
    ) -> AuditRecord:
        """Append one record to the remote log.

        Args:
            action: SAVE, LOAD, LIST, LATEST or REVIEW.
            config_name: Snapshot or target the action concerned.
            details: Free text.
            failed: Append the ``_FAIL`` suffix to the action.

        Returns:
            AuditRecord: The record, whether or not the write succeeded.
        """
        fields = dict(
            user=self.user,
            action=f"{action}{FAIL_SUFFIX}" if failed else action,
            config_name=config_name,
            details=details,
        )
        if self._clock is not None:
            fields["timestamp"] = self._clock()
        entry = AuditRecord(**fields)

        try:
            self._write(entry)
        except AuditLogWriteError as exc:
            logger.warning("%s Log message was: %s", exc, entry.format_line())
        return entry

    def _write(self, entry: AuditRecord) -> None:
        result = self.store.append_line(self.log_file, entry.format_line())
        if not result.ok:
            raise AuditLogWriteError(
                f"Failed to write to remote log {self.log_file} "
                f"({result.stderr.strip() or f'exit {result.returncode}'})."
            )
