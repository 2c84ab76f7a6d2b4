"""
Save protocol -- publish a local file as a new snapshot.

Steps:
    1. Validate the nickname and the local file; hash the file.
    2. Name the snapshot ``{nickname|unnamed}_{UTC stamp}.env``.
    3. Upload to a unique staging path outside the storage directory.
    4. Finalize remotely in one script: install under the permanent
       name, set ownership/mode, swap the latest pointer.
    5. On failure clean up leftovers; the previous pointer stays valid.
    6. Record SAVE in the audit log.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .audit import AuditLog, sha256_file
from .errors import EnvmanError, PublishFailedError, TransferError
from .models import EnvmanConfig, Snapshot
from .naming import build_filename, format_timestamp, validate_name
from .remote_store import FINAL_EXISTS, RemoteStore

logger = logging.getLogger("envman.publisher")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Publisher:
    """Publishes local files as snapshots.

    Args:
        config: envman configuration.
        store: Remote store for upload, finalize and cleanup.
        audit: Audit log to record saves in.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        config: EnvmanConfig,
        store: RemoteStore,
        audit: AuditLog,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.audit = audit
        self.clock = clock or utc_now

    def publish(self, local_file: Path, nickname: Optional[str] = None) -> Snapshot:
        """Save ``local_file`` remotely and point latest at it.

        Args:
            local_file: File to publish. Never modified.
            nickname: Logical name; the unnamed prefix when omitted.

        Returns:
            Snapshot: The new snapshot, with its content hash.

        Raises:
            InvalidNameError: Bad nickname; nothing was transferred.
            PublishFailedError: Local file unusable, or upload/finalize failed.
        """
        logical_name = validate_name(nickname) if nickname else self.config.unnamed_prefix
        local_file = Path(local_file)

        if not local_file.is_file():
            raise PublishFailedError(
                f"Local source file '{local_file}' not found.",
                target=str(local_file),
            )
        try:
            content_hash = sha256_file(local_file)
        except OSError as exc:
            raise PublishFailedError(
                f"Local source file '{local_file}' is not readable.",
                target=str(local_file),
                cause=str(exc),
            ) from exc

        moment = self.clock()
        filename = build_filename(logical_name, moment)
        plan = self.store.plan_publish(filename, content_hash)

        try:
            logger.info("Uploading '%s' to remote temporary location...", local_file)
            self.store.upload(local_file, plan)

            logger.info("Finalizing file and symlink on remote server...")
            result = self.store.finalize(plan)
            if not result.ok:
                cause = result.stderr.strip() or f"exit {result.returncode}"
                self.store.cleanup(plan, remove_final=result.returncode != FINAL_EXISTS)
                raise PublishFailedError(
                    f"Failed to finalize '{filename}' and symlink on remote server: {cause}",
                    target=filename,
                    cause=cause,
                )
        except TransferError as exc:
            self.store.cleanup(plan, remove_final=False)
            self.audit.record(
                "SAVE", filename, f"Nickname: {logical_name}, Source: {local_file}, {exc}",
                failed=True,
            )
            raise PublishFailedError(str(exc), target=filename, cause=str(exc)) from exc
        except EnvmanError as exc:
            self.audit.record(
                "SAVE", filename, f"Nickname: {logical_name}, Source: {local_file}, {exc}",
                failed=True,
            )
            raise

        self.audit.record(
            "SAVE",
            f"{filename} (symlinked by {self.config.symlink_name})",
            f"Nickname: {logical_name}, Source: {local_file}, Hash: {content_hash}",
        )
        logger.info("Published %s (sha256 %s)", filename, content_hash)
        return Snapshot(
            logical_name=logical_name,
            stamp=format_timestamp(moment),
            content_hash=content_hash,
        )
