"""
Load and review protocol -- fetch a snapshot by target.

Load writes the snapshot to a local file; review streams it to a
display sink. Both resolve first, hand the resolution to the caller
(so ambiguous nickname matches are always disclosed), then transfer,
then record LOAD/REVIEW or the matching ``_FAIL`` action.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Union

from .audit import AuditLog
from .errors import EnvmanError, TransferError, TruncatedTransferError
from .models import EnvmanConfig, MatchKind, ResolutionResult, RetrievalResult
from .remote_store import RemoteStore
from .resolver import Resolver

logger = logging.getLogger("envman.retriever")

Destination = Union[Path, BinaryIO]
ResolvedCallback = Callable[[ResolutionResult], None]


def _log_resolution(result: ResolutionResult) -> None:
    if result.kind == MatchKind.SINGLE_FUZZY_MATCH:
        logger.info("Single match found for '%s': '%s'", result.target, result.filename)
    elif result.is_ambiguous:
        logger.info(
            "Multiple matches found for '%s': %s; selected newest '%s'",
            result.target, ", ".join(result.candidates), result.filename,
        )


def _write_atomic(output: Path, data: bytes) -> None:
    """Write ``data`` to ``output`` via a temp file in the same directory."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{output.name}.", dir=output.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, output)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class Retriever:
    """Fetches snapshots from the storage directory.

    Args:
        config: envman configuration.
        store: Remote store used for reads.
        resolver: Target resolver.
        audit: Audit log.
    """

    def __init__(
        self,
        config: EnvmanConfig,
        store: RemoteStore,
        resolver: Resolver,
        audit: AuditLog,
    ) -> None:
        self.config = config
        self.store = store
        self.resolver = resolver
        self.audit = audit

    def retrieve(
        self,
        target: Optional[str],
        destination: Destination,
        on_resolved: Optional[ResolvedCallback] = None,
    ) -> RetrievalResult:
        """Resolve ``target`` and copy the snapshot to ``destination``.

        A Path destination is a load, anything else is treated as a
        writable binary stream and the call is a review.
        """
        if isinstance(destination, (str, os.PathLike)):
            return self.load(target, Path(destination), on_resolved=on_resolved)
        return self.review(target, destination, on_resolved=on_resolved)

    def _resolve(self, action: str, target: Optional[str], context: str) -> ResolutionResult:
        try:
            return self.resolver.resolve(target)
        except EnvmanError as exc:
            self.audit.record(
                action,
                target or self.config.symlink_name,
                f"Resolution failed: {exc.reason}{context}",
                failed=True,
            )
            raise

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load(
        self,
        target: Optional[str],
        output: Path,
        on_resolved: Optional[ResolvedCallback] = None,
    ) -> RetrievalResult:
        """Download a snapshot into a local file.

        Args:
            target: Empty/"latest", full filename, or nickname.
            output: Local destination; parent directories are created.
            on_resolved: Called with the resolution before transferring.

        Returns:
            RetrievalResult with byte count and SHA-256 of the local copy.

        Raises:
            ResolutionError: The target did not resolve.
            TransferError: Download failed; no local file is left behind.
            TruncatedTransferError: Empty download of a non-empty snapshot.
        """
        output = Path(output)
        resolution = self._resolve("LOAD", target, f" for target local file {output}")
        _log_resolution(resolution)
        if on_resolved is not None:
            on_resolved(resolution)
        name = resolution.filename

        try:
            output.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self.audit.record("LOAD", name, f"Cannot create {output.parent}: {exc}", failed=True)
            raise TransferError(
                f"Failed to create local directory '{output.parent}' for output "
                f"file '{output}'.",
                target=name,
            ) from exc

        logger.info("Downloading '%s' to '%s'", name, output)
        try:
            data = self.store.read_bytes(resolution.path)
        except TransferError as exc:
            self.audit.record(
                "LOAD", name,
                f"Download failed from {resolution.path} to {output}",
                failed=True,
            )
            raise TransferError(
                f"Failed to download file from remote: {resolution.path} to {output}",
                target=name,
            ) from exc

        if not data:
            try:
                source_has_content = self.store.has_content(resolution.path)
            except TransferError:
                self.audit.record(
                    "LOAD", name,
                    f"Downloaded file empty, could not check source. Target: {output}",
                    failed=True,
                )
                raise
            if source_has_content:
                self.audit.record(
                    "LOAD", name,
                    f"Downloaded file empty, source not. Target: {output}",
                    failed=True,
                )
                raise TruncatedTransferError(
                    f"Downloaded '{output}' is empty, but remote source "
                    f"'{resolution.path}' has content. Download may have been interrupted.",
                    target=name,
                )
            logger.info("Remote source '%s' is itself empty", resolution.path)

        try:
            _write_atomic(output, data)
        except OSError as exc:
            self.audit.record("LOAD", name, f"Cannot write {output}: {exc}", failed=True)
            raise TransferError(f"Failed to write '{output}': {exc}", target=name) from exc

        content_hash = hashlib.sha256(data).hexdigest()
        self.audit.record("LOAD", name, f"Dest: {output}, Hash: {content_hash}")
        return RetrievalResult(
            resolution=resolution,
            destination=str(output),
            bytes_written=len(data),
            content_hash=content_hash,
        )

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    def review(
        self,
        target: Optional[str],
        sink: BinaryIO,
        on_resolved: Optional[ResolvedCallback] = None,
    ) -> RetrievalResult:
        """Stream a snapshot's content to ``sink`` for display.

        Raises:
            ResolutionError: The target did not resolve.
            TransferError: The remote file could not be read or displayed.
        """
        resolution = self._resolve("REVIEW", target, "")
        _log_resolution(resolution)
        if on_resolved is not None:
            on_resolved(resolution)
        name = resolution.filename

        try:
            data = self.store.read_bytes(resolution.path)
        except TransferError:
            self.audit.record(
                "REVIEW", name, f"Failed to cat remote file: {resolution.path}", failed=True
            )
            raise

        try:
            sink.write(data)
            sink.flush()
        except OSError as exc:
            self.audit.record("REVIEW", name, f"Failed to display content: {exc}", failed=True)
            raise TransferError(f"Failed to display '{name}': {exc}", target=name) from exc

        self.audit.record("REVIEW", name, "Content displayed")
        return RetrievalResult(
            resolution=resolution,
            destination="<display>",
            bytes_written=len(data),
        )
