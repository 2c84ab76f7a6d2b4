"""Listing and pointer inspection: the ``ls`` and ``latest`` commands."""

from __future__ import annotations

import logging
from typing import Optional

from .audit import AuditLog
from .errors import SymlinkMissingOrInvalid, TransferError
from .models import EnvmanConfig
from .naming import chronological_key, matches_prefix
from .remote_store import RemoteStore

logger = logging.getLogger("envman.catalog")

ALL_LABEL = "ALL_AND_LATEST_SYMLINK"


class Catalog:
    """Read-only views of the storage directory.

    Args:
        config: envman configuration.
        store: Remote store used for listing.
        audit: Audit log.
    """

    def __init__(self, config: EnvmanConfig, store: RemoteStore, audit: AuditLog) -> None:
        self.config = config
        self.store = store
        self.audit = audit

    def list(self, prefix: Optional[str] = None) -> list[str]:
        """Snapshot filenames in sorted order.

        A nickname filter orders by timestamp, oldest first. The unfiltered
        listing is plain lexicographic, grouping snapshots by nickname.

        Without a filter the latest pointer's own name is included when the
        pointer exists. A LIST record is written even for an empty result.

        Args:
            prefix: Only snapshots of this nickname.

        Returns:
            list[str]: Sorted filenames.

        Raises:
            TransferError: The remote listing failed.
        """
        label = prefix or ALL_LABEL
        try:
            names = self.store.list_snapshot_files()
            if prefix:
                names = [n for n in names if matches_prefix(n, prefix)]
            elif self.store.read_latest_link() is not None:
                names.append(self.config.symlink_name)
        except TransferError as exc:
            self.audit.record("LIST", label, f"Listing failed: {exc}", failed=True)
            raise

        names = sorted(names, key=chronological_key if prefix else None)
        logger.debug("Listed %d entries for %s", len(names), label)
        self.audit.record("LIST", label, f"Listed configurations ({len(names)} found)")
        return names

    def latest(self) -> str:
        """Raw target of the latest pointer.

        Raises:
            SymlinkMissingOrInvalid: The pointer is missing or unreadable.
        """
        link = self.config.symlink_name
        target = self.store.read_latest_link()
        if target is None:
            self.audit.record("LATEST", link, "Failed to display symlink target", failed=True)
            raise SymlinkMissingOrInvalid(
                f"'{link}' symlink not found or error checking it in {self.config.base_dir}.",
                target=link,
            )
        self.audit.record("LATEST", link, f"Displayed symlink target: {target}")
        return target
