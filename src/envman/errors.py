"""Exception taxonomy for envman.

Every error carries a short ``reason`` tag that ends up in the audit log
and the ``target`` that was being acted on, when there is one.
"""

from __future__ import annotations

from typing import Optional


class EnvmanError(Exception):
    """Base class for every failure surfaced to the caller."""

    reason = "error"

    def __init__(
        self,
        message: str,
        target: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.target = target
        if reason is not None:
            self.reason = reason


class ConfigError(EnvmanError):
    """Configuration is missing or invalid."""

    reason = "error_config"


class ResolutionError(EnvmanError):
    """A requested target could not be turned into a remote file."""

    reason = "error_resolution"


class InvalidNameError(ResolutionError):
    """A nickname contains characters outside ``[A-Za-z0-9_.-]``."""

    reason = "error_invalid_name"


class SymlinkMissingOrInvalid(ResolutionError):
    """The latest pointer is absent, unreadable, or escapes the storage dir."""

    reason = "error_symlink_resolve"


class NoMatchError(ResolutionError):
    """No snapshot matches a nickname prefix."""

    reason = "no_fuzzy_match"


class TargetNotFoundError(ResolutionError):
    """The resolved remote path is not an existing regular file."""

    reason = "error_target_not_found_or_not_file"


class TransferError(EnvmanError):
    """Moving bytes to or from the remote host failed."""

    reason = "error_transfer"


class TruncatedTransferError(TransferError):
    """A download came back empty although the remote file has content."""

    reason = "error_truncated_transfer"


class PublishFailedError(EnvmanError):
    """A save could not be finalized on the remote host."""

    reason = "error_publish"

    def __init__(
        self,
        message: str,
        target: Optional[str] = None,
        reason: Optional[str] = None,
        cause: Optional[str] = None,
    ) -> None:
        super().__init__(message, target=target, reason=reason)
        self.cause = cause


class AuditLogWriteError(EnvmanError):
    """The remote audit log could not be appended to."""

    reason = "error_audit_write"
