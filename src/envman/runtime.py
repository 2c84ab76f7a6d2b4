"""
envman runtime -- the explicit context every command runs in.

Builds the transport, remote store, audit log, resolver, publisher,
retriever and catalog once from a single EnvmanConfig. Nothing is kept
in module globals; each invocation gets its own runtime.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .audit import AuditLog
from .catalog import Catalog
from .config import load_config
from .errors import ConfigError
from .models import EnvmanConfig
from .publisher import Publisher
from .remote_store import RemoteStore
from .resolver import Resolver
from .retriever import Retriever
from .transport import Transport, create_transport

logger = logging.getLogger("envman.runtime")


class EnvmanRuntime:
    """All collaborators for one envman invocation.

    Args:
        config: Validated configuration.
        transport: Override the configured transport (useful for testing).
        clock: Time source for snapshot stamps and audit records.
        user: Local user recorded in the audit log.
    """

    def __init__(
        self,
        config: EnvmanConfig,
        transport: Optional[Transport] = None,
        clock: Optional[Callable[[], datetime]] = None,
        user: Optional[str] = None,
    ) -> None:
        self.config = config
        if transport is None:
            try:
                transport = create_transport(config)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
        self.transport = transport
        self.store = RemoteStore(config, transport)
        self.audit = AuditLog(self.store, config.log_file, user=user, clock=clock)
        self.resolver = Resolver(config, self.store)
        self.publisher = Publisher(config, self.store, self.audit, clock=clock)
        self.retriever = Retriever(config, self.store, self.resolver, self.audit)
        self.catalog = Catalog(config, self.store, self.audit)
        logger.debug("Runtime ready: %s -> %s", transport.name, config.base_dir)


def get_runtime(
    config_path: Optional[Path] = None,
    identity_file: Optional[Path] = None,
) -> EnvmanRuntime:
    """Load the configuration and build a runtime.

    Args:
        config_path: Explicit config file.
        identity_file: SSH identity overriding the configured one.

    Returns:
        EnvmanRuntime ready for use.

    Raises:
        ConfigError: Configuration missing or invalid.
    """
    config = load_config(config_path)
    if identity_file is not None:
        identity = Path(identity_file).expanduser()
        if not identity.is_file():
            raise ConfigError(f"Identity file not found: {identity}")
        config = config.model_copy(update={"identity_file": identity})
    return EnvmanRuntime(config)
