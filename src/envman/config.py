"""
Configuration loading.

The config is a YAML file validated into EnvmanConfig. Lookup order:
explicit path, ``$ENVMAN_CONFIG``, ``$ENVMAN_HOME/config.yaml``.
A few keys can be overridden from the environment so CI jobs and
one-off invocations need no file edits.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import ValidationError

from . import ENVMAN_HOME
from .errors import ConfigError
from .models import EnvmanConfig

logger = logging.getLogger("envman.config")

CONFIG_FILENAME = "config.yaml"

ENV_OVERRIDES = {
    "ENVMAN_HOST": "host",
    "ENVMAN_BASE_DIR": "base_dir",
    "ENVMAN_LOG_FILE": "log_file",
    "ENVMAN_IDENTITY_FILE": "identity_file",
}


def default_config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Where the config lives when no path is given."""
    env = os.environ if environ is None else environ
    if env.get("ENVMAN_CONFIG"):
        return Path(env["ENVMAN_CONFIG"]).expanduser()
    home = env.get("ENVMAN_HOME", ENVMAN_HOME)
    return Path(home).expanduser() / CONFIG_FILENAME


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "config"
        problems.append(f"{field}: {err['msg']}")
    return "; ".join(problems)


def load_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EnvmanConfig:
    """Load and validate the envman configuration.

    Args:
        path: Explicit config file. Must exist when given.
        environ: Environment to read overrides from (default os.environ).

    Returns:
        EnvmanConfig: Validated configuration.

    Raises:
        ConfigError: File missing/unparseable or values invalid.
    """
    env = os.environ if environ is None else environ
    config_file = Path(path).expanduser() if path else default_config_path(env)

    data: dict[str, Any] = {}
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigError(f"Failed to read config {config_file}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Config {config_file} must be a YAML mapping")
    elif path:
        raise ConfigError(f"Config file not found: {config_file}")
    else:
        logger.debug("No config file at %s, using environment only", config_file)

    for var, key in ENV_OVERRIDES.items():
        if env.get(var):
            data[key] = env[var]

    try:
        config = EnvmanConfig(**data)
    except ValidationError as exc:
        raise ConfigError(
            f"Invalid envman configuration ({config_file}): {_format_validation_error(exc)}"
        ) from exc

    if config.identity_file is not None:
        identity = config.identity_file.expanduser()
        if not identity.is_file():
            raise ConfigError(f"Identity file not found: {identity}")
        config = config.model_copy(update={"identity_file": identity})

    return config
