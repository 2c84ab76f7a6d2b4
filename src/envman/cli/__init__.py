"""
envman CLI -- versioned environment files on a remote host.

The main Click group is defined here; command modules register
themselves via register functions.

Entry point: envman.cli:main
"""

from __future__ import annotations

import logging
from typing import Optional

import click

from .. import __version__

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="envman")
@click.option(
    "--config", "config_path", default=None, type=click.Path(dir_okay=False),
    help="Config file (default: $ENVMAN_CONFIG or ~/.envman/config.yaml).",
)
@click.option(
    "-i", "--identity", default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to SSH private key for authentication.",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], identity: Optional[str], verbose: bool):
    """envman — manage environment configurations on a remote host.

    Snapshots are stored as NAME_YYYY_MM_DD_HH_MM_SS.env next to a
    latest pointer that always names the most recent save.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )
    obj = ctx.ensure_object(dict)
    obj.setdefault("config_path", config_path)
    obj.setdefault("identity", identity)


# ---------------------------------------------------------------------------
# Register command modules
# ---------------------------------------------------------------------------

from .configs import register_config_commands

register_config_commands(main)
