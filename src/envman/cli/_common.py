"""Shared utilities for the CLI command modules.

Provides the Rich consoles, the [INFO]/[SUCCESS]/[ERROR] line helpers,
and runtime construction from the click context.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.markup import escape

from ..errors import EnvmanError
from ..models import MatchKind, ResolutionResult
from ..runtime import EnvmanRuntime, get_runtime

console = Console(highlight=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, soft_wrap=True)


def info(message: str) -> None:
    console.print(f"[cyan]\\[INFO][/] {escape(message)}")


def success(message: str) -> None:
    console.print(f"[bold green]\\[SUCCESS][/] {escape(message)}")


def fail(exc: EnvmanError) -> NoReturn:
    """Print an [ERROR] line to stderr and exit with status 1."""
    err_console.print(f"[bold red]\\[ERROR][/] {escape(exc.message)}")
    raise SystemExit(1)


def runtime_from(ctx: click.Context) -> EnvmanRuntime:
    """The runtime for this invocation, built on first use.

    A runtime placed in ``ctx.obj["runtime"]`` beforehand is used as is.
    """
    obj = ctx.ensure_object(dict)
    if obj.get("runtime") is None:
        try:
            obj["runtime"] = get_runtime(
                config_path=Path(obj["config_path"]) if obj.get("config_path") else None,
                identity_file=Path(obj["identity"]) if obj.get("identity") else None,
            )
        except EnvmanError as exc:
            fail(exc)
    return obj["runtime"]


def disclose(result: ResolutionResult, verb: str) -> None:
    """Tell the user how a target resolved, listing every ambiguous match.

    Args:
        result: Resolution to describe.
        verb: "load" or "review".
    """
    doing = "Loading" if verb == "load" else "Reviewing"
    if result.kind == MatchKind.SINGLE_FUZZY_MATCH:
        info(f"Single match found for '{result.target}': '{result.filename}'. {doing} it.")
    elif result.is_ambiguous:
        info(f"Multiple matches found for '{result.target}':")
        for candidate in result.candidates:
            console.print(f"  - {escape(candidate)}")
        info(
            f"{doing} the newest match: '{result.filename}'. "
            f"To {verb} a different specific version, use its full filename."
        )
