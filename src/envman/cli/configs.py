"""Config snapshot commands: save, load, ls, latest, review."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click
from rich.markup import escape

from ..errors import EnvmanError
from ..models import ResolutionResult
from ._common import console, disclose, fail, info, runtime_from, success


def register_config_commands(main: click.Group) -> None:
    """Register the snapshot commands on the main CLI group."""

    @main.command()
    @click.argument("nickname", required=False)
    @click.option(
        "--input", "-i", "input_path", default=None, type=click.Path(dir_okay=False),
        help="Local file to save (default: configured local_env_file).",
    )
    @click.pass_context
    def save(ctx: click.Context, nickname: Optional[str], input_path: Optional[str]):
        """Save a local file to the remote host as a new snapshot.

        The snapshot is named NICKNAME_YYYY_MM_DD_HH_MM_SS.env (or uses the
        unnamed prefix) and the latest pointer is moved to it.

        Examples:

            envman save

            envman save db -i config/.env.production
        """
        runtime = runtime_from(ctx)
        source = Path(input_path) if input_path else runtime.config.local_env_file
        info(f"Using source file: '{source}'")

        try:
            snapshot = runtime.publisher.publish(source, nickname)
        except EnvmanError as exc:
            fail(exc)

        success(
            f"Saved '{source}' to remote as '{snapshot.filename}'. "
            f"'{runtime.config.symlink_name}' now points to this file."
        )

    @main.command()
    @click.argument("target", required=False, default="")
    @click.option(
        "--output", "-o", "output_path", default=None, type=click.Path(dir_okay=False),
        help="Local file to write (default: configured local_env_file).",
    )
    @click.pass_context
    def load(ctx: click.Context, target: str, output_path: Optional[str]):
        """Load a remote snapshot into a local file.

        TARGET may be empty (the latest pointer), a nickname (newest match
        wins), or a full timestamped filename.

        Examples:

            envman load

            envman load db -o .env.db
        """
        runtime = runtime_from(ctx)
        output = Path(output_path) if output_path else runtime.config.local_env_file
        info(f"Using output file: '{output}'")

        try:
            result = runtime.retriever.load(
                target, output, on_resolved=lambda r: disclose(r, "load")
            )
        except EnvmanError as exc:
            fail(exc)

        if result.bytes_written == 0:
            info(
                f"Downloaded '{output}' is empty, and remote source "
                f"'{result.resolution.path}' is also empty."
            )
        success(f"Loaded '{result.resolution.filename}' from remote to '{output}'.")

    @main.command("ls")
    @click.argument("prefix", required=False)
    @click.pass_context
    def ls_cmd(ctx: click.Context, prefix: Optional[str]):
        """List remote configuration filenames, oldest first."""
        runtime = runtime_from(ctx)
        try:
            names = runtime.catalog.list(prefix)
        except EnvmanError as exc:
            fail(exc)

        base_dir = runtime.config.base_dir
        if not names:
            if prefix:
                console.print(
                    f"[dim](No remote configurations found matching prefix "
                    f"'{escape(prefix)}' in {escape(base_dir)})[/]"
                )
            else:
                console.print(
                    f"[dim](No timestamped remote configurations or "
                    f"'{escape(runtime.config.symlink_name)}' found in {escape(base_dir)})[/]"
                )
            return
        for name in names:
            console.print(escape(name))

    @main.command()
    @click.pass_context
    def latest(ctx: click.Context):
        """Show what the latest pointer names on the remote host."""
        runtime = runtime_from(ctx)
        try:
            target = runtime.catalog.latest()
        except EnvmanError as exc:
            fail(exc)
        console.print(escape(target))

    @main.command()
    @click.argument("target", required=False, default="")
    @click.pass_context
    def review(ctx: click.Context, target: str):
        """Display the content of a remote snapshot.

        TARGET is resolved exactly as for load.
        """
        runtime = runtime_from(ctx)
        resolved: list[ResolutionResult] = []

        def on_resolved(result: ResolutionResult) -> None:
            resolved.append(result)
            disclose(result, "review")
            console.print(f"--- START OF REMOTE FILE: {escape(result.filename)} ---")

        sink = click.get_binary_stream("stdout")
        try:
            result = runtime.retriever.review(target, sink, on_resolved=on_resolved)
        except EnvmanError as exc:
            if resolved:
                console.print(
                    f"--- END OF REMOTE FILE: {escape(resolved[0].filename)} "
                    "(Error reading or file not found) ---"
                )
            fail(exc)

        console.print(f"--- END OF REMOTE FILE: {escape(result.resolution.filename)} ---")
