#!/usr/bin/env python3
"""lsphover CLI - ask a language server what is under the cursor."""
from __future__ import annotations
import asyncio
import json
import shutil
import sys
from pathlib import Path
from typing import Optional

import click
from rich import box
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

from .client import HoverClient
from .config import CONFIG_FILENAME, HoverConfig, load_config
from .errors import InvalidArgument, LSPHoverError
from .logging import get_console, get_error_console, get_logger, init_logging

console = get_console()
err_console = get_error_console()
log = get_logger()

USAGE = "lsphover doc file:line:column"


def parse_file_with_cursor(value: str) -> tuple[str, int, int]:
    """Split ``file.txt:line:column`` into ``(path, line, column)``."""
    parts = value.split(":")
    if len(parts) != 3:
        raise InvalidArgument(f"Invalid path format: {value!r} (expected file:line:column)")
    path, line, column = parts
    if not path:
        raise InvalidArgument(f"Missing file path in {value!r}")
    try:
        return path, int(line), int(column)
    except ValueError:
        raise InvalidArgument(f"Line and column must be integers: {value!r}") from None


class AliasedGroup(click.Group):
    """Support command aliases."""

    def get_command(self, ctx, cmd_name):
        aliases = {
            "hover": "doc",
            "h": "doc",
            "d": "doctor",
        }
        cmd_name = aliases.get(cmd_name, cmd_name)
        return super().get_command(ctx, cmd_name)


@click.group(cls=AliasedGroup, invoke_without_command=True)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help=f"Config file (default: ./{CONFIG_FILENAME} if present)")
@click.option("--json", "output_json", is_flag=True, help="Print the raw response envelope as JSON")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None,
              help="Log level (default: from config, else warning)")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Also write JSON logs here")
@click.version_option(version="0.1.0", prog_name="lsphover")
@click.pass_context
def cli(ctx, config_path: Optional[str], output_json: bool, log_level: Optional[str], log_file: Optional[str]):
    """lsphover - hover documentation from a Language Server.

    \b
    Quick start:
      lsphover doc main.go:12:7      # Hover at line 12, column 7
      lsphover doctor                # Check the server executable

    \b
    Aliases:
      hover, h → doc, d → doctor
    """
    try:
        config = load_config(Path.cwd(), Path(config_path) if config_path else None)
    except LSPHoverError as e:
        err_console.print(f"[red]Error: {escape(str(e))}")
        ctx.exit(1)

    init_logging(level=log_level or config.log_level, log_file=Path(log_file) if log_file else None)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["config_path"] = config_path
    ctx.obj["json"] = output_json or config.output_format == "json"

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def apply_overrides(
    config: HoverConfig,
    server: Optional[str],
    server_args: tuple[str, ...],
    timeout: Optional[float],
) -> HoverConfig:
    """Return ``config`` with command-line overrides applied."""
    server_updates = {}
    if server:
        # Default args belong to the default server; a new command starts clean.
        server_updates["command"] = server
        server_updates["args"] = list(server_args)
    elif server_args:
        server_updates["args"] = list(server_args)

    updates = {}
    if server_updates:
        updates["server"] = config.server.model_copy(update=server_updates)
    if timeout is not None:
        updates["request_timeout_seconds"] = timeout
    return config.model_copy(update=updates) if updates else config


@cli.command()
@click.argument("location", nargs=-1, metavar="PATH:LINE:COLUMN")
@click.option("--server", "-s", default=None, help="Language server executable (default: gopls)")
@click.option("--server-arg", "server_args", multiple=True, help="Argument for the server (repeatable)")
@click.option("--timeout", "-t", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Seconds to wait for each response")
@click.option("--markdown", is_flag=True, help="Render the hover text as Markdown")
@click.pass_context
def doc(ctx, location: tuple[str, ...], server: Optional[str], server_args: tuple[str, ...],
        timeout: Optional[float], markdown: bool):
    """Show hover documentation for the symbol at PATH:LINE:COLUMN.

    LINE and COLUMN are 1-based, as shown by most editors.

    \b
    Examples:
      lsphover doc internal/server.go:42:10
      lsphover doc app.py:3:5 -s pyright-langserver --server-arg=--stdio
    """
    if len(location) != 1:
        raise click.UsageError(f"Expected exactly one PATH:LINE:COLUMN argument.\n\n  {USAGE}", ctx=ctx)
    try:
        path, line, column = parse_file_with_cursor(location[0])
        if line < 1 or column < 1:
            raise InvalidArgument(f"Line and column are 1-based: {location[0]!r}")
    except InvalidArgument as e:
        raise click.UsageError(f"{e}\n\n  {USAGE}", ctx=ctx) from e

    config = apply_overrides(ctx.obj["config"], server, server_args, timeout)
    client = HoverClient(config)

    try:
        result = asyncio.run(client.hover(path, line - 1, column - 1))
    except LSPHoverError as e:
        log.debug(f"Hover failed in state {client.state.value}: {e}")
        err_console.print(f"[red]Error: {escape(str(e))}")
        ctx.exit(1)

    if ctx.obj["json"]:
        click.echo(json.dumps(result.response, indent=2, ensure_ascii=False))
        return

    if result.error is None and result.contents is None:
        log.info("Server returned no hover information", request_id=result.request_id)
        return

    if result.error is None and (markdown or config.output_format == "markdown"):
        console.print(Markdown(result.text))
    else:
        click.echo(result.text)


@cli.command()
@click.pass_context
def doctor(ctx):
    """Check that the configured language server can be found."""
    config: HoverConfig = ctx.obj["config"]
    resolved = shutil.which(config.server.command)

    table = Table(title="lsphover", box=box.ROUNDED, show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Config file", ctx.obj["config_path"] or CONFIG_FILENAME)
    table.add_row("Server", config.server.command)
    table.add_row("Resolved", resolved or "[red]not found on PATH")
    table.add_row("Arguments", " ".join(config.server.args) or "-")
    table.add_row("Request timeout", f"{config.request_timeout_seconds}s" if config.request_timeout_seconds else "none")
    table.add_row("Shutdown timeout", f"{config.shutdown_timeout_seconds}s")
    table.add_row("Root markers", ", ".join(config.root_markers))
    console.print(table)

    if resolved is None:
        err_console.print(f"[yellow]Install {config.server.command} or set server.command in {CONFIG_FILENAME}")
        ctx.exit(1)


def main():
    """Entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted")
        sys.exit(130)
    except LSPHoverError as e:
        err_console.print(f"[red]Error: {escape(str(e))}")
        sys.exit(1)


if __name__ == "__main__":
    main()
