"""
Operator CLI for a wallpapy data directory.

Usage:
    wallpapy login alice
    wallpapy add-user bob
    wallpapy comment "more oceans please"
    wallpapy prompt "a lighthouse at dusk"
"""

import asyncio
import json
import os
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .config import ServerConfig, get_data_dir, load_or_create_config
from .errors import WallpapyError, log_exception
from .history import aggregate_history, render_history
from .logging_config import (
    configure_ops_log,
    configure_quiet_mode,
    enable_debug_mode,
    remove_ops_log,
)
from .service import WallpapyService
from .types import Classification, StyleVariant

# Quiet by default; WALLPAPY_VERBOSE=1 turns on debug logging
if os.environ.get("WALLPAPY_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"wallpapy {version('wallpapy')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_data_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _data_callback(value: Optional[Path]):
    global _data_override
    _data_override = value


app = typer.Typer(
    name="wallpapy",
    help="Accounts, history and prompts for a wallpapy server.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    data: Annotated[Optional[Path], typer.Option(
        "--data", "-d",
        envvar="WALLPAPY_DATA_PATH",
        help="Path to the data directory",
        callback=_data_callback,
        is_eager=True,
    )] = None,
):
    """Accounts, history and prompts for a wallpapy server."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_config() -> ServerConfig:
    try:
        return load_or_create_config(get_data_dir(_data_override))
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@contextmanager
def _service() -> Iterator[WallpapyService]:
    """Open the service for one command and close the store afterwards."""
    config = _get_config()
    ops_log = configure_ops_log(config.path)
    try:
        try:
            service = WallpapyService.from_config(config)
        except (ValueError, WallpapyError) as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
        try:
            yield service
        finally:
            service.close()
    finally:
        remove_ops_log(ops_log)


def _fail(e: Exception):
    typer.echo(f"Error: {e}", err=True)
    raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Accounts
# -----------------------------------------------------------------------------

@app.command()
def login(
    username: Annotated[str, typer.Argument(help="Account name")],
    password: Annotated[str, typer.Option(
        "--password", "-p",
        prompt=True,
        hide_input=True,
        help="Password (prompted if omitted)",
    )],
):
    """Log in and print a new token.

    The first login on an empty server creates the admin account.
    """
    with _service() as service:
        try:
            result = service.credentials.login(username, password)
        except WallpapyError as e:
            _fail(e)
    if result.message:
        typer.echo(result.message, err=True)
    typer.echo(result.token)


@app.command("add-user")
def add_user(
    username: Annotated[str, typer.Argument(help="Account name to reserve")],
    admin: Annotated[bool, typer.Option("--admin", help="Grant admin")] = False,
):
    """Reserve an account; its first login sets the password."""
    with _service() as service:
        try:
            account = service.credentials.create_account(username, admin=admin)
        except WallpapyError as e:
            _fail(e)
    typer.echo(f"Reserved {account.username}" + (" (admin)" if account.admin else ""))


@app.command()
def users():
    """List accounts."""
    with _service() as service:
        accounts = service.credentials.list_accounts()
    if _json_output:
        typer.echo(json.dumps([
            {
                "username": a.username,
                "admin": a.admin,
                "password_set": a.has_password,
                "tokens": len(a.tokens),
            }
            for a in accounts
        ], indent=2))
        return
    if not accounts:
        typer.echo("No accounts.")
        return
    for a in accounts:
        flags = []
        if a.admin:
            flags.append("admin")
        if not a.has_password:
            flags.append("no password")
        suffix = f" ({', '.join(flags)})" if flags else ""
        typer.echo(f"{a.username}{suffix} tokens={len(a.tokens)}")


@app.command()
def verify(
    token: Annotated[str, typer.Argument(help="Token to check")],
):
    """Check a token. Exit status 1 if it is not valid."""
    with _service() as service:
        valid = service.credentials.authority.verify(token)
    if not valid:
        typer.echo("Invalid token", err=True)
        raise typer.Exit(1)
    typer.echo("Valid")


# -----------------------------------------------------------------------------
# History and prompts
# -----------------------------------------------------------------------------

@app.command()
def history(
    summarize: Annotated[bool, typer.Option(
        "--summarize/--no-summarize",
        help="Append a summary of older history via the configured provider",
    )] = False,
):
    """Show the rendered history, most recent first."""
    with _service() as service:
        state = service.state.read()
        if summarize:
            text = asyncio.run(aggregate_history(state, service.summarizer))
            lines = text.splitlines()
        else:
            lines = render_history(state).lines
    if _json_output:
        typer.echo(json.dumps(lines, indent=2))
        return
    if not lines:
        typer.echo("No history.")
        return
    for line in lines:
        typer.echo(line)


@app.command()
def prompt(
    request: Annotated[Optional[str], typer.Argument(help="Explicit request for the next image")] = None,
):
    """Show the instructions the next generation would use."""
    with _service() as service:
        state = service.state.read()
        messages = asyncio.run(service.assemble_prompt(state, request))
    if _json_output:
        typer.echo(json.dumps(messages, indent=2))
        return
    typer.echo("\n\n".join(messages))


@app.command()
def comment(
    text: Annotated[Optional[str], typer.Argument(help="Comment text")] = None,
    remove: Annotated[Optional[str], typer.Option(
        "--remove", "-r",
        help="Remove the comment with this id instead",
    )] = None,
):
    """Add a comment to the history (or remove one)."""
    with _service() as service:
        try:
            if remove:
                if not service.state.remove_comment(uuid.UUID(remove)):
                    typer.echo(f"Not found: {remove}", err=True)
                    raise typer.Exit(1)
                typer.echo(f"Removed {remove}")
                return
            if text is None:
                typer.echo("Error: Specify comment text or --remove", err=True)
                raise typer.Exit(1)
            record = service.state.add_comment(text)
        except (ValueError, WallpapyError) as e:
            _fail(e)
    typer.echo(str(record.id))


@app.command()
def style(
    variant: Annotated[Optional[StyleVariant], typer.Argument(help="Which style field to set")] = None,
    value: Annotated[Optional[str], typer.Argument(help="New value")] = None,
):
    """Show the style configuration, or set one field."""
    with _service() as service:
        try:
            if variant is not None:
                if value is None:
                    typer.echo("Error: Specify a value", err=True)
                    raise typer.Exit(1)
                service.state.set_style(variant, value)
            current = service.state.read().style
        except WallpapyError as e:
            _fail(e)
    if _json_output:
        typer.echo(json.dumps(current.to_dict(), indent=2))
        return
    for key, val in current.to_dict().items():
        typer.echo(f"{key}: {val}")


@app.command()
def classify(
    item_id: Annotated[str, typer.Argument(help="Generated item id")],
    classification: Annotated[Classification, typer.Argument(help="Reviewer sentiment")],
):
    """Record how the user felt about a generated item."""
    with _service() as service:
        try:
            service.state.set_classification(uuid.UUID(item_id), classification)
        except (ValueError, WallpapyError) as e:
            _fail(e)
    typer.echo(f"{item_id}: {classification.value}")


@app.command()
def config():
    """Show the data directory and configuration."""
    cfg = _get_config()
    info = {
        "path": str(cfg.path),
        "config": str(cfg.config_path),
        "database": str(cfg.database_path),
        "summarization": {"name": cfg.summarization.name, **cfg.summarization.params},
    }
    if _json_output:
        typer.echo(json.dumps(info, indent=2))
        return
    typer.echo(f"Data:          {info['path']}")
    typer.echo(f"Config:        {info['config']}")
    typer.echo(f"Database:      {info['database']}")
    typer.echo(f"Summarization: {cfg.summarization.name}")
    for key, val in cfg.summarization.params.items():
        typer.echo(f"  {key}: {val}")


def main():
    """Console entry point: one-line errors on stderr, tracebacks to the error log."""
    try:
        app()
    except KeyboardInterrupt:
        raise SystemExit(130)
    except (SystemExit, typer.Exit):
        raise
    except Exception as e:
        log_path = log_exception(e, context="wallpapy CLI")
        typer.echo(f"Error: {e}\nTraceback written to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
