"""
pgcontrol — CLI entrypoint.

Usage:
    python -m pgcontrol.main --help
    python -m pgcontrol.main status
    python -m pgcontrol.main standby
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Any

import click

from pgcontrol import __version__
from pgcontrol.adapters.base import ProgramRunner
from pgcontrol.adapters.shell.command import SubprocessRunner
from pgcontrol.core.errors import ConfigurationFailure, PgControlError
from pgcontrol.core.models.config import ControlConfig
from pgcontrol.core.models.program import Receipt
from pgcontrol.core.observability.logging_config import (
    LOG_FILE_ENV,
    LOG_FILE_LEVEL_ENV,
    LOG_LEVEL_ENV,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="pgcontrol")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to pgcontrol.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """pgcontrol — drive pg_ctl and friends for one PostgreSQL instance."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj.setdefault("runner", SubprocessRunner())

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get(LOG_LEVEL_ENV, "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get(LOG_FILE_ENV),
        log_file_level=os.environ.get(LOG_FILE_LEVEL_ENV),
        quiet_third_party=not debug,
    )


# ── Helpers ─────────────────────────────────────────────────────────


def _runner(ctx: click.Context) -> ProgramRunner:
    return ctx.obj["runner"]


def _config(ctx: click.Context) -> ControlConfig:
    if "config" not in ctx.obj:
        from pgcontrol.core.config.loader import load_config

        ctx.obj["config"] = load_config(ctx.obj.get("config_path"))
    return ctx.obj["config"]


def _replication(ctx: click.Context):
    config = _config(ctx)
    if config.replication is None:
        raise click.UsageError("No 'replication' section in the configuration.")
    return config.replication


def _fails_cleanly(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn a PgControlError into a red message and exit code 1."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except PgControlError as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(1)

    return wrapper


def _report(receipt: Receipt) -> None:
    if receipt.recovered:
        click.secho(f"⚠️  {receipt.operation}: {receipt.detail}", fg="yellow")
    else:
        click.secho(f"✅ {receipt.operation} done", fg="green")


# ── Discovery ───────────────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@_fails_cleanly
def find(ctx: click.Context, as_json: bool) -> None:
    """Find pg_ctl programs in PATH."""
    from pgcontrol.core.services.pg_version import find_pg_ctl

    search = find_pg_ctl(runner=_runner(ctx))

    if as_json:
        click.echo(json.dumps(search.model_dump(), indent=2))
        return

    if not search.programs:
        click.secho("❌ No pg_ctl found in PATH", fg="red")
        sys.exit(1)

    for found in search.programs:
        marker = " ← selected" if found == search.selected else ""
        click.echo(f"   • {found.path} (PostgreSQL {found.version or '?'}){marker}")

    if search.selected is None:
        click.secho("⚠️  Several pg_ctl found, set postgres.pg_ctl in pgcontrol.yml",
                    fg="yellow")


@cli.command()
@click.option("--missing-ok", is_flag=True, help="Succeed when there is no control data.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@_fails_cleanly
def controldata(ctx: click.Context, missing_ok: bool, as_json: bool) -> None:
    """Show pg_controldata fields for the data directory."""
    from pgcontrol.core.services.controldata import pg_controldata

    data = pg_controldata(_config(ctx).postgres, missing_ok=missing_ok, runner=_runner(ctx))

    if data is None:
        click.echo("No control data (data directory not initialized?)")
        return

    if as_json:
        click.echo(json.dumps(data.model_dump(), indent=2))
        return

    click.echo(f"pg_control version number: {data.pg_control_version}")
    click.echo(f"Catalog version number:    {data.catalog_version_no}")
    click.echo(f"Database system identifier: {data.system_identifier}")


# ── Lifecycle ───────────────────────────────────────────────────────


def _pg_ctl(ctx: click.Context):
    from pgcontrol.core.services.pg_ctl import PgCtl

    return PgCtl(_config(ctx).postgres, runner=_runner(ctx))


@cli.command()
@click.pass_context
@_fails_cleanly
def initdb(ctx: click.Context) -> None:
    """Initialize the data directory."""
    _report(_pg_ctl(ctx).initdb())


@cli.command()
@click.pass_context
@_fails_cleanly
def start(ctx: click.Context) -> None:
    """Start PostgreSQL (already running counts as success)."""
    _report(_pg_ctl(ctx).start())


@cli.command()
@click.pass_context
@_fails_cleanly
def stop(ctx: click.Context) -> None:
    """Stop PostgreSQL in fast mode (not running counts as success)."""
    _report(_pg_ctl(ctx).stop())


@cli.command()
@click.pass_context
@_fails_cleanly
def restart(ctx: click.Context) -> None:
    """Restart PostgreSQL in fast mode."""
    _report(_pg_ctl(ctx).restart())


@cli.command()
@click.pass_context
@_fails_cleanly
def promote(ctx: click.Context) -> None:
    """Promote a standby."""
    _report(_pg_ctl(ctx).promote())


@cli.command()
@click.pass_context
@_fails_cleanly
def status(ctx: click.Context) -> None:
    """Show whether PostgreSQL is running; exits with pg_ctl's status code."""
    from pgcontrol.core.services.pg_ctl import (
        PG_CTL_STATUS_NOT_RUNNING,
        PG_CTL_STATUS_RUNNING,
    )

    code = _pg_ctl(ctx).status(log_output=not ctx.obj.get("quiet", False))

    if code == PG_CTL_STATUS_RUNNING:
        click.secho("running", fg="green")
    elif code == PG_CTL_STATUS_NOT_RUNNING:
        click.secho("not running", fg="yellow")
    else:
        click.secho(f"unknown (pg_ctl status returned {code})", fg="red")
    sys.exit(code)


# ── Configuration ───────────────────────────────────────────────────


@cli.command()
@click.pass_context
@_fails_cleanly
def defaults(ctx: click.Context) -> None:
    """Install the default settings file and include it from postgresql.conf."""
    from pgcontrol.core.services.pg_config import add_default_settings

    handle = _config(ctx).postgres
    add_default_settings(handle)
    click.secho(f"✅ Default settings included from {handle.postgresql_conf}", fg="green")


@cli.command()
@click.pass_context
@_fails_cleanly
def standby(ctx: click.Context) -> None:
    """Configure the data directory to follow the primary."""
    from pgcontrol.core.services.controldata import pg_controldata
    from pgcontrol.core.services.standby import setup_standby_mode

    config = _config(ctx)
    source = _replication(ctx)
    data = pg_controldata(config.postgres, runner=_runner(ctx))
    if data is None:
        raise ConfigurationFailure(
            f"No control data in \"{config.postgres.pgdata}\", initialize it first"
        )

    path = setup_standby_mode(
        data.pg_control_version,
        config.postgres.postgresql_conf,
        config.postgres.pgdata,
        source,
    )
    click.secho(f"✅ Standby mode set up ({path})", fg="green")


# ── Cloning ─────────────────────────────────────────────────────────


@cli.command()
@click.option("--backup-dir", default=None, help="Staging directory for the backup.")
@click.pass_context
@_fails_cleanly
def basebackup(ctx: click.Context, backup_dir: str | None) -> None:
    """Clone the primary into the data directory with pg_basebackup."""
    from pgcontrol.core.config.loader import resolve_backup_dir
    from pgcontrol.core.services.basebackup import pg_basebackup

    config = _config(ctx)
    _report(pg_basebackup(
        config.postgres,
        backup_dir or resolve_backup_dir(config),
        _replication(ctx),
        runner=_runner(ctx),
        connect_timeout=config.connect_timeout,
    ))


@cli.command()
@click.option("--dbname", default=None, help="Database to connect to on the primary.")
@click.pass_context
@_fails_cleanly
def rewind(ctx: click.Context, dbname: str | None) -> None:
    """Rewind the data directory to follow the primary with pg_rewind."""
    from pgcontrol.core.services.rewind import pg_rewind

    config = _config(ctx)
    _report(pg_rewind(
        config.postgres,
        _replication(ctx),
        dbname or config.database_name,
        runner=_runner(ctx),
        connect_timeout=config.connect_timeout,
    ))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
