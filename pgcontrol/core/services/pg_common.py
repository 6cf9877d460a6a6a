"""PostgreSQL shared helpers — program output logging, runner defaults,
connection environment."""

from __future__ import annotations

import logging

from pgcontrol.adapters.base import ProgramRunner
from pgcontrol.adapters.shell.command import SubprocessRunner
from pgcontrol.core.models.program import ProgramResult

logger = logging.getLogger(__name__)

# Seconds, passed to libpq through PGCONNECT_TIMEOUT
POSTGRES_CONNECT_TIMEOUT = 2


def default_runner(runner: ProgramRunner | None) -> ProgramRunner:
    return runner if runner is not None else SubprocessRunner()


def log_program_output(result: ProgramResult, log: logging.Logger = logger) -> None:
    """Log stdout at INFO, stderr at INFO on success and ERROR otherwise."""
    if result.stdout.strip():
        log.info("%s", result.stdout.rstrip())

    if result.stderr.strip():
        if result.ok:
            log.info("%s", result.stderr.rstrip())
        else:
            log.error("%s", result.stderr.rstrip())


def connection_env(
    password: str | None,
    connect_timeout: int = POSTGRES_CONNECT_TIMEOUT,
) -> dict[str, str]:
    """libpq environment for a child process connecting to another node.

    Credentials travel through the child's environment, never through
    its argument vector, so they don't show up in process listings.
    """
    env = {"PGCONNECT_TIMEOUT": str(connect_timeout)}
    if password is not None:
        env["PGPASSWORD"] = password
    return env
