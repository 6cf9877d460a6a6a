"""
pg_basebackup — clone a primary into a staging directory, then swap.

The backup lands in a separate directory first. Only once
pg_basebackup succeeds is the live data directory removed and the
staging directory renamed in its place. Both directories must be on
the same filesystem for the rename to work.
"""

from __future__ import annotations

import logging

from pgcontrol.adapters.base import ProgramRunner
from pgcontrol.adapters.shell import filesystem
from pgcontrol.core.errors import ExecutionFailure
from pgcontrol.core.models.program import Receipt
from pgcontrol.core.models.setup import ReplicationSource, ServerHandle
from pgcontrol.core.services.pg_common import (
    POSTGRES_CONNECT_TIMEOUT,
    connection_env,
    default_runner,
    log_program_output,
)

logger = logging.getLogger(__name__)

PG_BASEBACKUP = "pg_basebackup"


def basebackup_args(backup_dir: str, source: ReplicationSource) -> list[str]:
    """Argument vector for pg_basebackup; never carries the password."""
    return [
        "-w",
        "-h", source.primary.host,
        "-p", str(source.primary.port),
        "--pgdata", backup_dir,
        "-U", source.username,
        "--verbose",
        "--progress",
        "--write-recovery-conf",
        "--max-rate", source.maximum_backup_rate,
        "--wal-method=stream",
        "--slot", source.slot_name,
    ]


def pg_basebackup(
    handle: ServerHandle,
    backup_dir: str,
    source: ReplicationSource,
    runner: ProgramRunner | None = None,
    connect_timeout: int = POSTGRES_CONNECT_TIMEOUT,
) -> Receipt:
    """Take a base backup of ``source`` and install it as ``handle.pgdata``.

    On failure the staging directory is left in place for inspection.

    Raises:
        ExecutionFailure: pg_basebackup exited non-zero.
        IOFailure: Preparing, removing or renaming a directory failed.
    """
    runner = default_runner(runner)

    logger.debug("mkdir -p \"%s\"", backup_dir)
    filesystem.ensure_empty_dir(backup_dir, 0o700)

    program = handle.program_path(PG_BASEBACKUP)
    args = basebackup_args(backup_dir, source)
    logger.info("Running %s -w -h %s -p %d --pgdata %s -U %s --write-recovery-conf "
                "--max-rate %s --wal-method=stream --slot %s ...",
                program, source.primary.host, source.primary.port, backup_dir,
                source.username, source.maximum_backup_rate, source.slot_name)

    result = runner.run(
        program,
        args,
        env=connection_env(source.password, connect_timeout),
    )
    log_program_output(result, logger)

    if not result.ok:
        logger.error("Failed to run pg_basebackup: exit code %d", result.return_code)
        raise ExecutionFailure("Failed to run pg_basebackup", result)

    if filesystem.directory_exists(handle.pgdata):
        logger.debug("rm -rf \"%s\"", handle.pgdata)
        filesystem.remove_tree(handle.pgdata)

    logger.debug("mv \"%s\" \"%s\"", backup_dir, handle.pgdata)
    filesystem.rename_dir(backup_dir, handle.pgdata)

    return Receipt.success("basebackup", result, metadata={"backup_dir": backup_dir})
