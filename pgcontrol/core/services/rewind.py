"""pg_rewind — bring a former primary back in line with the new one."""

from __future__ import annotations

import logging

from pgcontrol.adapters.base import ProgramRunner
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

PG_REWIND = "pg_rewind"


def rewind_conninfo(source: ReplicationSource, database_name: str) -> str:
    """Source connection string for pg_rewind.

    Host, user and database names are plain tokens here, so they are
    not escaped. The password travels through PGPASSWORD.
    """
    return (
        f"host={source.primary.host} "
        f"port={source.primary.port} "
        f"user={source.username} "
        f"dbname={database_name}"
    )


def pg_rewind(
    handle: ServerHandle,
    source: ReplicationSource,
    database_name: str,
    runner: ProgramRunner | None = None,
    connect_timeout: int = POSTGRES_CONNECT_TIMEOUT,
) -> Receipt:
    """Run pg_rewind on ``handle.pgdata`` against the ``source`` primary.

    Raises:
        ExecutionFailure: pg_rewind exited non-zero.
    """
    runner = default_runner(runner)
    program = handle.program_path(PG_REWIND)
    conninfo = rewind_conninfo(source, database_name)

    logger.info("Running %s --target-pgdata \"%s\" --source-server \"%s\" --progress ...",
                program, handle.pgdata, conninfo)

    result = runner.run(
        program,
        ["--target-pgdata", handle.pgdata, "--source-server", conninfo, "--progress"],
        env=connection_env(source.password, connect_timeout),
    )
    log_program_output(result, logger)

    if not result.ok:
        logger.error("Failed to run pg_rewind: exit code %d", result.return_code)
        raise ExecutionFailure("Failed to run pg_rewind", result)

    return Receipt.success("rewind", result)
