"""
pg_controldata — read the control file of a data directory.

We only need a few fields (chiefly ``pg_control version number``, to
know which standby setup applies), but every ``key: value`` line is
kept in ``ControlData.fields`` for diagnostics.
"""

from __future__ import annotations

import logging

from pgcontrol.adapters.base import ProgramRunner
from pgcontrol.core.errors import ConfigurationFailure, ExecutionFailure, ParseFailure
from pgcontrol.core.models.program import ProgramResult
from pgcontrol.core.models.setup import ControlData, ServerHandle
from pgcontrol.core.reliability.retry import RetryPolicy, retry_while
from pgcontrol.core.services.pg_common import default_runner

logger = logging.getLogger(__name__)

PG_CONTROLDATA = "pg_controldata"

# Output is parsed, so it must not be translated
CONTROLDATA_ENV = {"LANG": "C", "LC_ALL": "C"}

# Empty output happens once in a while; one more try after a second
DEFAULT_RETRY = RetryPolicy(max_attempts=2, delay=1.0)

_CONTROL_VERSION_KEY = "pg_control version number"
_CATALOG_VERSION_KEY = "Catalog version number"
_SYSTEM_IDENTIFIER_KEY = "Database system identifier"


def parse_controldata(text: str) -> ControlData:
    """Parse pg_controldata output into a ControlData.

    Raises:
        ParseFailure: A required field is missing or not a number.
    """
    fields: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        fields[key.strip()] = value.strip()

    missing = [
        key for key in (_CONTROL_VERSION_KEY, _CATALOG_VERSION_KEY, _SYSTEM_IDENTIFIER_KEY)
        if not fields.get(key)
    ]
    if missing:
        raise ParseFailure(
            f"Failed to parse pg_controldata output, missing {', '.join(missing)}",
            text,
        )

    try:
        return ControlData(
            pg_control_version=int(fields[_CONTROL_VERSION_KEY]),
            catalog_version_no=int(fields[_CATALOG_VERSION_KEY]),
            system_identifier=fields[_SYSTEM_IDENTIFIER_KEY],
            fields=fields,
        )
    except ValueError as e:
        raise ParseFailure(f"Failed to parse pg_controldata output: {e}", text) from e


def pg_controldata(
    handle: ServerHandle,
    missing_ok: bool = False,
    runner: ProgramRunner | None = None,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> ControlData | None:
    """Run pg_controldata on ``handle.pgdata`` and parse its output.

    Args:
        handle: The instance; ``pg_ctl`` and ``pgdata`` must be set.
        missing_ok: When True, a failing pg_controldata (typically on a
            data directory that is not initialized yet) returns None.
        runner: Program runner (default: subprocess).
        retry: Policy for the known empty-output glitch.

    Raises:
        ConfigurationFailure: ``pg_ctl`` or ``pgdata`` is empty.
        ExecutionFailure: pg_controldata failed and ``missing_ok`` is False.
        ParseFailure: The output could not be parsed.
    """
    if not handle.pgdata or not handle.pg_ctl:
        logger.debug("Failed to run pg_controldata on an empty setup")
        raise ConfigurationFailure(
            "Failed to run pg_controldata: both pg_ctl and pgdata must be set"
        )

    runner = default_runner(runner)
    program = handle.program_path(PG_CONTROLDATA)
    logger.debug("%s %s", program, handle.pgdata)

    def _run() -> ProgramResult:
        return runner.run(program, [handle.pgdata], env=CONTROLDATA_ENV)

    def _empty(result: ProgramResult) -> bool:
        return result.ok and not result.stdout.strip()

    outcome = retry_while(
        _run,
        _empty,
        retry,
        description=f"Got empty output from `{program} {handle.pgdata}`",
    )
    result = outcome.value

    if result.ok:
        if outcome.exhausted:
            raise ParseFailure(
                f"Got empty output from `{program} {handle.pgdata}` "
                f"after {outcome.attempts} attempts"
            )
        try:
            return parse_controldata(result.stdout)
        except ParseFailure:
            logger.error("%s %s", program, handle.pgdata)
            logger.warning("Failed to parse pg_controldata output:\n%s", result.stdout)
            raise

    if missing_ok:
        logger.debug("pg_controldata failed on \"%s\", which is allowed to be missing",
                     handle.pgdata)
        return None

    # pg_controldata errors out with a single line prefixed by its name
    for line in result.stderr.splitlines():
        if line.strip():
            logger.error("%s", line)
    logger.error("Failed to run \"%s\" on \"%s\", see above for details",
                 program, handle.pgdata)
    raise ExecutionFailure(f"Failed to run \"{program}\" on \"{handle.pgdata}\"", result)
