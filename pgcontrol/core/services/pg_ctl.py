"""
pg_ctl — start, stop, restart, promote and probe one instance.

pg_ctl's exit code alone does not always tell the truth about the
outcome we care about. ``pg_ctl start`` fails when the server is
already running, and ``pg_ctl stop`` fails when it is not running.
Both failures are resolved with a ``pg_ctl status`` probe before we
decide whether to report them.

pg_ctl status exit codes (stable since PostgreSQL 9.x):
    0 — server is running
    3 — server is not running
    4 — no accessible data directory (treated as unknown, not as stopped)
"""

from __future__ import annotations

import logging
import os
import shlex
from collections.abc import Mapping

from pgcontrol.adapters.base import ProgramRunner
from pgcontrol.adapters.shell import filesystem
from pgcontrol.core.errors import ExecutionFailure, IOFailure
from pgcontrol.core.models.program import ProgramResult, Receipt
from pgcontrol.core.models.setup import ServerHandle
from pgcontrol.core.services.pg_common import default_runner, log_program_output

logger = logging.getLogger(__name__)

PG_CTL_STATUS_RUNNING = 0
PG_CTL_STATUS_NOT_RUNNING = 3

STARTUP_LOG_FILENAME = "startup.log"

# Test harnesses point the server at a private socket directory
REGRESS_SOCK_DIR_ENV = "PG_REGRESS_SOCK_DIR"


class PgCtl:
    """Lifecycle controller for the instance described by ``handle``.

    Args:
        handle: The managed instance. Never mutated.
        runner: Program runner (default: subprocess).
        environ: Environment read for ``PG_REGRESS_SOCK_DIR``
            (default: ``os.environ``).
    """

    def __init__(
        self,
        handle: ServerHandle,
        runner: ProgramRunner | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.handle = handle
        self.runner = default_runner(runner)
        self._environ = os.environ if environ is None else environ

    @property
    def pg_ctl(self) -> str:
        return self.handle.pg_ctl

    @property
    def pgdata(self) -> str:
        return self.handle.pgdata

    def _run(self, *args: str, new_session: bool = False) -> ProgramResult:
        return self.runner.run(self.pg_ctl, list(args), new_session=new_session)

    # ── initdb ──────────────────────────────────────────────────

    def initdb(self) -> Receipt:
        """Initialize the data directory with ``pg_ctl initdb``.

        The child inherits LC_COLLATE, LC_ALL and friends from our
        environment; the cluster locale is whatever they say.
        """
        logger.info("Initialising a PostgreSQL cluster at \"%s\"", self.pgdata)
        result = self._run("initdb", "-s", "-D", self.pgdata)
        logger.debug("%s [%d]", result.command_line(), result.return_code)

        if not result.ok:
            log_program_output(result, logger)
            raise ExecutionFailure(
                f"Failed to initialise a PostgreSQL cluster at \"{self.pgdata}\"",
                result,
            )
        return Receipt.success("initdb", result)

    # ── start ───────────────────────────────────────────────────

    def start_args(self) -> list[str]:
        """Argument vector for ``pg_ctl start``.

        ``--options`` may be given several times; pg_ctl concatenates
        them into the postgres command line.
        """
        args = ["--pgdata", self.pgdata, "--options", f"-p {self.handle.port}"]

        if self.handle.listen_addresses:
            args += ["--options", f"-h {self.handle.listen_addresses}"]

        sock_dir = self._environ.get(REGRESS_SOCK_DIR_ENV)
        if sock_dir is not None:
            args += ["--options", f"-k {shlex.quote(sock_dir)}"]

        args += ["--wait", "start"]
        return args

    def start(self) -> Receipt:
        """Start the server, treating "already running" as success.

        ``pg_ctl start`` prints everything on stdout, which is appended
        to ``<pgdata>/startup.log`` in every case, as if by pg_ctl --log.

        Raises:
            ExecutionFailure: Start failed and the server is not running.
        """
        args = self.start_args()
        logger.info("%s", shlex.join([self.pg_ctl, *args]))

        # setsid: the server must not die with our process group
        result = self._run(*args, new_session=True)

        try:
            if result.ok:
                return Receipt.success("start", result)

            # "another server might be running; trying to start server anyway"
            status = self._run("status", "-D", self.pgdata)

            if status.return_code == PG_CTL_STATUS_RUNNING:
                logger.warning("Failed to start PostgreSQL. pg_ctl start returned: %d",
                               result.return_code)
                if result.stdout.strip():
                    logger.warning("%s", result.stdout.rstrip())
                logger.info("PostgreSQL is running. pg_ctl status returned %d",
                            status.return_code)
                log_program_output(status, logger)
                return Receipt.recover(
                    "start",
                    result,
                    detail="pg_ctl start failed but PostgreSQL is running",
                )

            logger.error("Failed to start PostgreSQL. pg_ctl start returned: %d",
                         result.return_code)
            if result.stdout.strip():
                logger.error("%s", result.stdout.rstrip())
            raise ExecutionFailure("Failed to start PostgreSQL", result)
        finally:
            self._append_startup_log(result)

    def _append_startup_log(self, result: ProgramResult) -> None:
        if not result.stdout:
            return
        if not filesystem.directory_exists(self.pgdata):
            logger.debug("No data directory at \"%s\", skipping %s",
                         self.pgdata, STARTUP_LOG_FILENAME)
            return
        logfile = os.path.join(self.pgdata, STARTUP_LOG_FILENAME)
        try:
            filesystem.append_to_file(result.stdout, logfile)
        except IOFailure as e:
            logger.warning("pg_ctl start output not saved: %s", e)

    # ── stop ────────────────────────────────────────────────────

    def stop(self) -> Receipt:
        """Stop the server in fast mode, treating "not running" as success.

        Raises:
            ExecutionFailure: Stop failed and the server may be running.
        """
        logger.debug("%s --pgdata %s --wait stop --mode fast", self.pg_ctl, self.pgdata)
        result = self._run("--pgdata", self.pgdata, "--wait", "stop", "--mode", "fast")

        if result.ok:
            return Receipt.success("stop", result)

        if not filesystem.directory_exists(self.pgdata):
            logger.info("pgdata \"%s\" does not exist, consider this as PostgreSQL "
                        "not running", self.pgdata)
            return Receipt.recover("stop", result, detail="data directory does not exist")

        # https://www.postgresql.org/docs/current/app-pg-ctl.html
        status = self.status(log_output=True)
        if status == PG_CTL_STATUS_NOT_RUNNING:
            logger.info("pg_ctl stop failed, but PostgreSQL is not running anyway")
            return Receipt.recover("stop", result, detail="PostgreSQL is not running")

        logger.info("Stopping PostgreSQL server failed. pg_ctl status returned: %d", status)
        log_program_output(result, logger)
        raise ExecutionFailure("Failed to stop PostgreSQL", result)

    # ── restart / promote ───────────────────────────────────────

    def restart(self) -> Receipt:
        result = self._run(
            "restart", "--pgdata", self.pgdata, "--silent", "--wait", "--mode", "fast",
        )
        logger.debug("%s [%d]", result.command_line(), result.return_code)

        if not result.ok:
            log_program_output(result, logger)
            raise ExecutionFailure("Failed to restart PostgreSQL", result)
        return Receipt.success("restart", result)

    def promote(self) -> Receipt:
        """Promote a standby with ``pg_ctl promote -w``."""
        result = self._run("promote", "-D", self.pgdata, "-w")
        logger.debug("%s promote -D %s", self.pg_ctl, self.pgdata)

        if result.stderr.strip():
            logger.error("%s", result.stderr.rstrip())

        if not result.ok:
            raise ExecutionFailure("Failed to promote PostgreSQL", result)
        return Receipt.success("promote", result)

    # ── status ──────────────────────────────────────────────────

    def status(self, log_output: bool = True) -> int:
        """Return the raw exit code of ``pg_ctl status``.

        Only 0 and PG_CTL_STATUS_NOT_RUNNING have a known meaning. Any
        other code is an abnormal state, not a stopped server.
        """
        result = self._run("status", "-D", self.pgdata)
        logger.debug("%s [%d]", result.command_line(), result.return_code)

        if log_output:
            log_program_output(result, logger)
        return result.return_code

    def is_running(self) -> bool:
        return self.status(log_output=False) == PG_CTL_STATUS_RUNNING
