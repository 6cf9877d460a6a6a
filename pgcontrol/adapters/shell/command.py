"""
Subprocess runner — execute PostgreSQL programs and capture output.

This is the single place where ``subprocess.run`` is called. Every
pg_ctl, pg_controldata, pg_basebackup and pg_rewind invocation goes
through it.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from collections.abc import Mapping, Sequence

from pgcontrol.adapters.base import EXIT_NOT_FOUND, ProgramRunner
from pgcontrol.core.models.program import ProgramResult

logger = logging.getLogger(__name__)


class SubprocessRunner(ProgramRunner):
    """Run programs with ``subprocess.run``.

    Args:
        timeout: Optional timeout in seconds. None (the default) waits
            for as long as the program runs — base backups and rewinds
            can legitimately take hours.
    """

    def __init__(self, timeout: float | None = None):
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "subprocess"

    def run(
        self,
        program: str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        new_session: bool = False,
    ) -> ProgramResult:
        argv = [program, *args]

        # ── Environment ──
        child_env = None
        if env:
            child_env = os.environ.copy()
            child_env.update(env)

        logger.debug("Executing: %s", " ".join(argv))
        start = time.monotonic()

        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                errors="replace",
                env=child_env,
                start_new_session=new_session,
                timeout=self._timeout,
            )
        except FileNotFoundError as e:
            return ProgramResult(
                program=program,
                args=list(args),
                return_code=EXIT_NOT_FOUND,
                stderr=f"Failed to run \"{program}\": {e.strerror}",
            )
        except PermissionError as e:
            return ProgramResult(
                program=program,
                args=list(args),
                return_code=EXIT_NOT_FOUND - 1,
                stderr=f"Failed to run \"{program}\": {e.strerror}",
            )
        except subprocess.TimeoutExpired:
            return ProgramResult(
                program=program,
                args=list(args),
                return_code=-1,
                stderr=f"Command timed out after {self._timeout}s",
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug("%s exited with %d in %dms", program, proc.returncode, elapsed_ms)

        return ProgramResult(
            program=program,
            args=list(args),
            return_code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_ms=elapsed_ms,
        )
