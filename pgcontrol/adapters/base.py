"""
Runner base — the protocol contract between services and programs.

Services never call ``subprocess`` directly. They hand a program path,
an argument vector and optional per-call environment overrides to a
ProgramRunner and get a ProgramResult back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from pgcontrol.core.models.program import ProgramResult

# Exit code reported when the program cannot be spawned at all
EXIT_NOT_FOUND = 127


class ProgramRunner(ABC):
    """Abstract base class for program runners.

    Runners capture stdout and stderr fully in memory and return a
    ProgramResult. They NEVER raise for a failing program — a non-zero
    exit code is data, and the service decides what it means.

    Environment overrides apply to the child process only. A runner
    must never mutate the environment of the calling process.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The runner identifier (e.g., 'subprocess', 'mock')."""

    @abstractmethod
    def run(
        self,
        program: str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        new_session: bool = False,
    ) -> ProgramResult:
        """Run ``program`` with ``args`` and return its captured result.

        Args:
            program: Path to the executable.
            args: Argument vector, without the program itself.
            env: Variables to set in the child's environment only.
            new_session: Start the child in a new session (setsid).
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
