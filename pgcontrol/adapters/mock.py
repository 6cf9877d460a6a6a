"""
Mock runner — scripted test double for program invocations.

Used to simulate pg_ctl and friends without a PostgreSQL install.
Responses are matched on the program's base name plus tokens that
must appear in the argument vector, so ``on("pg_ctl", "status")``
scripts every ``pg_ctl status`` call.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from pgcontrol.adapters.base import ProgramRunner
from pgcontrol.core.models.program import ProgramResult


@dataclass
class RunCall:
    """One recorded invocation."""

    program: str
    args: list[str]
    env: dict[str, str] = field(default_factory=dict)
    new_session: bool = False

    @property
    def basename(self) -> str:
        return os.path.basename(self.program)


@dataclass
class _Script:
    basename: str
    tokens: tuple[str, ...]
    responses: list[ProgramResult]
    side_effect: Callable[[RunCall], None] | None = None

    def matches(self, call: RunCall) -> bool:
        if call.basename != self.basename:
            return False
        return all(token in call.args for token in self.tokens)

    def next_response(self) -> ProgramResult:
        # The last response sticks once the list is exhausted
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


class MockRunner(ProgramRunner):
    """Universal mock runner for testing.

    By default every program succeeds with empty output. Scripts
    registered later take precedence over earlier ones.
    """

    def __init__(self, default_output: str = ""):
        self._default_output = default_output
        self._scripts: list[_Script] = []
        self._call_log: list[RunCall] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[RunCall]:
        """All invocations this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_to(self, basename: str, *tokens: str) -> list[RunCall]:
        """Recorded calls of ``basename`` whose args contain ``tokens``."""
        return [
            c for c in self._call_log
            if c.basename == basename and all(t in c.args for t in tokens)
        ]

    def on(
        self,
        basename: str,
        *tokens: str,
        return_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        side_effect: Callable[[RunCall], None] | None = None,
    ) -> None:
        """Script a single response for matching calls."""
        self.on_sequence(
            basename,
            *tokens,
            results=[(return_code, stdout, stderr)],
            side_effect=side_effect,
        )

    def on_sequence(
        self,
        basename: str,
        *tokens: str,
        results: Sequence[tuple[int, str, str]],
        side_effect: Callable[[RunCall], None] | None = None,
    ) -> None:
        """Script successive responses; the last one repeats."""
        responses = [
            ProgramResult(program=basename, return_code=rc, stdout=out, stderr=err)
            for rc, out, err in results
        ]
        self._scripts.insert(0, _Script(basename, tokens, responses, side_effect))

    def run(
        self,
        program: str,
        args: Sequence[str] = (),
        env: Mapping[str, str] | None = None,
        new_session: bool = False,
    ) -> ProgramResult:
        call = RunCall(
            program=program,
            args=list(args),
            env=dict(env or {}),
            new_session=new_session,
        )
        self._call_log.append(call)

        for script in self._scripts:
            if script.matches(call):
                if script.side_effect is not None:
                    script.side_effect(call)
                scripted = script.next_response()
                return scripted.model_copy(
                    update={"program": program, "args": list(args)},
                )

        return ProgramResult(
            program=program,
            args=list(args),
            stdout=self._default_output,
        )

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._scripts.clear()
