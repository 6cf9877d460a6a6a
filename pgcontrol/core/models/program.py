"""
ProgramResult and Receipt models — the execution contract.

A ProgramResult is what the runner hands back for one invocation of
a PostgreSQL tool. A Receipt is what a lifecycle operation hands back
to its caller once it has decided the operation succeeded, possibly
after reclassifying a tool failure with a status probe.

Genuine failures are not receipts: they are raised as
``ExecutionFailure`` carrying the ProgramResult.
"""

from __future__ import annotations

import shlex
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ProgramResult(BaseModel):
    """Outcome of a single external program invocation."""

    program: str
    args: list[str] = Field(default_factory=list)
    return_code: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        """Whether the program exited with code 0."""
        return self.return_code == 0

    def command_line(self) -> str:
        """The invocation rendered as a shell-like command line."""
        return shlex.join([self.program, *self.args])


class Receipt(BaseModel):
    """Result of a lifecycle operation that ended in success.

    ``status`` is ``"recovered"`` when the tool itself failed but a
    secondary probe showed the instance is already in the desired
    state. The original tool output is kept in ``output``.
    """

    operation: str
    status: Literal["ok", "recovered"] = "ok"
    return_code: int = 0
    output: str = ""
    detail: str = ""

    started_at: str = Field(default_factory=_now_iso)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the tool succeeded outright."""
        return self.status == "ok"

    @property
    def recovered(self) -> bool:
        """Whether a tool failure was reclassified as success."""
        return self.status == "recovered"

    @classmethod
    def success(
        cls,
        operation: str,
        result: ProgramResult | None = None,
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt from an optional program result."""
        if result is not None:
            kwargs.setdefault("return_code", result.return_code)
            kwargs.setdefault("output", result.stdout)
        return cls(operation=operation, status="ok", **kwargs)

    @classmethod
    def recover(
        cls,
        operation: str,
        result: ProgramResult,
        detail: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a receipt for a failure reclassified as success."""
        return cls(
            operation=operation,
            status="recovered",
            return_code=result.return_code,
            output=result.stdout,
            detail=detail,
            **kwargs,
        )
