"""
Error taxonomy for lifecycle operations.

Every failure that reaches a caller is a ``PgControlError``. Tool
failures carry the ProgramResult so the tool's own stdout/stderr
travel with the exception, verbatim.
"""

from __future__ import annotations

from pgcontrol.core.models.program import ProgramResult


class PgControlError(Exception):
    """Base class for all pgcontrol failures."""


class ExecutionFailure(PgControlError):
    """An external tool exited with a non-zero code."""

    def __init__(self, message: str, result: ProgramResult):
        self.result = result
        parts = [f"{message} (exit code {result.return_code})"]
        if result.stdout.strip():
            parts.append(result.stdout.rstrip())
        if result.stderr.strip():
            parts.append(result.stderr.rstrip())
        super().__init__("\n".join(parts))

    @property
    def return_code(self) -> int:
        return self.result.return_code


class ParseFailure(PgControlError):
    """Tool output is not in the expected shape."""

    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(f"{message}:\n{raw}" if raw else message)


class IOFailure(PgControlError):
    """Reading, writing, removing or renaming a path failed."""

    def __init__(self, message: str, path: str):
        self.path = path
        super().__init__(message)


class CapacityFailure(PgControlError):
    """A generated value does not fit its size bound."""


class ConsistencyFailure(PgControlError):
    """Internal inconsistency, such as a hardcoded setting with no value."""


class ConfigurationFailure(PgControlError):
    """Required fields are missing before an operation is attempted."""
