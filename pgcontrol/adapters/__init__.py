"""Adapters — bindings to processes and the filesystem.

Public re-exports for convenient access.
"""

from pgcontrol.adapters.base import ProgramRunner
from pgcontrol.adapters.mock import MockRunner
from pgcontrol.adapters.shell.command import SubprocessRunner

__all__ = [
    "MockRunner",
    "ProgramRunner",
    "SubprocessRunner",
]
