"""
Domain models — Pydantic types for PostgreSQL lifecycle control.

All models are re-exported here for convenient access:

    from pgcontrol.core.models import ServerHandle, ControlData, Receipt
"""

from pgcontrol.core.models.program import ProgramResult, Receipt
from pgcontrol.core.models.setup import (
    ControlData,
    FoundProgram,
    NodeAddress,
    PgCtlSearch,
    ReplicationSource,
    ServerHandle,
    Setting,
)

__all__ = [
    # program.py
    "ProgramResult",
    "Receipt",
    # setup.py
    "ControlData",
    "FoundProgram",
    "NodeAddress",
    "PgCtlSearch",
    "ReplicationSource",
    "ServerHandle",
    "Setting",
]
