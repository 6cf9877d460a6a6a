"""
PostgreSQL setup models — the instance and its replication source.

A ServerHandle identifies the managed instance. It is owned by the
caller and never mutated by the services that receive it.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Reserved GUC names drawn from the ServerHandle rather than the template
LISTEN_ADDRESSES = "listen_addresses"
PORT = "port"

DEFAULT_PORT = 5432
DEFAULT_LISTEN_ADDRESSES = "*"


class ServerHandle(BaseModel):
    """Paths and network settings of one managed PostgreSQL instance."""

    pg_ctl: str = ""
    pgdata: str = ""
    config_file: str = ""           # empty = <pgdata>/postgresql.conf
    listen_addresses: str = DEFAULT_LISTEN_ADDRESSES
    port: int = DEFAULT_PORT
    pg_version: str | None = None

    @field_validator("port")
    @classmethod
    def _valid_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {v}")
        return v

    @property
    def bindir(self) -> str:
        """Directory holding pg_ctl and its sibling tools."""
        return os.path.dirname(self.pg_ctl)

    @property
    def postgresql_conf(self) -> str:
        """Path to the main configuration file."""
        if self.config_file:
            return self.config_file
        return os.path.join(self.pgdata, "postgresql.conf")

    def program_path(self, name: str) -> str:
        """Path to a PostgreSQL program installed alongside pg_ctl."""
        return os.path.join(self.bindir, name)


class ControlData(BaseModel):
    """Fields parsed from pg_controldata output."""

    pg_control_version: int
    catalog_version_no: int
    system_identifier: str
    fields: dict[str, str] = Field(default_factory=dict)


class Setting(BaseModel):
    """A single GUC as written to a generated settings file.

    ``value`` is rendered verbatim, so string values must carry their
    own quotes. It may only be None for the reserved names, which take
    their value from the ServerHandle.
    """

    name: str
    value: str | None = None

    @classmethod
    def of(cls, name: str, value: Any = None) -> Setting:
        return cls(name=name, value=None if value is None else str(value))


class NodeAddress(BaseModel):
    """Network address of another node."""

    host: str
    port: int = DEFAULT_PORT
    name: str = ""
    node_id: int | None = None


class ReplicationSource(BaseModel):
    """Where a standby streams from, and with which credentials."""

    primary: NodeAddress
    username: str
    password: str | None = None
    slot_name: str
    maximum_backup_rate: str = "100M"
    application_name: str | None = None


class FoundProgram(BaseModel):
    """A pg_ctl found on the search path."""

    path: str
    version: str | None = None


class PgCtlSearch(BaseModel):
    """Result of searching the PATH for pg_ctl."""

    programs: list[FoundProgram] = Field(default_factory=list)
    selected: FoundProgram | None = None

    @property
    def count(self) -> int:
        return len(self.programs)
