"""
ControlConfig — the top-level pgcontrol.yml schema.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from pgcontrol.core.models.setup import ReplicationSource, ServerHandle
from pgcontrol.core.services.pg_common import POSTGRES_CONNECT_TIMEOUT


class ControlConfig(BaseModel):
    """Everything the CLI needs to drive one instance."""

    postgres: ServerHandle = Field(default_factory=ServerHandle)
    replication: ReplicationSource | None = None
    connect_timeout: int = POSTGRES_CONNECT_TIMEOUT
    backup_dir: str = ""            # empty = <pgdata>/../backup
    database_name: str = "postgres"
