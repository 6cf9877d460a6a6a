"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from pgcontrol.adapters.mock import MockRunner
from pgcontrol.core.models.setup import NodeAddress, ReplicationSource, ServerHandle

CONTROLDATA_OUTPUT = """\
pg_control version number:            1300
Catalog version number:               202007201
Database system identifier:           6889245372218163987
Database cluster state:               in production
pg_control last modified:             Tue 13 Oct 2020 10:20:31 AM UTC
Latest checkpoint location:           0/1634330
"""


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def mock_runner() -> MockRunner:
    return MockRunner()


@pytest.fixture
def pgdata(tmp_path: Path) -> Path:
    """A fake data directory holding a minimal postgresql.conf."""
    data = tmp_path / "pgdata"
    data.mkdir()
    (data / "postgresql.conf").write_text(
        "# PostgreSQL configuration file\n"
        "shared_buffers = 128MB\n"
    )
    return data


@pytest.fixture
def handle(pgdata: Path, tmp_path: Path) -> ServerHandle:
    return ServerHandle(
        pg_ctl=str(tmp_path / "bin" / "pg_ctl"),
        pgdata=str(pgdata),
        listen_addresses="*",
        port=5433,
    )


@pytest.fixture
def source() -> ReplicationSource:
    return ReplicationSource(
        primary=NodeAddress(host="primary.example", port=5432),
        username="replicator",
        password="s3cret",
        slot_name="pgcontrol_standby_2",
        maximum_backup_rate="50M",
    )


@pytest.fixture
def restore_logging():
    """Undo setup_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
