"""
Tests for the pgcontrol.yml loader.
"""

from pathlib import Path

import pytest

from pgcontrol.core.config.loader import (
    CONFIG_FILE,
    ConfigError,
    find_config_file,
    load_config,
    resolve_backup_dir,
)
from pgcontrol.core.errors import ConfigurationFailure
from pgcontrol.core.models.config import ControlConfig
from pgcontrol.core.models.setup import ServerHandle

FULL_CONFIG = """\
postgres:
  pg_ctl: /usr/lib/postgresql/13/bin/pg_ctl
  pgdata: /var/lib/postgresql/13/main
  config_file: /etc/postgresql/13/main/postgresql.conf
  listen_addresses: "10.0.0.2"
  port: 5433
replication:
  primary:
    host: 10.0.0.1
    port: 5432
  username: replicator
  password: s3cret
  slot_name: pgcontrol_standby_2
connect_timeout: 5
database_name: appdb
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / CONFIG_FILE
    path.write_text(content)
    return path


class TestFindConfigFile:
    def test_in_start_dir(self, tmp_path: Path):
        path = _write(tmp_path, "")
        assert find_config_file(tmp_path) == path.resolve()

    def test_walks_up(self, tmp_path: Path):
        path = _write(tmp_path, "")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == path.resolve()

    def test_not_found(self, tmp_path: Path, monkeypatch):
        nested = tmp_path / "empty"
        nested.mkdir()
        monkeypatch.setattr(Path, "is_file", lambda self: False)
        assert find_config_file(nested) is None


class TestLoadConfig:
    def test_full(self, tmp_path: Path):
        config = load_config(_write(tmp_path, FULL_CONFIG), environ={})

        assert config.postgres.pgdata == "/var/lib/postgresql/13/main"
        assert config.postgres.port == 5433
        assert config.postgres.bindir == "/usr/lib/postgresql/13/bin"
        assert config.replication.primary.host == "10.0.0.1"
        assert config.replication.maximum_backup_rate == "100M"
        assert config.connect_timeout == 5
        assert config.database_name == "appdb"

    def test_env_fills_gaps(self, tmp_path: Path):
        path = _write(tmp_path, "postgres:\n  port: 6000\n")
        config = load_config(path, environ={
            "PGDATA": "/srv/pgdata",
            "PGPORT": "7000",
            "PG_CTL": "/opt/pg/bin/pg_ctl",
        })
        assert config.postgres.pgdata == "/srv/pgdata"
        assert config.postgres.port == 6000
        assert config.postgres.pg_ctl == "/opt/pg/bin/pg_ctl"

    def test_empty_file(self, tmp_path: Path):
        config = load_config(_write(tmp_path, ""), environ={"PGDATA": "/srv/pgdata"})
        assert config.postgres.pgdata == "/srv/pgdata"
        assert config.replication is None

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml", environ={})

    def test_invalid_yaml(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(_write(tmp_path, "postgres: [unclosed\n"), environ={})

    def test_not_a_mapping(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="mapping"):
            load_config(_write(tmp_path, "- just\n- a list\n"), environ={})

    def test_invalid_port(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="port"):
            load_config(_write(tmp_path, "postgres:\n  port: 70000\n"), environ={})

    def test_config_error_is_configuration_failure(self, tmp_path: Path):
        with pytest.raises(ConfigurationFailure):
            load_config(tmp_path / "nope.yml", environ={})


class TestResolveBackupDir:
    def test_default_next_to_pgdata(self):
        config = ControlConfig(postgres=ServerHandle(pgdata="/var/lib/pg/data/"))
        assert resolve_backup_dir(config) == "/var/lib/pg/backup"

    def test_explicit(self):
        config = ControlConfig(
            postgres=ServerHandle(pgdata="/var/lib/pg/data"),
            backup_dir="/mnt/staging",
        )
        assert resolve_backup_dir(config) == "/mnt/staging"
