"""
Tests for standby setup — value escaping and the recovery.conf /
standby.signal split at PostgreSQL 12.
"""

import re
from pathlib import Path
from unittest.mock import patch

import pytest

from pgcontrol.core.errors import CapacityFailure, IOFailure
from pgcontrol.core.services.pg_config import STANDBY_CONF_FILENAME, STANDBY_CONF_INCLUDE_LINE
from pgcontrol.core.services.standby import (
    RECOVERY_CONF_FILENAME,
    STANDBY_SIGNAL_CONTROL_VERSION,
    STANDBY_SIGNAL_FILENAME,
    escape_config_string,
    escape_conninfo_value,
    prepare_primary_conninfo,
    setup_standby_mode,
    standby_settings,
)


# Quoted string token of the server's configuration file lexer
_CONF_STRING_RE = re.compile(r"'((?:[^'\\\n]|\\.|'')*)'")
_CONF_ESCAPES = {"b": "\b", "f": "\f", "n": "\n", "r": "\r", "t": "\t"}


def _server_reads(quoted: str) -> str:
    """Value of a quoted setting, as the server's config parser sees it."""
    match = _CONF_STRING_RE.fullmatch(quoted)
    assert match is not None, f"not a single quoted token: {quoted}"
    body, out, i = match.group(1), [], 0
    while i < len(body):
        if body[i] == "\\":
            out.append(_CONF_ESCAPES.get(body[i + 1], body[i + 1]))
            i += 2
        elif body[i] == "'":
            out.append("'")
            i += 2
        else:
            out.append(body[i])
            i += 1
    return "".join(out)


def _libpq_reads(conninfo: str) -> dict[str, str]:
    """Keywords and values of a conninfo string, as libpq parses them."""
    params: dict[str, str] = {}
    i = 0
    while i < len(conninfo):
        if conninfo[i].isspace():
            i += 1
            continue
        eq = conninfo.index("=", i)
        key, i = conninfo[i:eq].strip(), eq + 1
        value: list[str] = []
        quoted = i < len(conninfo) and conninfo[i] == "'"
        if quoted:
            i += 1
        while i < len(conninfo):
            c = conninfo[i]
            if c == "\\" and i + 1 < len(conninfo):
                value.append(conninfo[i + 1])
                i += 2
                continue
            if (quoted and c == "'") or (not quoted and c.isspace()):
                i += 1
                break
            value.append(c)
            i += 1
        params[key] = "".join(value)
    return params


# ═══════════════════════════════════════════════════════════════════
#  Escaping
# ═══════════════════════════════════════════════════════════════════


class TestEscapeConfigString:
    def test_plain(self):
        assert escape_config_string("replica") == "'replica'"

    def test_quotes_doubled(self):
        assert escape_config_string("it's") == "'it''s'"

    @pytest.mark.parametrize("value", [
        "", "'", "a''b", "user=o'brien password='x'", "C:\\data\\", "two\nlines",
    ])
    def test_server_reads_back_original(self, value):
        assert _server_reads(escape_config_string(value)) == value

    def test_exact_fit(self):
        # 7 chars + 2 quotes + NUL
        assert escape_config_string("abcdefg", max_size=10) == "'abcdefg'"

    def test_one_byte_over(self):
        with pytest.raises(CapacityFailure):
            escape_config_string("abcdefgh", max_size=10)

    def test_quotes_count_toward_size(self):
        with pytest.raises(CapacityFailure):
            escape_config_string("abcdef'", max_size=10)

    def test_backslashes_count_toward_size(self):
        assert escape_config_string("abcde\\", max_size=10) == "'abcde\\\\'"
        with pytest.raises(CapacityFailure):
            escape_config_string("abcdef\\", max_size=10)


class TestEscapeConninfoValue:
    def test_plain(self):
        assert escape_conninfo_value("replicator") == "replicator"

    def test_specials(self):
        assert escape_conninfo_value("a b'c\\d") == "a\\ b\\'c\\\\d"

    def test_empty(self):
        assert escape_conninfo_value("") == "''"


class TestPrimaryConninfo:
    def test_with_password(self, source):
        assert prepare_primary_conninfo(source) == (
            "'host=primary.example port=5432 user=replicator password=s3cret'"
        )

    def test_without_password(self, source):
        source = source.model_copy(update={"password": None})
        assert "password" not in prepare_primary_conninfo(source)

    def test_application_name(self, source):
        source = source.model_copy(update={"application_name": "pgcontrol_2"})
        assert prepare_primary_conninfo(source).endswith(" application_name=pgcontrol_2'")

    def test_quote_in_password(self, source):
        source = source.model_copy(update={"password": "it's"})
        assert prepare_primary_conninfo(source).endswith("password=it\\\\''s'")

    @pytest.mark.parametrize("password", [
        "it's",
        "a b",
        "a\\b",
        "",
        "tr\\'icky pass''word\\",
    ])
    def test_password_reaches_libpq_intact(self, source, password):
        source = source.model_copy(update={"password": password})
        params = _libpq_reads(_server_reads(prepare_primary_conninfo(source)))
        assert params == {
            "host": "primary.example",
            "port": "5432",
            "user": "replicator",
            "password": password,
        }

    def test_too_long(self, source):
        source = source.model_copy(update={"password": "x" * 1100})
        with pytest.raises(CapacityFailure):
            prepare_primary_conninfo(source)


class TestStandbySettings:
    def test_values_are_quoted(self):
        settings = {s.name: s.value for s in standby_settings("'host=a'", "slot_1")}
        assert settings == {
            "primary_conninfo": "'host=a'",
            "primary_slot_name": "'slot_1'",
            "recovery_target_timeline": "'latest'",
        }


# ═══════════════════════════════════════════════════════════════════
#  setup_standby_mode
# ═══════════════════════════════════════════════════════════════════


class TestSetupStandbyMode:
    def _setup(self, version: int, pgdata: Path, source) -> str:
        return setup_standby_mode(version, str(pgdata / "postgresql.conf"), str(pgdata), source)

    def test_legacy_writes_recovery_conf(self, pgdata, source):
        path = self._setup(1100, pgdata, source)

        assert path == str(pgdata / RECOVERY_CONF_FILENAME)
        assert (pgdata / RECOVERY_CONF_FILENAME).read_text() == (
            "standby_mode = 'on'\n"
            "primary_conninfo = 'host=primary.example port=5432 user=replicator password=s3cret'\n"
            "primary_slot_name = 'pgcontrol_standby_2'\n"
            "recovery_target_timeline = 'latest'\n"
        )
        assert not (pgdata / STANDBY_SIGNAL_FILENAME).exists()
        assert not (pgdata / STANDBY_CONF_FILENAME).exists()

    def test_boundary_below(self, pgdata, source):
        self._setup(STANDBY_SIGNAL_CONTROL_VERSION - 1, pgdata, source)
        assert (pgdata / RECOVERY_CONF_FILENAME).exists()
        assert not (pgdata / STANDBY_SIGNAL_FILENAME).exists()

    def test_modern_writes_signal_and_settings(self, pgdata, source):
        path = self._setup(STANDBY_SIGNAL_CONTROL_VERSION, pgdata, source)

        assert path == str(pgdata / STANDBY_SIGNAL_FILENAME)
        assert (pgdata / STANDBY_SIGNAL_FILENAME).read_text() == ""
        assert not (pgdata / RECOVERY_CONF_FILENAME).exists()
        assert (pgdata / STANDBY_CONF_FILENAME).read_text() == (
            "# Settings by pgcontrol\n"
            "primary_conninfo = 'host=primary.example port=5432 user=replicator password=s3cret'\n"
            "primary_slot_name = 'pgcontrol_standby_2'\n"
            "recovery_target_timeline = 'latest'\n"
        )
        conf = (pgdata / "postgresql.conf").read_text()
        assert conf.startswith(STANDBY_CONF_INCLUDE_LINE)
        assert "shared_buffers = 128MB\n" in conf

    def test_modern_idempotent(self, pgdata, source):
        self._setup(1300, pgdata, source)
        conf = (pgdata / "postgresql.conf").read_text()
        self._setup(1300, pgdata, source)
        assert (pgdata / "postgresql.conf").read_text() == conf
        assert conf.count(STANDBY_CONF_INCLUDE_LINE) == 1

    def test_config_elsewhere(self, tmp_path, pgdata, source):
        etc = tmp_path / "etc"
        etc.mkdir()
        (etc / "postgresql.conf").write_text("port = 5432\n")

        setup_standby_mode(1300, str(etc / "postgresql.conf"), str(pgdata), source)

        assert (pgdata / STANDBY_SIGNAL_FILENAME).exists()
        assert (etc / STANDBY_CONF_FILENAME).exists()
        assert (etc / "postgresql.conf").read_text().startswith(STANDBY_CONF_INCLUDE_LINE)

    def test_signal_written_even_when_settings_fail(self, pgdata, source):
        with patch(
            "pgcontrol.core.services.standby.ensure_settings_file",
            side_effect=IOFailure("disk full", str(pgdata / STANDBY_CONF_FILENAME)),
        ):
            with pytest.raises(IOFailure):
                self._setup(1300, pgdata, source)

        assert (pgdata / STANDBY_SIGNAL_FILENAME).exists()

    def test_signal_written_even_when_include_fails(self, tmp_path, pgdata, source):
        missing = tmp_path / "nowhere" / "postgresql.conf"
        with pytest.raises(IOFailure):
            setup_standby_mode(1300, str(missing), str(pgdata), source)
        assert (pgdata / STANDBY_SIGNAL_FILENAME).exists()

    def test_capacity_failure_writes_nothing(self, pgdata, source):
        source = source.model_copy(update={"password": "x" * 2000})
        with pytest.raises(CapacityFailure):
            self._setup(1300, pgdata, source)
        assert not (pgdata / STANDBY_SIGNAL_FILENAME).exists()
