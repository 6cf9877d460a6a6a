"""
Tests for controldata — parsing, the empty-output retry, missing_ok.
"""

import logging

import pytest

from pgcontrol.adapters.mock import MockRunner
from pgcontrol.core.errors import ConfigurationFailure, ExecutionFailure, ParseFailure
from pgcontrol.core.models.setup import ServerHandle
from pgcontrol.core.reliability.retry import RetryPolicy
from pgcontrol.core.services.controldata import parse_controldata, pg_controldata

from tests.conftest import CONTROLDATA_OUTPUT


@pytest.fixture
def no_sleep() -> RetryPolicy:
    """The default policy, minus the actual sleeping."""
    sleeps: list[float] = []
    policy = RetryPolicy(max_attempts=2, delay=1.0, sleep=sleeps.append)
    policy.sleeps = sleeps  # type: ignore[attr-defined]
    return policy


class TestParseControldata:
    def test_fields(self):
        data = parse_controldata(CONTROLDATA_OUTPUT)
        assert data.pg_control_version == 1300
        assert data.catalog_version_no == 202007201
        assert data.system_identifier == "6889245372218163987"
        assert data.fields["Database cluster state"] == "in production"

    def test_values_with_colons(self):
        data = parse_controldata(CONTROLDATA_OUTPUT)
        assert data.fields["pg_control last modified"] == "Tue 13 Oct 2020 10:20:31 AM UTC"

    def test_missing_field(self):
        with pytest.raises(ParseFailure) as exc:
            parse_controldata("Catalog version number: 201909212\n")
        assert "pg_control version number" in str(exc.value)
        assert "201909212" in exc.value.raw

    def test_non_numeric_version(self):
        text = CONTROLDATA_OUTPUT.replace("1300", "thirteen")
        with pytest.raises(ParseFailure):
            parse_controldata(text)


class TestPgControldata:
    def test_empty_handle(self):
        with pytest.raises(ConfigurationFailure):
            pg_controldata(ServerHandle(pg_ctl="/bin/pg_ctl"), runner=MockRunner())
        with pytest.raises(ConfigurationFailure):
            pg_controldata(ServerHandle(pgdata="/data"), runner=MockRunner())

    def test_success(self, handle, mock_runner, no_sleep):
        mock_runner.on("pg_controldata", stdout=CONTROLDATA_OUTPUT)
        data = pg_controldata(handle, runner=mock_runner, retry=no_sleep)
        assert data.pg_control_version == 1300

        call = mock_runner.call_log[0]
        assert call.program == handle.program_path("pg_controldata")
        assert call.args == [handle.pgdata]
        assert call.env["LANG"] == "C"

    def test_empty_output_retried_once(self, handle, mock_runner, no_sleep):
        mock_runner.on_sequence(
            "pg_controldata",
            results=[(0, "", ""), (0, CONTROLDATA_OUTPUT, "")],
        )
        data = pg_controldata(handle, runner=mock_runner, retry=no_sleep)
        assert data.pg_control_version == 1300
        assert mock_runner.call_count == 2
        assert no_sleep.sleeps == [1.0]

    def test_empty_output_twice_gives_up(self, handle, mock_runner, no_sleep):
        mock_runner.on("pg_controldata", stdout="")
        with pytest.raises(ParseFailure):
            pg_controldata(handle, runner=mock_runner, retry=no_sleep)
        assert mock_runner.call_count == 2

    def test_unparsable_output(self, handle, mock_runner, no_sleep):
        mock_runner.on("pg_controldata", stdout="something else entirely\n")
        with pytest.raises(ParseFailure) as exc:
            pg_controldata(handle, runner=mock_runner, retry=no_sleep)
        assert "something else entirely" in exc.value.raw
        assert mock_runner.call_count == 1

    def test_failure_logs_each_stderr_line(self, handle, mock_runner, no_sleep, caplog):
        mock_runner.on(
            "pg_controldata",
            return_code=1,
            stderr="pg_controldata: fatal: could not open file\nsecond line\n",
        )
        with caplog.at_level(logging.ERROR, logger="pgcontrol.core.services.controldata"):
            with pytest.raises(ExecutionFailure) as exc:
                pg_controldata(handle, runner=mock_runner, retry=no_sleep)

        messages = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
        assert "pg_controldata: fatal: could not open file" in messages
        assert "second line" in messages
        assert "could not open file" in str(exc.value)

    def test_failure_missing_ok(self, handle, mock_runner, no_sleep):
        mock_runner.on("pg_controldata", return_code=1, stderr="no such directory")
        assert pg_controldata(handle, missing_ok=True, runner=mock_runner, retry=no_sleep) is None
        assert mock_runner.call_count == 1
