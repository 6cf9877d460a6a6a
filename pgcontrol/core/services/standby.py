"""
Standby setup — make an instance follow a primary.

PostgreSQL 12 moved recovery settings into the main configuration
and replaced ``standby_mode = 'on'`` with a ``standby.signal`` file in
the data directory. We pick the scheme from pg_controldata's
``pg_control version number``:

    < 1200  → recovery.conf in PGDATA
    ≥ 1200  → standby.signal + postgresql-pgcontrol-standby.conf,
              included from postgresql.conf
"""

from __future__ import annotations

import logging
import os
import re

from pgcontrol.adapters.shell import filesystem
from pgcontrol.core.errors import CapacityFailure, PgControlError
from pgcontrol.core.models.setup import ReplicationSource, Setting
from pgcontrol.core.services.pg_config import (
    CONF_INCLUDE_COMMENT,
    STANDBY_CONF_FILENAME,
    STANDBY_CONF_INCLUDE_LINE,
    STANDBY_CONF_INCLUDE_REGEX,
    ensure_included,
    ensure_settings_file,
)

logger = logging.getLogger(__name__)

# pg_control version of PostgreSQL 12, where recovery.conf went away
STANDBY_SIGNAL_CONTROL_VERSION = 1200

# Upper bound on a generated primary_conninfo value, quotes and NUL included
MAXCONNINFO = 1024

RECOVERY_CONF_FILENAME = "recovery.conf"
STANDBY_SIGNAL_FILENAME = "standby.signal"

_CONNINFO_SPECIAL_RE = re.compile(r"(['\\ ])")


def escape_config_string(value: str, max_size: int = MAXCONNINFO) -> str:
    """Quote ``value`` for a configuration file.

    The server unescapes backslash sequences inside quoted values, so
    backslashes are doubled along with single quotes, and newlines are
    written as ``\\n``.

    ``max_size`` counts the two surrounding quotes and a terminating
    NUL, as the server's own parser does.

    Raises:
        CapacityFailure: The escaped value does not fit in ``max_size``.
    """
    escaped = value.replace("\\", "\\\\").replace("'", "''").replace("\n", "\\n")
    required = len(escaped) + 3
    if required > max_size:
        logger.error("BUG: failed to escape recovery parameter value \"%s\" "
                     "in a buffer of %d bytes", value, max_size)
        raise CapacityFailure(
            f"Escaped value needs {required} bytes, only {max_size} are supported"
        )
    return "'" + escaped + "'"


def escape_conninfo_value(value: str) -> str:
    """Escape one libpq connection parameter value.

    Quotes, backslashes and spaces get a backslash; an empty value is
    written as ``''``.
    """
    if value == "":
        return "''"
    return _CONNINFO_SPECIAL_RE.sub(r"\\\1", value)


def prepare_primary_conninfo(source: ReplicationSource, max_size: int = MAXCONNINFO) -> str:
    """Build the quoted ``primary_conninfo`` value for ``source``."""
    fields = [
        ("host", source.primary.host),
        ("port", str(source.primary.port)),
        ("user", source.username),
    ]
    if source.password is not None:
        fields.append(("password", source.password))
    if source.application_name:
        fields.append(("application_name", source.application_name))

    conninfo = " ".join(f"{key}={escape_conninfo_value(value)}" for key, value in fields)
    return escape_config_string(conninfo, max_size)


def standby_settings(primary_conninfo: str, slot_name: str) -> list[Setting]:
    return [
        Setting.of("primary_conninfo", primary_conninfo),
        Setting.of("primary_slot_name", escape_config_string(slot_name)),
        Setting.of("recovery_target_timeline", "'latest'"),
    ]


def write_recovery_conf(pgdata: str, primary_conninfo: str, slot_name: str) -> str:
    """Write ``<pgdata>/recovery.conf`` (PostgreSQL 11 and earlier)."""
    content = (
        "standby_mode = 'on'\n"
        f"primary_conninfo = {primary_conninfo}\n"
        f"primary_slot_name = {escape_config_string(slot_name)}\n"
        "recovery_target_timeline = 'latest'\n"
    )
    path = os.path.join(pgdata, RECOVERY_CONF_FILENAME)

    logger.info("Writing recovery configuration to \"%s\"", path)
    filesystem.write_file(content, path)
    return path


def write_standby_signal(
    config_path: str,
    pgdata: str,
    primary_conninfo: str,
    slot_name: str,
) -> str:
    """Write standby.signal, then the standby settings (PostgreSQL 12+).

    The signal file goes first: should anything fail afterwards, a
    server started from this data directory still comes up as a
    standby, with incomplete settings, rather than as a writable
    clone of the primary.
    """
    signal_path = os.path.join(pgdata, STANDBY_SIGNAL_FILENAME)
    logger.info("Writing recovery configuration to \"%s\"", signal_path)
    filesystem.write_file("", signal_path)

    standby_path = filesystem.path_in_same_directory(config_path, STANDBY_CONF_FILENAME)
    try:
        ensure_settings_file(standby_path, standby_settings(primary_conninfo, slot_name))
        ensure_included(
            config_path,
            STANDBY_CONF_INCLUDE_LINE,
            STANDBY_CONF_INCLUDE_REGEX,
            CONF_INCLUDE_COMMENT,
        )
    except PgControlError:
        logger.error("Failed to prepare \"%s\" with standby settings", standby_path)
        raise

    return signal_path


def setup_standby_mode(
    control_version: int,
    config_path: str,
    pgdata: str,
    source: ReplicationSource,
) -> str:
    """Configure ``pgdata`` to start as a standby of ``source``.

    Returns:
        Path of the file that puts the server in standby mode
        (recovery.conf or standby.signal).

    Raises:
        CapacityFailure: The connection string is too long.
        IOFailure: A file could not be read or written.
    """
    primary_conninfo = prepare_primary_conninfo(source)

    if control_version < STANDBY_SIGNAL_CONTROL_VERSION:
        return write_recovery_conf(pgdata, primary_conninfo, source.slot_name)

    return write_standby_signal(config_path, pgdata, primary_conninfo, source.slot_name)
