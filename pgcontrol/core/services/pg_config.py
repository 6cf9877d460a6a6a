"""
postgresql.conf management — generated settings files and includes.

We never edit individual lines of postgresql.conf. Our settings live
in files we generate entirely (``postgresql-pgcontrol.conf`` and its
standby counterpart), and postgresql.conf gets one ``include`` line
per generated file, prepended once and never touched again.
"""

from __future__ import annotations

import logging

from pgcontrol.adapters.shell import filesystem
from pgcontrol.core.errors import ConsistencyFailure
from pgcontrol.core.models.setup import (
    LISTEN_ADDRESSES,
    PORT,
    ServerHandle,
    Setting,
)

logger = logging.getLogger(__name__)

DEFAULTS_CONF_FILENAME = "postgresql-pgcontrol.conf"
DEFAULTS_CONF_INCLUDE_LINE = f"include '{DEFAULTS_CONF_FILENAME}'"
DEFAULTS_CONF_INCLUDE_REGEX = r"^include 'postgresql-pgcontrol\.conf'.*"

STANDBY_CONF_FILENAME = "postgresql-pgcontrol-standby.conf"
STANDBY_CONF_INCLUDE_LINE = f"include '{STANDBY_CONF_FILENAME}'"
STANDBY_CONF_INCLUDE_REGEX = r"^include 'postgresql-pgcontrol-standby\.conf'.*"

CONF_INCLUDE_COMMENT = " # Auto-generated by pgcontrol, do not remove\n"
SETTINGS_BANNER = "# Settings by pgcontrol\n"

# listen_addresses and port come from the ServerHandle
DEFAULT_SETTINGS: list[Setting] = [
    Setting.of(LISTEN_ADDRESSES),
    Setting.of(PORT),
    Setting.of("max_wal_senders", 12),
    Setting.of("max_replication_slots", 12),
    Setting.of("wal_level", "'replica'"),
    Setting.of("wal_log_hints", "on"),
    Setting.of("wal_sender_timeout", "'30s'"),
    Setting.of("hot_standby_feedback", "on"),
    Setting.of("hot_standby", "on"),
    Setting.of("synchronous_commit", "on"),
    Setting.of("logging_collector", "on"),
    Setting.of("log_destination", "'stderr'"),
    Setting.of("log_directory", "'log'"),
    Setting.of("log_min_messages", "'info'"),
    Setting.of("log_connections", "on"),
    Setting.of("log_disconnections", "on"),
    Setting.of("log_lock_waits", "on"),
]


# ── Include directive ───────────────────────────────────────────────


def ensure_included(
    config_path: str,
    include_line: str,
    detect_pattern: str,
    comment: str = CONF_INCLUDE_COMMENT,
) -> bool:
    """Prepend ``include_line`` to ``config_path`` unless already there.

    Detection matches ``detect_pattern`` at the start of a line, so a
    commented-out mention elsewhere does not count. The include goes
    first in the file; later assignments in postgresql.conf still win.

    Returns:
        True when the file was modified.
    """
    current = filesystem.read_file(config_path)

    if filesystem.regexp_first_match(current, detect_pattern) is not None:
        logger.debug("%s found in \"%s\"", include_line, config_path)
        return False

    logger.debug("Adding %s to \"%s\"", include_line, config_path)
    filesystem.write_file(include_line + comment + current, config_path)
    return True


# ── Generated settings file ─────────────────────────────────────────


def render_settings(settings: list[Setting], handle: ServerHandle | None = None) -> str:
    """Render ``settings`` as a generated configuration file.

    ``listen_addresses`` is single-quoted here rather than in the
    ServerHandle because the same value is given unquoted to
    ``pg_ctl start --options "-h ..."``.

    Raises:
        ConsistencyFailure: A hardcoded setting has no value, or a
            reserved setting is used without a handle.
    """
    lines = [SETTINGS_BANNER]

    for setting in settings:
        if setting.name == LISTEN_ADDRESSES:
            if handle is None:
                raise ConsistencyFailure(
                    f"GUC setting \"{setting.name}\" needs a server handle"
                )
            lines.append(f"{setting.name} = '{handle.listen_addresses}'\n")
        elif setting.name == PORT:
            if handle is None:
                raise ConsistencyFailure(
                    f"GUC setting \"{setting.name}\" needs a server handle"
                )
            lines.append(f"{setting.name} = {int(handle.port)}\n")
        elif setting.value is not None:
            lines.append(f"{setting.name} = {setting.value}\n")
        else:
            logger.error("BUG: GUC setting \"%s\" has a NULL value", setting.name)
            raise ConsistencyFailure(f"GUC setting \"{setting.name}\" has no value")

    return "".join(lines)


def ensure_settings_file(
    path: str,
    settings: list[Setting],
    handle: ServerHandle | None = None,
) -> bool:
    """Write the generated settings file at ``path`` if its content differs.

    Identical content is left alone so the file keeps its timestamps
    and a reload of the server is not triggered for nothing.

    Returns:
        True when the file was written.
    """
    content = render_settings(settings, handle)

    if filesystem.file_exists(path):
        current = filesystem.read_file(path)

        if current == content:
            logger.debug("Default settings file \"%s\" exists", path)
            return False

        logger.warning("Contents of \"%s\" have changed, overwriting", path)
    else:
        logger.debug("Configuration file \"%s\" doesn't exist yet, "
                     "creating with content:\n%s", path, content)

    filesystem.write_file(content, path)
    return True


def add_default_settings(
    handle: ServerHandle,
    settings: list[Setting] | None = None,
) -> None:
    """Install our default settings and include them from postgresql.conf.

    The generated file sits next to postgresql.conf, which is where a
    relative ``include`` is resolved from.
    """
    config_path = handle.postgresql_conf
    defaults_path = filesystem.path_in_same_directory(config_path, DEFAULTS_CONF_FILENAME)

    ensure_settings_file(defaults_path, settings if settings is not None else DEFAULT_SETTINGS, handle)
    ensure_included(
        config_path,
        DEFAULTS_CONF_INCLUDE_LINE,
        DEFAULTS_CONF_INCLUDE_REGEX,
        CONF_INCLUDE_COMMENT,
    )
