"""
pg_ctl discovery — find pg_ctl on the PATH and read its version.

When several pg_ctl programs are installed (one per major version, as
Debian does) we report all of them and pick none: guessing the wrong
major version would be far worse than asking the operator.
"""

from __future__ import annotations

import logging
import os
import re

from pgcontrol.adapters.base import ProgramRunner
from pgcontrol.core.errors import ExecutionFailure, ParseFailure, PgControlError
from pgcontrol.core.models.setup import FoundProgram, PgCtlSearch
from pgcontrol.core.services.pg_common import default_runner

logger = logging.getLogger(__name__)

PG_CTL = "pg_ctl"

_VERSION_AFTER_PRODUCT_RE = re.compile(r"\(PostgreSQL\)\s+(\d+(?:\.\d+)*)")
_VERSION_RE = re.compile(r"\b(\d+(?:\.\d+)*)")


def parse_version_number(text: str) -> str:
    """Extract the version number from ``pg_ctl --version`` output.

    >>> parse_version_number("pg_ctl (PostgreSQL) 12.3")
    '12.3'
    >>> parse_version_number("pg_ctl (PostgreSQL) 13beta2")
    '13'

    Raises:
        ParseFailure: No version number in ``text``.
    """
    match = _VERSION_AFTER_PRODUCT_RE.search(text) or _VERSION_RE.search(text)
    if match is None:
        raise ParseFailure("Failed to parse version number", text)
    return match.group(1)


def search_path_list(search_path: str | None, program: str) -> list[str]:
    """Every executable named ``program`` in the ``search_path`` directories."""
    found: list[str] = []
    seen: set[str] = set()

    for directory in (search_path or "").split(os.pathsep):
        if not directory:
            continue
        candidate = os.path.join(directory, program)
        if not (os.path.isfile(candidate) and os.access(candidate, os.X_OK)):
            continue
        # /usr/bin/pg_ctl is often a symlink to a versioned install
        real = os.path.realpath(candidate)
        if real in seen:
            continue
        seen.add(real)
        found.append(os.path.abspath(candidate))

    return found


def pg_ctl_version(pg_ctl: str, runner: ProgramRunner | None = None) -> str:
    """Run ``pg_ctl --version`` and return the version number."""
    result = default_runner(runner).run(pg_ctl, ["--version"])

    if not result.ok:
        logger.error("Failed to run \"pg_ctl --version\" using program \"%s\": %s",
                     pg_ctl, result.stderr.strip())
        raise ExecutionFailure(f"Failed to run \"{pg_ctl} --version\"", result)

    return parse_version_number(result.stdout)


def find_pg_ctl(
    search_path: str | None = None,
    runner: ProgramRunner | None = None,
) -> PgCtlSearch:
    """Find pg_ctl programs on ``search_path`` (default: ``$PATH``).

    Returns:
        PgCtlSearch listing every program found. ``selected`` is set
        only when exactly one pg_ctl was found.
    """
    if search_path is None:
        search_path = os.environ.get("PATH", "")

    runner = default_runner(runner)
    paths = search_path_list(search_path, PG_CTL)
    search = PgCtlSearch()

    if not paths:
        logger.warning("Failed to find pg_ctl in PATH")
        return search

    for path in paths:
        try:
            version = pg_ctl_version(path, runner)
        except PgControlError as e:
            logger.warning("Failed to get version of %s: %s", path, e)
            version = None
        search.programs.append(FoundProgram(path=path, version=version))

    if len(paths) == 1:
        found = search.programs[0]
        logger.info("Found pg_ctl for PostgreSQL %s at %s", found.version, found.path)
        search.selected = found
    else:
        for found in search.programs:
            logger.info("Found %s for pg version %s", found.path, found.version)

    return search
