"""
Filesystem primitives — whole-file reads and writes, directory moves.

Writes are atomic (write to temp file, then rename) so that the
running server never reads a half-written configuration file.
Failures are logged and raised as ``IOFailure``.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from pgcontrol.core.errors import IOFailure

logger = logging.getLogger(__name__)


def file_exists(path: str | Path) -> bool:
    return Path(path).is_file()


def directory_exists(path: str | Path) -> bool:
    return Path(path).is_dir()


def path_in_same_directory(reference: str | Path, name: str) -> str:
    """Path to ``name`` in the directory that holds ``reference``."""
    return str(Path(reference).parent / name)


def read_file(path: str | Path) -> str:
    """Read a whole UTF-8 text file, line endings untouched."""
    target = Path(path)
    try:
        with target.open(encoding="utf-8", newline="") as f:
            return f.read()
    except UnicodeDecodeError as e:
        logger.error("Failed to read file \"%s\": not valid UTF-8 (%s)", target, e.reason)
        raise IOFailure(f"Failed to read file \"{target}\": {e}", str(target)) from e
    except OSError as e:
        logger.error("Failed to read file \"%s\": %s", target, e.strerror or e)
        raise IOFailure(f"Failed to read file \"{target}\": {e}", str(target)) from e


def write_file(content: str, path: str | Path) -> None:
    """Replace the whole content of ``path`` (atomic write).

    Uses write-to-temp-then-rename in the target directory. An existing
    file keeps its permission bits.
    """
    target = Path(path)
    try:
        mode = target.stat().st_mode & 0o7777 if target.exists() else None
        fd, tmp_path = tempfile.mkstemp(
            dir=target.parent,
            prefix=f".{target.name}.",
            suffix=".tmp",
        )
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if mode is not None:
                tmp.chmod(mode)
            tmp.replace(target)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except OSError as e:
        logger.error("Failed to write file \"%s\": %s", target, e.strerror or e)
        raise IOFailure(f"Failed to write file \"{target}\": {e}", str(target)) from e


def append_to_file(content: str, path: str | Path) -> None:
    target = Path(path)
    try:
        with target.open("a", encoding="utf-8", newline="") as f:
            f.write(content)
    except OSError as e:
        logger.error("Failed to append to file \"%s\": %s", target, e.strerror or e)
        raise IOFailure(f"Failed to append to file \"{target}\": {e}", str(target)) from e


def ensure_empty_dir(path: str | Path, mode: int = 0o700) -> None:
    """Make sure ``path`` exists, is empty and has the given mode."""
    target = Path(path)
    try:
        if target.is_dir():
            shutil.rmtree(target)
        target.mkdir(mode=mode, parents=True)
        # mkdir is subject to the umask
        target.chmod(mode)
    except OSError as e:
        logger.error("Failed to create empty directory \"%s\": %s", target, e.strerror or e)
        raise IOFailure(f"Failed to create empty directory \"{target}\": {e}", str(target)) from e


def remove_tree(path: str | Path) -> None:
    target = Path(path)
    try:
        shutil.rmtree(target)
    except OSError as e:
        logger.error("Failed to remove directory \"%s\": %s", target, e.strerror or e)
        raise IOFailure(f"Failed to remove directory \"{target}\": {e}", str(target)) from e


def rename_dir(source: str | Path, destination: str | Path) -> None:
    """Move ``source`` to ``destination``; both must be on one filesystem."""
    try:
        os.rename(source, destination)
    except OSError as e:
        logger.error("Failed to rename \"%s\" to \"%s\": %s", source, destination, e.strerror or e)
        raise IOFailure(
            f"Failed to install \"{source}\" in \"{destination}\": {e}",
            str(destination),
        ) from e


def regexp_first_match(text: str, pattern: str) -> str | None:
    """First match of ``pattern`` in ``text``, with ``^`` anchored per line."""
    match = re.search(pattern, text, re.MULTILINE)
    return match.group(0) if match else None
