"""Miscellaneous helper utilities for the bootstrap tool."""

from __future__ import annotations

import datetime as _dt
import os
from pathlib import Path
from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dictionary with override merged into base."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def env_first(*keys: str, default: str | None = None) -> str | None:
    """Return the first non-empty environment variable among keys."""
    for key in keys:
        value = os.environ.get(key)
        if value:
            return value
    return default


def now_utc() -> _dt.datetime:
    """Return the current UTC datetime without microseconds."""
    return _dt.datetime.now(tz=_dt.timezone.utc).replace(microsecond=0)


def git_date(moment: _dt.datetime) -> str:
    """Render a datetime in the ISO 8601 form git accepts for author dates."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=_dt.timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S%z")


def expand_path(value: str | os.PathLike[str]) -> Path:
    """Expand ``~`` and environment variables in a path."""
    return Path(os.path.expandvars(os.path.expanduser(str(value))))


def resolve_repo_dir(name: str, cwd: Path | None = None) -> tuple[str, Path]:
    """
    Map a repository argument to a (name, directory) pair.

    ``.``, the current directory path or its basename select the current
    directory. Absolute paths are used directly; anything else becomes a
    subdirectory of the current directory.
    """
    base = Path(cwd or Path.cwd())
    if name in (".", str(base), base.name):
        return base.name, base
    path = Path(name)
    if path.is_absolute():
        return path.name, path
    return path.name, base / path
