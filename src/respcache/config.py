"""XDG paths and option resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.respcache/`` on macOS and Windows.  See :func:`get_cache_dir` and
  :func:`get_data_dir`.
* **Option resolution** -- :func:`resolve_options` layers explicit
  options over ``RESPCACHE_*`` environment variables over the defaults
  declared on :class:`~respcache.models.CacheOptions`.
"""

from __future__ import annotations

import os
import platform
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from respcache.exceptions import ConfigError
from respcache.models import CacheOptions

_APP_NAME = "respcache"

ENV_OVERRIDES = {
    "ttl_memory": "RESPCACHE_TTL_MEMORY",
    "ttl_storage": "RESPCACHE_TTL_STORAGE",
    "enable_persistence": "RESPCACHE_ENABLE_PERSISTENCE",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_path(env_var: str, default_segments: tuple[str, ...], fallback: str) -> Path:
    if not _is_xdg_platform():
        path = Path.home() / f".{_APP_NAME}" / fallback
    else:
        env_value = os.environ.get(env_var, "")
        base = Path(env_value) if env_value else Path.home().joinpath(*default_segments)
        path = base / _APP_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the durable mirror of the response cache.  Safe to delete at
    any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/respcache/`` (default ``~/.cache/respcache/``).
    On macOS/Windows: ``~/.respcache/cache/``.
    """
    return _xdg_path("XDG_CACHE_HOME", (".cache",), "cache")


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/respcache/`` (default ``~/.local/share/respcache/``).
    On macOS/Windows: ``~/.respcache/logs/``.
    """
    return _xdg_path("XDG_DATA_HOME", (".local", "share"), "logs")


def get_storage_dir() -> Path:
    """Directory of the default on-disk mirror (``<cache_dir>/responses``)."""
    return get_cache_dir() / "responses"


# --- Option resolution ---


def _env_options() -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field_name, var in ENV_OVERRIDES.items():
        raw = os.environ.get(var, "").strip()
        if raw:
            values[field_name] = raw
    return values


def resolve_options(options: Optional[CacheOptions] = None, **overrides: Any) -> CacheOptions:
    """Resolve the effective cache options.

    Precedence (high to low):
        1. Keyword *overrides*
        2. Fields explicitly set on *options*
        3. Environment variables (``RESPCACHE_TTL_MEMORY``,
           ``RESPCACHE_TTL_STORAGE``, ``RESPCACHE_ENABLE_PERSISTENCE``)
        4. Defaults

    Raises:
        ConfigError: If the merged values fail validation (for example a
            non-numeric or non-positive TTL).
    """
    data = _env_options()
    if options is not None:
        data.update({name: getattr(options, name) for name in options.model_fields_set})
    data.update(overrides)
    try:
        return CacheOptions.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid cache options: {exc}") from exc
