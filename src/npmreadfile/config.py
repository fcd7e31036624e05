"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for npm-readfile:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.npm-readfile/`` on macOS and Windows. See :func:`get_config_dir`
  and :func:`get_cache_dir`.
* **Config file** -- A single :class:`~npmreadfile.models.ReadfileConfig`
  JSON file storing defaults (registry, cache root, staleness window).
* **Precedence resolution** -- :func:`resolve_config` merges explicit
  arguments, environment variables, and the config file into the final
  effective configuration.
"""

from __future__ import annotations

import json
import os
import platform
from pathlib import Path
from typing import Optional

from npmreadfile.exceptions import ConfigError
from npmreadfile.models import ReadfileConfig
from npmreadfile.store import _atomic_write

_APP_NAME = "npm-readfile"
_CONFIG_FILENAME = "config.json"

ENV_REGISTRY = "NPM_READFILE_REGISTRY"
ENV_CACHE_DIR = "NPM_READFILE_CACHE_DIR"
ENV_STALENESS_MS = "NPM_READFILE_STALENESS_MS"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/npm-readfile/`` (default
    ``~/.config/npm-readfile/``).  On macOS/Windows: ``~/.npm-readfile/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache root, creating it if necessary.

    Holds the cached package documents (``index/``) and the extracted
    package contents (``files/``).  Nothing in it is ever deleted by
    npm-readfile; it can be safely removed at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/npm-readfile/`` (default
    ``~/.cache/npm-readfile/``).  On macOS/Windows: ``~/.npm-readfile/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Config file ---


def _config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_config() -> ReadfileConfig:
    """Load the configuration file from the config directory.

    Returns:
        The deserialised :class:`~npmreadfile.models.ReadfileConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _config_path()
    if not path.is_file():
        return ReadfileConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ReadfileConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: ReadfileConfig) -> None:
    """Persist the configuration atomically to disk."""
    data = config.model_dump(mode="json", exclude_none=True)
    _atomic_write(_config_path(), (json.dumps(data, indent=2) + "\n").encode("utf-8"))


# --- Precedence resolution ---


def normalize_registry_url(registry: str) -> str:
    """Return *registry* with exactly one trailing slash."""
    return registry if registry.endswith("/") else registry + "/"


def resolve_config(
    registry: Optional[str] = None,
    cache_dir: Optional[str | Path] = None,
    staleness_ms: Optional[int] = None,
) -> ReadfileConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. Explicit arguments
        2. Environment variables (``NPM_READFILE_REGISTRY``,
           ``NPM_READFILE_CACHE_DIR``, ``NPM_READFILE_STALENESS_MS``)
        3. User config (``~/.config/npm-readfile/config.json``)
        4. Defaults

    The returned config always has ``cache_dir`` set.

    Raises:
        ConfigError: If the config file is invalid or
            ``NPM_READFILE_STALENESS_MS`` is not an integer.
    """
    config = load_config()

    env_registry = os.environ.get(ENV_REGISTRY)
    if registry is not None:
        config.registry = registry
    elif env_registry:
        config.registry = env_registry
    if config.registry:
        config.registry = normalize_registry_url(config.registry)

    env_cache_dir = os.environ.get(ENV_CACHE_DIR)
    if cache_dir is not None:
        config.cache_dir = Path(cache_dir)
    elif env_cache_dir:
        config.cache_dir = Path(env_cache_dir)
    if config.cache_dir is None:
        config.cache_dir = get_cache_dir()

    env_staleness = os.environ.get(ENV_STALENESS_MS)
    if staleness_ms is not None:
        config.staleness_ms = staleness_ms
    elif env_staleness:
        try:
            config.staleness_ms = int(env_staleness)
        except ValueError as exc:
            raise ConfigError(
                f"{ENV_STALENESS_MS} must be an integer, got {env_staleness!r}"
            ) from exc

    return config
