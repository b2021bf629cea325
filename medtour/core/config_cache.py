"""Process-wide cache for the YAML files under ``config/``.

Search tuning (the listing sort keys in ``config/sorting.yml``) is read on
every filtered listing, so the parsed file is kept in memory and reloaded
only when it changes on disk or its TTL runs out.
"""
from __future__ import annotations

import copy
import logging
import os
import threading
import time
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)
_CACHE: Dict[str, Dict[str, Any]] = {}
_LOCK = threading.Lock()


class ConfigFileError(ValueError):
    """A config file exists but cannot be used"""


def _read(abs_path: str, default: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    try:
        with open(abs_path, "r", encoding="utf-8") as fh:
            payload = yaml.safe_load(fh)
    except FileNotFoundError:
        logger.debug("Config %s not found; using built-in defaults", abs_path)
        return default or {}
    except yaml.YAMLError as exc:
        raise ConfigFileError(f"Malformed YAML in {abs_path}: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigFileError(f"{abs_path} must hold a mapping, got {type(payload).__name__}")
    return payload


def load_yaml_cached(
    path: str,
    *,
    default: Optional[Dict[str, Any]] = None,
    ttl_seconds: Optional[int] = None,
) -> Dict[str, Any]:
    """Parsed copy of a config file, re-read after an mtime change or TTL expiry.

    A missing file yields ``default``; a malformed one raises ConfigFileError
    and is not cached, so fixing the file takes effect on the next call.
    """
    from medtour.core.config import settings

    ttl = ttl_seconds if ttl_seconds is not None else settings.config_cache_ttl_s
    abs_path = os.path.abspath(path)
    try:
        mtime = os.path.getmtime(abs_path)
    except FileNotFoundError:
        mtime = None
    now = time.time()

    with _LOCK:
        cached = _CACHE.get(abs_path)
        if cached and cached["mtime"] == mtime and (ttl is None or now - cached["loaded_at"] <= ttl):
            return copy.deepcopy(cached["payload"])

        payload = _read(abs_path, default)
        _CACHE[abs_path] = {"payload": payload, "mtime": mtime, "loaded_at": now}
        return copy.deepcopy(payload)


def load_config_section(path: str, section: str, default: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """One top-level mapping of a cached config file; {} when absent"""
    value = load_yaml_cached(path, default=default).get(section) or {}
    if not isinstance(value, dict):
        raise ConfigFileError(f"Section '{section}' of {path} must be a mapping")
    return value


def clear_yaml_cache() -> None:
    with _LOCK:
        _CACHE.clear()
