"""Utility helpers shared across rayhunter-deploy configuration."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any, Final

from .const import (
    DEFAULT_BOOT_TIMEOUT,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REPORT_PATH,
    DEFAULT_TARGET_ARCH,
    ENV_BOOT_TIMEOUT,
    ENV_COMMAND_TIMEOUT,
    ENV_CONNECT_TIMEOUT,
    ENV_LOG_JSON,
    ENV_POLL_INTERVAL,
    ENV_REBUILD_POLICY,
    ENV_SKIP_BUILD,
    ENV_TARGET_ARCH,
    ENV_VERBOSE,
    REBUILD_ASK,
)

logger = logging.getLogger(__name__)

_TRUE_STRINGS: Final[frozenset[str]] = frozenset({"1", "yes", "on", "true", "enable", "enabled"})

# Environment variable -> config key
_ENV_KEYS: Final[dict[str, str]] = {
    ENV_VERBOSE: "verbose",
    ENV_SKIP_BUILD: "skip_build",
    ENV_REBUILD_POLICY: "rebuild_policy",
    ENV_BOOT_TIMEOUT: "boot_timeout",
    ENV_CONNECT_TIMEOUT: "connect_timeout",
    ENV_POLL_INTERVAL: "poll_interval",
    ENV_COMMAND_TIMEOUT: "command_timeout",
    ENV_LOG_JSON: "log_json",
    ENV_TARGET_ARCH: "target_arch",
}
_BOOL_KEYS: Final[frozenset[str]] = frozenset({"verbose", "skip_build", "log_json"})


def parse_bool(value: object) -> bool:
    """Parse a boolean value safely from various types."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if value is None:
        return False
    s = str(value).lower().strip()
    return s in _TRUE_STRINGS


def get_default_config() -> dict[str, Any]:
    """Provide default provisioning settings."""
    return {
        "verbose": False,
        "skip_build": False,
        "rebuild_policy": REBUILD_ASK,
        "project_root": ".",
        "target_arch": DEFAULT_TARGET_ARCH,
        "boot_timeout": DEFAULT_BOOT_TIMEOUT,
        "connect_timeout": DEFAULT_CONNECT_TIMEOUT,
        "poll_interval": DEFAULT_POLL_INTERVAL,
        "command_timeout": DEFAULT_COMMAND_TIMEOUT,
        "log_json": False,
        "report_path": DEFAULT_REPORT_PATH,
    }


def get_env_config(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect settings exported as ``RHDEPLOY_*`` environment variables.

    Only variables that are present and non-empty are returned, so the
    result can be layered over :func:`get_default_config`.
    """
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for env_name, key in _ENV_KEYS.items():
        raw = env.get(env_name)
        if raw is None or not raw.strip():
            continue
        values[key] = parse_bool(raw) if key in _BOOL_KEYS else raw.strip()
    if values:
        logger.debug("Environment overrides: %s", sorted(values))
    return values


__all__: Final[tuple[str, ...]] = (
    "get_default_config",
    "get_env_config",
    "parse_bool",
)
