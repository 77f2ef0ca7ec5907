"""Local handling of the daemon configuration document."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from marshmallow import ValidationError

from ..errors import DeviceConfigError
from .model import DeviceConfig
from .schema import DeviceConfigSchema

logger = logging.getLogger("rhdeploy.config.device")

DEFAULT_CONFIG_TEXT = """\
qmdl_store_path = "/data/rayhunter/qmdl"
port = 8080
debug_mode = false
enable_dummy_analyzer = false
colorblind_mode = false
ui_level = 1

# UI display options:
# full_background_color = false  # When true, uses status color for entire background
# show_screen_overlay = true     # When false, shows minimal UI without detailed overlay
# enable_animation = true        # When false, disables all animations
"""


def parse_device_config(text: str) -> DeviceConfig:
    """Parse and validate TOML text into a :class:`DeviceConfig`."""
    try:
        raw = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise DeviceConfigError(f"config.toml is not valid TOML: {exc}") from exc
    try:
        return DeviceConfigSchema().load(raw)
    except ValidationError as exc:
        raise DeviceConfigError(f"config.toml failed validation: {exc.messages}") from exc


def ensure_device_config(path: Path) -> tuple[DeviceConfig, bool]:
    """Return the local configuration, writing the default file if absent.

    The synthesized file is left on disk so later runs reuse it unchanged.
    Returns the parsed configuration and whether the file was created.
    """
    created = False
    if not path.exists():
        logger.info("Configuration file not found. Creating default config at %s", path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")
        created = True
    return parse_device_config(path.read_text(encoding="utf-8")), created


def read_device_port(path: Path) -> int:
    """HTTP port from the local configuration, falling back to the default."""
    if not path.exists():
        return DeviceConfig().port
    try:
        return parse_device_config(path.read_text(encoding="utf-8")).port
    except DeviceConfigError as exc:
        logger.warning("Ignoring unreadable %s: %s", path, exc)
        return DeviceConfig().port


__all__ = ["DEFAULT_CONFIG_TEXT", "ensure_device_config", "parse_device_config", "read_device_port"]
