"""Marshmallow schemas for provisioning and device configuration."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import INCLUDE, Schema, ValidationError, fields, post_load, validate, validates_schema

from .const import (
    DEFAULT_BOOT_TIMEOUT,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HTTP_PORT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REPORT_PATH,
    DEFAULT_TARGET_ARCH,
    DEFAULT_UI_LEVEL,
    DEVICE_QMDL_DIR,
    REBUILD_ASK,
    REBUILD_POLICIES,
)
from .model import DeviceConfig, ProvisionConfig


class ProvisionConfigSchema(Schema):
    """Declarative validation schema for provisioning settings."""

    project_root = fields.Str(load_default=".", validate=validate.Length(min=1))
    verbose = fields.Bool(load_default=False)
    skip_build = fields.Bool(load_default=False)
    rebuild_policy = fields.Str(load_default=REBUILD_ASK, validate=validate.OneOf(REBUILD_POLICIES))
    target_arch = fields.Str(load_default=DEFAULT_TARGET_ARCH, validate=validate.Length(min=1))

    # 0 disables the ceiling on device boot waits
    boot_timeout = fields.Float(load_default=DEFAULT_BOOT_TIMEOUT, validate=validate.Range(min=0.0))
    connect_timeout = fields.Float(load_default=DEFAULT_CONNECT_TIMEOUT, validate=validate.Range(min=0.1))
    poll_interval = fields.Float(load_default=DEFAULT_POLL_INTERVAL, validate=validate.Range(min=0.0, min_inclusive=False))
    command_timeout = fields.Float(load_default=DEFAULT_COMMAND_TIMEOUT, validate=validate.Range(min=1.0))

    log_json = fields.Bool(load_default=False)
    report_path = fields.Str(load_default=DEFAULT_REPORT_PATH, validate=validate.Length(min=1))

    @validates_schema
    def validate_intervals(self, data: Dict[str, Any], **kwargs: Any) -> None:
        if data["poll_interval"] > data["connect_timeout"]:
            raise ValidationError(
                "poll_interval must not exceed connect_timeout",
                field_name="poll_interval",
            )

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> ProvisionConfig:
        return ProvisionConfig(**data)


class DeviceConfigSchema(Schema):
    """Schema for the daemon's ``config.toml``.

    Keys the pipeline does not know about are kept verbatim in
    ``DeviceConfig.extra``; they belong to the daemon.
    """

    class Meta:
        unknown = INCLUDE

    qmdl_store_path = fields.Str(load_default=DEVICE_QMDL_DIR, validate=validate.Length(min=1))
    port = fields.Int(load_default=DEFAULT_HTTP_PORT, strict=True, validate=validate.Range(min=1, max=65535))
    debug_mode = fields.Bool(load_default=False)
    enable_dummy_analyzer = fields.Bool(load_default=False)
    colorblind_mode = fields.Bool(load_default=False)
    ui_level = fields.Int(load_default=DEFAULT_UI_LEVEL, strict=True, validate=validate.Range(min=0, max=255))
    full_background_color = fields.Bool(load_default=False)
    show_screen_overlay = fields.Bool(load_default=True)
    enable_animation = fields.Bool(load_default=True)

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> DeviceConfig:
        known = set(self.fields)
        extra = {key: value for key, value in data.items() if key not in known}
        values = {key: value for key, value in data.items() if key in known}
        return DeviceConfig(**values, extra=extra)
