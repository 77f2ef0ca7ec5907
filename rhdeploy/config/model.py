"""Data model for rayhunter-deploy configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

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
)


@dataclass(slots=True)
class ProvisionConfig:
    """Strongly typed settings for one provisioning run."""

    project_root: Path
    verbose: bool = False
    skip_build: bool = False
    rebuild_policy: str = REBUILD_ASK
    target_arch: str = DEFAULT_TARGET_ARCH
    boot_timeout: float = DEFAULT_BOOT_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    log_json: bool = False
    report_path: Path = field(default_factory=lambda: Path(DEFAULT_REPORT_PATH))

    def __post_init__(self) -> None:
        self.project_root = Path(self.project_root).expanduser().resolve()
        report = Path(self.report_path).expanduser()
        if not report.is_absolute():
            report = self.project_root / report
        self.report_path = report

    @property
    def boot_deadline(self) -> float | None:
        """Boot wait ceiling in seconds, ``None`` when unbounded."""
        return self.boot_timeout if self.boot_timeout > 0 else None

    def path(self, *parts: str) -> Path:
        return self.project_root.joinpath(*parts)


@dataclass(slots=True)
class DeviceConfig:
    """Configuration document consumed by the daemon on the device."""

    qmdl_store_path: str = DEVICE_QMDL_DIR
    port: int = DEFAULT_HTTP_PORT
    debug_mode: bool = False
    enable_dummy_analyzer: bool = False
    colorblind_mode: bool = False
    ui_level: int = DEFAULT_UI_LEVEL
    full_background_color: bool = False
    show_screen_overlay: bool = True
    enable_animation: bool = True
    extra: dict[str, Any] = field(default_factory=dict)
