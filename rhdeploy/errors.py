"""Error taxonomy for the provisioning pipeline."""

from __future__ import annotations


class ProvisionError(RuntimeError):
    """Base class for conditions that abort a provisioning run."""

    code = "provision_error"

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message)
        self.hint = hint

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base} ({self.hint})" if self.hint else base


class UnsupportedPlatformError(ProvisionError):
    """Raised when the host platform has no known tool bundle."""

    code = "unsupported_platform"


class TransportError(ProvisionError):
    """Raised when a transport binary cannot be executed at all."""

    code = "transport_unusable"


class ToolchainMissingError(ProvisionError):
    """Raised when a native build lacks the cross compiler."""

    code = "toolchain_missing"


class BuildError(ProvisionError):
    """Raised when the build tool fails or produces no artifact."""

    code = "build_failed"


class ArtifactMissingError(ProvisionError):
    """Raised when the daemon binary is absent at deploy time."""

    code = "artifact_missing"


class DeviceConfigError(ProvisionError):
    """Raised when the local device configuration cannot be used."""

    code = "device_config_invalid"


class BootTimeoutError(ProvisionError):
    """Raised when the device does not reach a polled state in time."""

    code = "boot_timeout"


class ProvisionCancelled(ProvisionError):
    """Raised when the operator interrupts a run."""

    code = "cancelled"


__all__ = [
    "ArtifactMissingError",
    "BootTimeoutError",
    "BuildError",
    "DeviceConfigError",
    "ProvisionCancelled",
    "ProvisionError",
    "ToolchainMissingError",
    "TransportError",
    "UnsupportedPlatformError",
]
