"""Session state for provisioning runs."""

from .session import DeviceSession, Outcome, StageResult, TransportEndpoint, create_device_session

__all__ = [
    "DeviceSession",
    "Outcome",
    "StageResult",
    "TransportEndpoint",
    "create_device_session",
]
