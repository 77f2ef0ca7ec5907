"""Per-run device session shared by every pipeline stage."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

import msgspec

from ..config.model import ProvisionConfig
from ..errors import ProvisionCancelled, TransportError
from ..transport.bridge import BridgeShell
from ..transport.process import CommandRunner, run_command
from ..transport.serial import SerialChannel

if TYPE_CHECKING:
    from ..services.build import BuildArtifact


class Outcome(StrEnum):
    OK = "ok"
    SKIPPED = "skipped"
    DEGRADED = "degraded"
    FAILED = "failed"
    TIMEOUT = "timeout"


class StageResult(msgspec.Struct, frozen=True):
    """Reported outcome of one pipeline stage."""

    stage: str
    outcome: Outcome
    detail: str = ""
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome in (Outcome.OK, Outcome.SKIPPED, Outcome.DEGRADED)


class TransportEndpoint(msgspec.Struct, frozen=True):
    """How a transport was resolved on this host.

    ``source`` is one of ``path``, ``bundle``, ``prebuilt``, ``built`` or
    ``missing``.
    """

    kind: str
    available: bool
    resolved_path: str | None = None
    source: str = "missing"


@dataclass(slots=True)
class DeviceSession:
    """Explicit context handed by reference to every stage."""

    config: ProvisionConfig
    bridge_endpoint: TransportEndpoint
    serial_endpoint: TransportEndpoint
    bridge: BridgeShell
    serial: SerialChannel | None = None
    runner: CommandRunner = run_command
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    results: list[StageResult] = field(default_factory=list)
    artifact: BuildArtifact | None = None

    @property
    def serial_available(self) -> bool:
        return self.serial is not None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise ProvisionCancelled("Provisioning interrupted by operator")


def create_device_session(
    config: ProvisionConfig,
    bridge_endpoint: TransportEndpoint,
    serial_endpoint: TransportEndpoint,
    *,
    runner: CommandRunner = run_command,
) -> DeviceSession:
    """Build a session from resolved endpoints.

    Raises:
        TransportError: when the bridge is not available.
    """
    if not bridge_endpoint.available or not bridge_endpoint.resolved_path:
        raise TransportError("Debug bridge is not available")
    bridge = BridgeShell(
        bridge_endpoint.resolved_path,
        runner=runner,
        timeout=config.command_timeout,
    )
    serial: SerialChannel | None = None
    if serial_endpoint.available and serial_endpoint.resolved_path:
        serial = SerialChannel(
            serial_endpoint.resolved_path,
            runner=runner,
            timeout=config.command_timeout,
        )
    return DeviceSession(
        config=config,
        bridge_endpoint=bridge_endpoint,
        serial_endpoint=serial_endpoint,
        bridge=bridge,
        serial=serial,
        runner=runner,
    )


__all__ = [
    "DeviceSession",
    "Outcome",
    "StageResult",
    "TransportEndpoint",
    "create_device_session",
]
