"""Post-reboot connectivity check of the daemon's web interface."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable
from typing import Callable

import aiohttp
import msgspec

from ..config.const import (
    DAEMON_BINARY_NAME,
    DAEMON_SERVICE,
    DEFAULT_LOCAL_CONFIG,
    DEVICE_INIT_DIR,
    DEVICE_LOG_PATH,
    DEVICE_ROOTSHELL_PATH,
    FALLBACK_HTTP_PORTS,
    HTTP_PROBE_TIMEOUT,
)
from ..config.device import read_device_port
from ..state.session import DeviceSession, Outcome, StageResult
from .boot import poll_until
from .dispatcher import CommandDispatcher

logger = logging.getLogger("rhdeploy.service.verify")

HttpProbe = Callable[[str, float], Awaitable[bool]]


class PortForwardBinding(msgspec.Struct, frozen=True):
    local_port: int
    device_port: int

    @property
    def local_spec(self) -> str:
        return f"tcp:{self.local_port}"

    @property
    def device_spec(self) -> str:
        return f"tcp:{self.device_port}"

    @property
    def url(self) -> str:
        return f"http://localhost:{self.local_port}/"


async def http_probe(url: str, timeout: float) -> bool:
    """True when ``url`` answers with a non-error status."""
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    try:
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.get(url, allow_redirects=True) as response:
                return response.status < 400
    except (aiohttp.ClientError, TimeoutError) as exc:
        logger.debug("Probe of %s failed: %s", url, exc)
        return False


async def ensure_port_forward(session: DeviceSession, binding: PortForwardBinding) -> bool:
    """Create ``binding`` unless ``adb forward --list`` already has it.

    Returns True when a new forward was created.
    """
    existing = await session.bridge.list_forwards()
    if (binding.local_spec, binding.device_spec) in existing:
        logger.debug("Port forward %s -> %s already present", binding.local_spec, binding.device_spec)
        return False
    result = await session.bridge.forward(binding.local_spec, binding.device_spec)
    if not result.ok:
        logger.warning("Port forward %s failed: %s", binding.local_spec, result.stderr.strip())
        return False
    logger.info(
        "Port forwarding set up: localhost:%d -> device:%d",
        binding.local_port,
        binding.device_port,
    )
    return True


def troubleshooting_hint() -> str:
    return (
        "Check the device screen - you should see a YELLOW LINE at the top if the UI is working. "
        f"To see the log file, run: adb shell \"{DEVICE_ROOTSHELL_PATH} -c 'cat {DEVICE_LOG_PATH}'\""
    )


class ConnectivityVerifier:
    """Make sure the daemon runs and its HTTP interface answers."""

    name = "verify"

    def __init__(
        self,
        session: DeviceSession,
        dispatcher: CommandDispatcher,
        *,
        probe: HttpProbe = http_probe,
    ) -> None:
        self.session = session
        self.dispatcher = dispatcher
        self._probe = probe

    def bindings(self) -> list[PortForwardBinding]:
        port = read_device_port(self.session.config.path(DEFAULT_LOCAL_CONFIG))
        ports = dict.fromkeys((port, *FALLBACK_HTTP_PORTS))
        return [PortForwardBinding(local_port=p, device_port=p) for p in ports]

    async def ensure_daemon_running(self) -> bool:
        """Start the daemon service if it is not running; True if started."""
        logger.info("Checking if rayhunter service is running...")
        listing = await self.dispatcher.rootshell(f"ps | grep {DAEMON_BINARY_NAME}")
        running = any(
            DAEMON_BINARY_NAME in line and "grep" not in line
            for line in listing.stdout.splitlines()
        )
        if running:
            logger.info("Rayhunter service is already running.")
            return False
        logger.info("Starting rayhunter service...")
        start = await self.dispatcher.rootshell(f"{DEVICE_INIT_DIR}/{DAEMON_SERVICE} start")
        if not start.ok:
            logger.warning("Service start exited with %s", start.returncode)
        return True

    async def run(self) -> StageResult:
        config = self.session.config
        await self.ensure_daemon_running()

        bindings = self.bindings()
        for binding in bindings:
            await ensure_port_forward(self.session, binding)

        reached: list[PortForwardBinding] = []
        probe_timeout = min(HTTP_PROBE_TIMEOUT, config.connect_timeout)

        async def any_port_answers() -> bool:
            for binding in bindings:
                if await self._probe(binding.url, probe_timeout):
                    reached.append(binding)
                    return True
            return False

        logger.info("Testing connection to rayhunter server...")
        started = time.monotonic()
        answered = await poll_until(
            self.session,
            any_port_answers,
            timeout=config.connect_timeout,
            interval=config.poll_interval,
            description="rayhunter web interface",
        )
        if not answered:
            logger.warning("Timeout reached! Failed to reach rayhunter URL.")
            logger.warning(troubleshooting_hint())
            return StageResult(
                self.name,
                Outcome.TIMEOUT,
                f"no answer within {config.connect_timeout:.0f}s; {troubleshooting_hint()}",
                time.monotonic() - started,
            )

        url = reached[0].url
        if reached[0] is not bindings[0]:
            logger.warning("Daemon answered on fallback port %d", reached[0].device_port)
        logger.info("You can access rayhunter at %s", url)
        return StageResult(self.name, Outcome.OK, url)


__all__ = [
    "ConnectivityVerifier",
    "PortForwardBinding",
    "ensure_port_forward",
    "http_probe",
    "troubleshooting_hint",
]
