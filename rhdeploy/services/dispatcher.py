"""Command dispatch to the device over whichever transport is usable."""

from __future__ import annotations

import logging
import shlex

from ..config.const import DEVICE_ROOTSHELL_PATH
from ..state.session import DeviceSession
from ..transport.process import CommandResult

logger = logging.getLogger("rhdeploy.service.dispatcher")


def rootshell_command(command: str) -> str:
    """Shell line that runs ``command`` through the setuid helper."""
    return f"{DEVICE_ROOTSHELL_PATH} -c {shlex.quote(command)}"


class CommandDispatcher:
    """Route plain and privileged commands to the device.

    Privileged commands prefer the serial channel (``AT+SYSCMD``) and fall
    back to the bridge shell through ``/bin/rootshell``. Fallback failures
    are logged and returned, never raised; a transport that cannot be
    executed at all still raises :class:`~rhdeploy.errors.TransportError`.
    """

    def __init__(self, session: DeviceSession) -> None:
        self.session = session

    async def shell(self, command: str) -> CommandResult:
        return await self.session.bridge.shell(command)

    async def rootshell(self, command: str) -> CommandResult:
        return await self.session.bridge.shell(rootshell_command(command))

    async def privileged(self, command: str) -> CommandResult:
        serial = self.session.serial
        if serial is not None:
            logger.info("Running AT command: %s", command)
            result = await serial.syscmd(command)
            if not result.ok:
                logger.warning(
                    "AT command failed (exit %s): %s",
                    result.returncode,
                    command,
                )
            return result

        logger.warning("Cannot run AT command: %s (serial tool not available)", command)
        result = await self.rootshell(command)
        if not result.ok:
            detail = (result.stderr or result.stdout).strip() or f"exit {result.returncode}"
            logger.warning("Rootshell fallback failed for '%s': %s", command, detail)
        return result


__all__ = ["CommandDispatcher", "rootshell_command"]
