"""Reboot the device and wait for it to come back."""

from __future__ import annotations

import logging

from ..state.session import DeviceSession, Outcome, StageResult
from .boot import BootWaiter
from .dispatcher import CommandDispatcher

logger = logging.getLogger("rhdeploy.service.reboot")

REBOOT_COMMAND = "shutdown -r -t 1 now"


class RebootCoordinator:
    name = "reboot"

    def __init__(self, session: DeviceSession, dispatcher: CommandDispatcher, waiter: BootWaiter) -> None:
        self.session = session
        self.dispatcher = dispatcher
        self.waiter = waiter

    async def run(self) -> StageResult:
        logger.info("Rebooting device to apply changes...")
        command = await self.dispatcher.privileged(REBOOT_COMMAND)
        if not command.ok:
            # Nothing will take the shell down; waiting would only time out.
            logger.warning("Reboot command was not accepted; reboot the device manually to apply changes.")
            return StageResult(self.name, Outcome.DEGRADED, "reboot command failed")

        # Shutdown can take ~10s; the old shell keeps answering until then.
        down = await self.waiter.wait_for_shell_down()
        logger.info("Device is shutting down. Waiting for it to boot back up...")
        up = await self.waiter.wait_for_shell_up()
        agent = await self.waiter.wait_for_agent_running()
        logger.info("Device rebooted successfully!")
        return StageResult(
            self.name,
            Outcome.OK,
            f"down {down:.1f}s, up {up:.1f}s, agent {agent:.1f}s",
        )


__all__ = ["REBOOT_COMMAND", "RebootCoordinator"]
