"""Serial AT-command transport backed by the ``serial`` helper tool."""

from __future__ import annotations

import logging

from ..config.const import DEFAULT_COMMAND_TIMEOUT, SERIAL_SYSCMD_PREFIX
from ..errors import TransportError
from .process import CommandResult, CommandRunner, run_command

logger = logging.getLogger("rhdeploy.transport.serial")


def syscmd_frame(command: str) -> str:
    """AT frame that makes the modem run ``command`` as root."""
    return f"{SERIAL_SYSCMD_PREFIX}{command}"


class SerialChannel:
    """Wrapper around the host-side ``serial`` executable.

    The helper talks to the modem's AT port over USB; commands sent with
    ``AT+SYSCMD=`` run with root privileges on the device.
    """

    def __init__(
        self,
        executable: str,
        *,
        runner: CommandRunner = run_command,
        timeout: float = DEFAULT_COMMAND_TIMEOUT,
    ) -> None:
        self.executable = executable
        self._runner = runner
        self._timeout = timeout

    async def _serial(self, *args: str) -> CommandResult:
        argv = (self.executable, *args)
        try:
            return await self._runner(argv, timeout=self._timeout)
        except OSError as exc:
            raise TransportError(f"Cannot execute serial tool {self.executable}: {exc}") from exc

    async def syscmd(self, command: str) -> CommandResult:
        return await self._serial(syscmd_frame(command))

    async def force_root(self) -> CommandResult:
        """Switch the device into debug mode with a root-capable shell."""
        return await self._serial("--root")

    async def self_test(self) -> bool:
        try:
            result = await self._serial("--help")
        except TransportError as exc:
            logger.warning("Serial tool self-test failed: %s", exc)
            return False
        if not result.ok:
            logger.warning("Serial tool self-test exited with %s", result.returncode)
        return result.ok

    def __repr__(self) -> str:
        return f"SerialChannel({self.executable!r})"


__all__ = ["SerialChannel", "syscmd_frame"]
