"""USB debug-bridge (adb) transport."""

from __future__ import annotations

import logging
from pathlib import Path

from ..config.const import DEFAULT_COMMAND_TIMEOUT
from ..errors import TransportError
from .process import CommandResult, CommandRunner, run_command

logger = logging.getLogger("rhdeploy.transport.bridge")


class BridgeShell:
    """Thin async wrapper around the ``adb`` executable."""

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

    async def _adb(self, *args: str) -> CommandResult:
        argv = (self.executable, *args)
        try:
            return await self._runner(argv, timeout=self._timeout)
        except OSError as exc:
            raise TransportError(
                f"Cannot execute debug bridge {self.executable}: {exc}",
            ) from exc

    async def shell(self, command: str) -> CommandResult:
        return await self._adb("shell", command)

    async def push(self, local: Path | str, remote: str) -> CommandResult:
        logger.debug("push %s -> %s", local, remote)
        return await self._adb("push", str(local), remote)

    async def forward(self, local: str, remote: str) -> CommandResult:
        return await self._adb("forward", local, remote)

    async def list_forwards(self) -> list[tuple[str, str]]:
        """Active forwards as ``(local, remote)`` spec pairs."""
        result = await self._adb("forward", "--list")
        if not result.ok:
            logger.warning("Could not list port forwards: %s", result.stderr.strip())
            return []
        forwards: list[tuple[str, str]] = []
        for line in result.stdout.splitlines():
            # "<serial> tcp:8080 tcp:8080"
            parts = line.split()
            if len(parts) >= 3:
                forwards.append((parts[1], parts[2]))
        return forwards

    def __repr__(self) -> str:
        return f"BridgeShell({self.executable!r})"


__all__ = ["BridgeShell"]
