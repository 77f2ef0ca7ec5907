"""Installation of the setuid ``rootshell`` helper on the device."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from ..config.const import (
    DEVICE_ROOTSHELL_PATH,
    DEVICE_TMP_DIR,
    MODE_SETUID,
    POSTCONDITION_INTERVAL,
    POSTCONDITION_TIMEOUT,
    ROOTSHELL_NAME,
)
from ..state.session import DeviceSession, Outcome, StageResult
from .boot import poll_until
from .dispatcher import CommandDispatcher

logger = logging.getLogger("rhdeploy.service.privilege")


class FileListing:
    """Parsed ``ls -l`` line for one device file."""

    __slots__ = ("mode", "owner", "size")

    def __init__(self, mode: str, owner: str, size: int | None = None) -> None:
        self.mode = mode
        self.owner = owner
        self.size = size

    @classmethod
    def parse(cls, line: str) -> "FileListing | None":
        parts = line.split()
        if len(parts) < 3 or len(parts[0]) < 10:
            return None
        # mode, links, owner, group, size
        size = int(parts[4]) if len(parts) > 4 and parts[4].isdigit() else None
        return cls(mode=parts[0], owner=parts[2], size=size)

    @property
    def setuid(self) -> bool:
        return self.mode[3] in ("s", "S")


def locate_rootshell(project_root: Path, target_arch: str) -> Path | None:
    """First existing helper binary: ``./rootshell`` then the cargo output."""
    candidates = (
        project_root / ROOTSHELL_NAME,
        project_root / "target" / target_arch / "release" / ROOTSHELL_NAME,
    )
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


class PrivilegeEscalator:
    """Push ``rootshell`` and make it a root-owned setuid binary."""

    name = "rootshell"

    def __init__(self, session: DeviceSession, dispatcher: CommandDispatcher) -> None:
        self.session = session
        self.dispatcher = dispatcher

    async def _listing(self) -> FileListing | None:
        result = await self.dispatcher.shell(f"ls -l {DEVICE_ROOTSHELL_PATH}")
        if not result.ok:
            return None
        return FileListing.parse(result.output)

    async def _await_listing(self, description: str, check: Callable[[FileListing], bool]) -> bool:
        async def probe() -> bool:
            listing = await self._listing()
            return listing is not None and check(listing)

        satisfied = await poll_until(
            self.session,
            probe,
            timeout=POSTCONDITION_TIMEOUT,
            interval=POSTCONDITION_INTERVAL,
            description=description,
        )
        if not satisfied:
            logger.warning("%s not observed within %.0fs", description, POSTCONDITION_TIMEOUT)
        return satisfied

    async def run(self) -> StageResult:
        config = self.session.config
        local = locate_rootshell(config.project_root, config.target_arch)
        if local is None:
            logger.warning("Rootshell binary not found, skipping rootshell setup")
            return StageResult(self.name, Outcome.SKIPPED, "rootshell binary not found")

        staged = f"{DEVICE_TMP_DIR}/{ROOTSHELL_NAME}"
        push = await self.session.bridge.push(local, staged)
        if not push.ok:
            logger.warning("Pushing %s failed: %s", local, push.stderr.strip())
            return StageResult(self.name, Outcome.DEGRADED, "push failed")

        expected_size = local.stat().st_size
        problems: list[str] = []
        steps: tuple[tuple[str, str, Callable[[FileListing], bool]], ...] = (
            (f"cp {staged} {DEVICE_ROOTSHELL_PATH}", "rootshell copied", lambda entry: entry.size == expected_size),
            (f"chown root {DEVICE_ROOTSHELL_PATH}", "rootshell owned by root", lambda entry: entry.owner == "root"),
            (f"chmod {MODE_SETUID} {DEVICE_ROOTSHELL_PATH}", "rootshell setuid bit", lambda entry: entry.setuid),
        )
        for command, description, check in steps:
            result = await self.dispatcher.privileged(command)
            if not result.ok:
                # A helper left by an earlier run can still satisfy the listing.
                problems.append(f"{description}: command failed")
                continue
            if not await self._await_listing(description, check):
                problems.append(description)

        identity = await self.dispatcher.shell(f"{DEVICE_ROOTSHELL_PATH} -c id")
        if "uid=0" not in identity.stdout:
            logger.warning("Rootshell does not grant root: %s", identity.output or identity.stderr.strip())
            problems.append("id did not report uid=0")

        if problems:
            return StageResult(self.name, Outcome.DEGRADED, "; ".join(problems))
        logger.info("Rootshell installed and verified.")
        return StageResult(self.name, Outcome.OK)


__all__ = ["FileListing", "PrivilegeEscalator", "locate_rootshell"]
