"""Asynchronous host command execution with process-tree cleanup."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Mapping, Sequence
from typing import Protocol

import msgspec
import psutil

from ..config.const import PROCESS_KILL_WAIT_TIMEOUT

logger = logging.getLogger("rhdeploy.transport.process")


class CommandResult(msgspec.Struct, frozen=True):
    """Outcome of one host command."""

    argv: tuple[str, ...]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        return self.stdout.strip()


class CommandRunner(Protocol):
    def __call__(
        self,
        argv: Sequence[str],
        *,
        timeout: float | None = None,
        cwd: str | os.PathLike[str] | None = None,
        env: Mapping[str, str] | None = None,
        stream: bool = False,
    ) -> Awaitable[CommandResult]: ...


def kill_process_tree(pid: int) -> None:
    """Terminate ``pid`` and its descendants, escalating to SIGKILL."""
    try:
        process = psutil.Process(pid)
    except psutil.Error:
        return
    try:
        children = process.children(recursive=True)
    except psutil.Error:
        children = []
    targets = children + [process]

    for proc in targets:
        try:
            proc.terminate()
        except psutil.Error:
            continue

    try:
        _, alive = psutil.wait_procs(targets, timeout=PROCESS_KILL_WAIT_TIMEOUT)
    except psutil.Error:
        alive = targets
    if not alive:
        return

    for proc in alive:
        try:
            proc.kill()
        except psutil.Error:
            continue
    try:
        psutil.wait_procs(alive, timeout=PROCESS_KILL_WAIT_TIMEOUT)
    except psutil.Error:
        return


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    await asyncio.to_thread(kill_process_tree, proc.pid)
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    try:
        async with asyncio.timeout(PROCESS_KILL_WAIT_TIMEOUT):
            await proc.wait()
    except TimeoutError:
        logger.warning("Process %d did not exit after kill.", proc.pid)


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace")


async def run_command(
    argv: Sequence[str],
    *,
    timeout: float | None = None,
    cwd: str | os.PathLike[str] | None = None,
    env: Mapping[str, str] | None = None,
    stream: bool = False,
) -> CommandResult:
    """Run ``argv`` and collect its output.

    With ``stream`` the child inherits the terminal instead of being
    captured, which suits long builds. On timeout or cancellation the
    whole process tree is killed.

    Raises:
        OSError: when the executable cannot be started.
    """
    argv = tuple(str(part) for part in argv)
    logger.debug("exec: %s", " ".join(argv))
    pipe = None if stream else asyncio.subprocess.PIPE
    merged_env = {**os.environ, **env} if env else None
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=pipe,
        stderr=pipe,
        cwd=cwd,
        env=merged_env,
    )

    try:
        async with asyncio.timeout(timeout):
            stdout_bytes, stderr_bytes = await proc.communicate()
    except TimeoutError:
        logger.warning("Command timed out after %.1fs: %s", timeout, argv[0])
        await _terminate(proc)
        return CommandResult(argv=argv, returncode=proc.returncode, timed_out=True)
    except asyncio.CancelledError:
        await _terminate(proc)
        raise

    result = CommandResult(
        argv=argv,
        returncode=proc.returncode,
        stdout=_decode(stdout_bytes),
        stderr=_decode(stderr_bytes),
    )
    if not result.ok:
        logger.debug("exit %s: %s %s", result.returncode, argv[0], result.stderr.strip())
    return result


__all__ = ["CommandResult", "CommandRunner", "kill_process_tree", "run_command"]
