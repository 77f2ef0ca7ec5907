"""Device boot synchronisation.

The device offers no readiness notification, so every wait polls it. The
observed state machine below only mirrors what the last poll saw; callers
always re-poll before acting.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import TYPE_CHECKING, Any, Callable

import tenacity
from tenacity.stop import stop_base
from transitions import Machine

from ..config.const import DEVICE_AGENT_PROCESS
from ..errors import BootTimeoutError, ProvisionCancelled
from ..state.session import DeviceSession, Outcome, StageResult
from .dispatcher import CommandDispatcher

logger = logging.getLogger("rhdeploy.service.boot")


def _retry_if_false(res: Any) -> bool:
    return res is False


def _log_poll_retry(retry_state: tenacity.RetryCallState) -> None:
    logger.debug(
        "Poll attempt %d negative; retrying in %.2fs",
        retry_state.attempt_number,
        retry_state.next_action.sleep if retry_state.next_action else 0,
    )


class stop_on_event(stop_base):
    """Stop retrying once ``event`` is set."""

    def __init__(self, event: asyncio.Event) -> None:
        self._event = event

    def __call__(self, retry_state: tenacity.RetryCallState) -> bool:
        return self._event.is_set()


async def poll_until(
    session: DeviceSession,
    probe: Callable[[], Awaitable[bool]],
    *,
    timeout: float | None,
    interval: float,
    description: str = "condition",
) -> bool:
    """Poll ``probe`` every ``interval`` seconds until it returns True.

    Returns False once ``timeout`` elapses (``None`` waits forever). The
    timeout is a hard deadline: a probe still running when it passes is
    cancelled.

    Raises:
        ProvisionCancelled: when the session's cancellation event is set.
    """

    async def attempt() -> bool:
        session.raise_if_cancelled()
        return await probe()

    stop: stop_base = stop_on_event(session.cancel_event)
    if timeout is not None:
        stop = stop | tenacity.stop_after_delay(timeout)
    retryer = tenacity.AsyncRetrying(
        stop=stop,
        wait=tenacity.wait_fixed(interval),
        retry=tenacity.retry_if_result(_retry_if_false),
        before_sleep=_log_poll_retry,
        reraise=False,
    )
    deadline = asyncio.timeout(timeout)
    try:
        async with deadline:
            await retryer(attempt)
    except tenacity.RetryError as exc:
        if session.cancelled:
            raise ProvisionCancelled(f"Interrupted while waiting for {description}") from exc
        return False
    except TimeoutError:
        if not deadline.expired():
            raise
        logger.debug("Deadline of %.1fs passed while waiting for %s", timeout, description)
        return False
    return True


class BootWaiter:
    """Bounded, cancellable polling of the device's boot progress."""

    if TYPE_CHECKING:
        fsm_state: str
        shell_answered: Callable[[], None]
        agent_seen: Callable[[], None]
        shell_lost: Callable[[], None]

    STATE_OFFLINE = "offline"
    STATE_SHELL_UP = "shell_up"
    STATE_READY = "ready"

    def __init__(self, session: DeviceSession, dispatcher: CommandDispatcher) -> None:
        self.session = session
        self.dispatcher = dispatcher

        self.state_machine = Machine(
            model=self,
            states=[self.STATE_OFFLINE, self.STATE_SHELL_UP, self.STATE_READY],
            initial=self.STATE_OFFLINE,
            ignore_invalid_triggers=True,
            model_attribute="fsm_state",
        )
        self.state_machine.add_transition(
            trigger="shell_answered", source=self.STATE_OFFLINE, dest=self.STATE_SHELL_UP
        )
        self.state_machine.add_transition(
            trigger="agent_seen",
            source=[self.STATE_OFFLINE, self.STATE_SHELL_UP],
            dest=self.STATE_READY,
        )
        self.state_machine.add_transition(trigger="shell_lost", source="*", dest=self.STATE_OFFLINE)

    async def _poll(self, description: str, probe: Callable[[], Awaitable[bool]]) -> float:
        """Poll ``probe`` until it returns True; returns elapsed seconds."""
        config = self.session.config
        logger.info("Waiting for %s...", description)
        started = time.monotonic()
        if not await poll_until(
            self.session,
            probe,
            timeout=config.boot_deadline,
            interval=config.poll_interval,
            description=description,
        ):
            raise BootTimeoutError(
                f"Timed out after {time.monotonic() - started:.0f}s waiting for {description}",
                hint="power-cycle the device or raise --boot-timeout",
            )
        elapsed = time.monotonic() - started
        logger.info("%s: ready after %.1fs", description.capitalize(), elapsed)
        return elapsed

    async def _shell_answers(self) -> bool:
        result = await self.dispatcher.shell("true")
        if result.ok:
            self.shell_answered()
        else:
            self.shell_lost()
        return result.ok

    async def _shell_gone(self) -> bool:
        return not await self._shell_answers()

    async def _agent_running(self) -> bool:
        result = await self.dispatcher.shell(f"pgrep {DEVICE_AGENT_PROCESS}")
        if result.ok and result.output:
            self.agent_seen()
            return True
        return False

    async def wait_for_shell_up(self) -> float:
        return await self._poll("device to be available", self._shell_answers)

    async def wait_for_agent_running(self) -> float:
        return await self._poll(f"{DEVICE_AGENT_PROCESS} to startup", self._agent_running)

    async def wait_for_shell_down(self) -> float:
        """Return only after the bridge shell stops answering."""
        return await self._poll("device to go offline", self._shell_gone)


class DebugModeSwitch:
    """Force the device into debug mode over the serial channel."""

    name = "debug_mode"

    def __init__(self, session: DeviceSession, waiter: BootWaiter) -> None:
        self.session = session
        self.waiter = waiter

    async def run(self) -> StageResult:
        serial = self.session.serial
        if serial is None:
            logger.warning("Skipping debug mode check (serial tool not available)")
            return StageResult(self.name, Outcome.SKIPPED, "serial tool not available")

        logger.info("Force switching device into the debug mode to enable ADB...")
        result = await serial.force_root()
        if not result.ok:
            logger.warning("serial --root exited with %s", result.returncode)
        await self.waiter.wait_for_shell_up()
        await self.waiter.wait_for_agent_running()
        if not result.ok:
            return StageResult(self.name, Outcome.DEGRADED, f"serial --root exit {result.returncode}")
        return StageResult(self.name, Outcome.OK)


__all__ = ["BootWaiter", "DebugModeSwitch", "poll_until", "stop_on_event"]
