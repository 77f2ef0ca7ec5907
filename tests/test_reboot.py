"""Tests for the reboot cycle."""

import pytest

from rhdeploy.errors import BootTimeoutError
from rhdeploy.services.boot import BootWaiter
from rhdeploy.services.dispatcher import CommandDispatcher
from rhdeploy.services.reboot import REBOOT_COMMAND, RebootCoordinator
from rhdeploy.state.session import Outcome
from tests.mocks import FakeDevice, make_config, make_session


def _coordinator(config, device: FakeDevice) -> RebootCoordinator:
    session = make_session(config, device)
    dispatcher = CommandDispatcher(session)
    return RebootCoordinator(session, dispatcher, BootWaiter(session, dispatcher))


@pytest.mark.asyncio
async def test_reboot_waits_for_down_then_up(config, device: FakeDevice) -> None:
    coordinator = _coordinator(config, device)

    result = await coordinator.run()

    assert result.outcome is Outcome.OK
    assert device.serial_commands() == [f"AT+SYSCMD={REBOOT_COMMAND}"]
    # Answers twice while shutting down, one miss, one more miss, then back up.
    assert device.shell_commands() == ["true"] * 5 + ["pgrep atfwd_daemon"]
    assert coordinator.waiter.fsm_state == BootWaiter.STATE_READY


@pytest.mark.asyncio
async def test_device_that_never_goes_down_times_out(project_root, device: FakeDevice) -> None:
    device.reboot_up_polls = 1000
    coordinator = _coordinator(make_config(project_root, boot_timeout=0.2), device)

    with pytest.raises(BootTimeoutError):
        await coordinator.run()


@pytest.mark.asyncio
async def test_rejected_reboot_command_skips_waits(config, device: FakeDevice) -> None:
    session = make_session(config, device, serial=False)
    dispatcher = CommandDispatcher(session)

    result = await RebootCoordinator(session, dispatcher, BootWaiter(session, dispatcher)).run()

    assert result.outcome is Outcome.DEGRADED
    assert "true" not in device.shell_commands()
