"""Tests for the post-reboot connectivity check."""

import asyncio
import time
from pathlib import Path

import pytest
from aiohttp import test_utils, web

from rhdeploy.services.dispatcher import CommandDispatcher
from rhdeploy.services.verify import (
    ConnectivityVerifier,
    PortForwardBinding,
    ensure_port_forward,
    http_probe,
)
from rhdeploy.state.session import Outcome
from tests.mocks import DeviceFile, FakeDevice, make_config, make_session


def _answering(*ports: int):
    async def probe(url: str, timeout: float) -> bool:
        return any(url == f"http://localhost:{port}/" for port in ports)

    return probe


def _verifier(config, device: FakeDevice, probe) -> ConnectivityVerifier:
    session = make_session(config, device)
    return ConnectivityVerifier(session, CommandDispatcher(session), probe=probe)


@pytest.fixture
def rooted(device: FakeDevice) -> FakeDevice:
    device.files["/bin/rootshell"] = DeviceFile(source="rootshell", mode="-rwsr-xr-x")
    return device


def test_binding_specs() -> None:
    binding = PortForwardBinding(local_port=8080, device_port=8080)
    assert binding.local_spec == "tcp:8080"
    assert binding.url == "http://localhost:8080/"


def test_bindings_follow_configured_port(config, project_root: Path, device: FakeDevice) -> None:
    verifier = _verifier(config, device, _answering())
    assert [b.device_port for b in verifier.bindings()] == [8080, 8888, 9999]

    (project_root / "config.toml").write_text("port = 8888\n")
    assert [b.device_port for b in verifier.bindings()] == [8888, 9999]


@pytest.mark.asyncio
async def test_port_forward_created_only_once(config, device: FakeDevice) -> None:
    session = make_session(config, device)
    binding = PortForwardBinding(local_port=8080, device_port=8080)

    assert await ensure_port_forward(session, binding) is True
    assert await ensure_port_forward(session, binding) is False

    assert device.forward_creations() == [("tcp:8080", "tcp:8080")]
    assert device.forwards == [("tcp:8080", "tcp:8080")]


@pytest.mark.asyncio
async def test_verify_reports_reachable_url(config, rooted: FakeDevice) -> None:
    rooted.daemon_running = True
    verifier = _verifier(config, rooted, _answering(8080))

    result = await verifier.run()
    again = await verifier.run()

    assert result.outcome is Outcome.OK
    assert result.detail == "http://localhost:8080/"
    assert again.outcome is Outcome.OK
    assert len(rooted.forward_creations()) == 3


@pytest.mark.asyncio
async def test_daemon_started_when_not_running(config, rooted: FakeDevice) -> None:
    verifier = _verifier(config, rooted, _answering(8080))

    assert await verifier.ensure_daemon_running() is True
    assert rooted.daemon_running
    assert await verifier.ensure_daemon_running() is False


@pytest.mark.asyncio
async def test_fallback_port_answer_is_accepted(config, rooted: FakeDevice, caplog) -> None:
    rooted.daemon_running = True

    result = await _verifier(config, rooted, _answering(9999)).run()

    assert result.outcome is Outcome.OK
    assert result.detail == "http://localhost:9999/"
    assert "fallback port 9999" in caplog.text


@pytest.mark.asyncio
async def test_unreachable_interface_times_out_with_hint(config, rooted: FakeDevice) -> None:
    rooted.daemon_running = True

    result = await _verifier(config, rooted, _answering()).run()

    assert result.outcome is Outcome.TIMEOUT
    assert "YELLOW LINE" in result.detail
    assert "cat /data/rayhunter/rayhunter.log" in result.detail


@pytest.mark.asyncio
async def test_slow_probes_stay_within_connect_timeout(project_root: Path, rooted: FakeDevice) -> None:
    rooted.daemon_running = True
    config = make_config(project_root, connect_timeout=0.5)

    async def hanging(url: str, timeout: float) -> bool:
        await asyncio.sleep(timeout)
        return False

    started = time.monotonic()
    result = await _verifier(config, rooted, hanging).run()

    assert result.outcome is Outcome.TIMEOUT
    assert time.monotonic() - started < 1.0


@pytest.mark.asyncio
async def test_http_probe_against_live_server() -> None:
    async def index(request: web.Request) -> web.Response:
        return web.Response(text="rayhunter")

    app = web.Application()
    app.router.add_get("/", index)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        assert await http_probe(str(server.make_url("/")), 2.0) is True
        assert await http_probe(str(server.make_url("/missing")), 2.0) is False
        url = str(server.make_url("/"))
    finally:
        await server.close()

    assert await http_probe(url, 0.5) is False
