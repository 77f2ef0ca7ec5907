"""Tests for the build orchestrator and rebuild policy."""

import io
from pathlib import Path

import pytest

from rhdeploy.errors import BuildError, ToolchainMissingError
from rhdeploy.services.build import BuildArtifact, BuildOrchestrator, RebuildPolicy
from rhdeploy.state.session import Outcome
from rhdeploy.transport.process import CommandResult
from tests.mocks import FakeDevice, make_config, make_session, write_artifact

ARCH = "armv7-unknown-linux-gnueabihf"


class _Tty(io.StringIO):
    def isatty(self) -> bool:
        return True


def _which(*available: str):
    return lambda name: f"/usr/bin/{name}" if name in available else None


def _produce_artifact(root: Path):
    def handler(argv):
        write_artifact(root)
        return CommandResult(argv=argv, returncode=0)

    return handler


def _host_calls(device: FakeDevice) -> list[tuple[str, ...]]:
    return [call for call in device.calls if call[0] in ("docker", "cargo", "rustup")]


@pytest.mark.asyncio
async def test_reuse_policy_skips_all_tools(config, project_root: Path, device: FakeDevice) -> None:
    write_artifact(project_root)
    orchestrator = BuildOrchestrator(
        make_session(config, device), RebuildPolicy("reuse"), which=_which("docker", "rustup", "arm-linux-gnueabihf-gcc")
    )

    result = await orchestrator.run()

    assert result.outcome is Outcome.SKIPPED
    assert device.calls == []
    assert orchestrator.session.artifact is not None
    assert orchestrator.session.artifact.built is False


@pytest.mark.asyncio
async def test_ask_policy_reuses_when_not_interactive(project_root: Path) -> None:
    policy = RebuildPolicy("ask", stdin=io.StringIO(), prompt=lambda _: pytest.fail("prompted"))
    artifact = BuildArtifact(target_arch=ARCH, path=str(write_artifact(project_root)))

    assert await policy.should_rebuild(artifact) is False


@pytest.mark.asyncio
async def test_ask_policy_prompts_on_tty(project_root: Path) -> None:
    questions: list[str] = []

    def prompt(question: str) -> str:
        questions.append(question)
        return "y"

    policy = RebuildPolicy("ask", stdin=_Tty(), prompt=prompt)
    artifact = BuildArtifact(target_arch=ARCH, path=str(write_artifact(project_root)))

    assert await policy.should_rebuild(artifact) is True
    assert "Rebuild?" in questions[0]


def test_unknown_policy_rejected() -> None:
    with pytest.raises(ValueError):
        RebuildPolicy("never")


@pytest.mark.asyncio
async def test_docker_build_when_daemon_usable(config, project_root: Path, device: FakeDevice) -> None:
    device.host_handlers["docker"] = lambda argv: (
        _produce_artifact(project_root)(argv) if argv[1] == "run" else CommandResult(argv=argv, returncode=0)
    )
    orchestrator = BuildOrchestrator(make_session(config, device), RebuildPolicy("always"), which=_which("docker"))

    artifact = await orchestrator.build()

    calls = _host_calls(device)
    assert calls[0] == ("docker", "info")
    assert calls[1] == ("docker", "build", "-t", "rayhunter-build", "-f", "Dockerfile.build", ".")
    run = calls[2]
    assert run[:3] == ("docker", "run", "--rm")
    assert f"{project_root}:/app" in run
    assert "cargo-registry:/usr/local/cargo/registry" in run
    assert run[-1] == f"cargo build --release --target={ARCH}"
    assert artifact.built and artifact.exists()


@pytest.mark.asyncio
async def test_native_build_adds_missing_target(config, project_root: Path, device: FakeDevice) -> None:
    device.host_handlers["rustup"] = lambda argv: CommandResult(argv=argv, returncode=0, stdout="x86_64-unknown-linux-gnu\n")
    device.host_handlers["cargo"] = _produce_artifact(project_root)
    orchestrator = BuildOrchestrator(
        make_session(config, device),
        RebuildPolicy("always"),
        which=_which("rustup", "arm-linux-gnueabihf-gcc", "arm-linux-gnueabihf-ld"),
    )

    result = await orchestrator.run()

    assert result.outcome is Outcome.OK
    assert _host_calls(device) == [
        ("rustup", "target", "list", "--installed"),
        ("rustup", "target", "add", ARCH),
        ("cargo", "build", "--release", f"--target={ARCH}"),
    ]


@pytest.mark.asyncio
async def test_unusable_docker_falls_back_to_native(config, project_root: Path, device: FakeDevice) -> None:
    device.host_handlers["docker"] = lambda argv: CommandResult(argv=argv, returncode=1, stderr="Cannot connect")
    device.host_handlers["rustup"] = lambda argv: CommandResult(argv=argv, returncode=0, stdout=f"{ARCH}\n")
    device.host_handlers["cargo"] = _produce_artifact(project_root)
    orchestrator = BuildOrchestrator(
        make_session(config, device),
        RebuildPolicy("always"),
        which=_which("docker", "rustup", "arm-linux-gnueabihf-gcc"),
    )

    await orchestrator.build()

    calls = _host_calls(device)
    assert calls[0] == ("docker", "info")
    assert ("rustup", "target", "add", ARCH) not in calls
    assert calls[-1][0] == "cargo"


@pytest.mark.asyncio
async def test_missing_cross_compiler_is_fatal(config, device: FakeDevice) -> None:
    orchestrator = BuildOrchestrator(make_session(config, device), RebuildPolicy("always"), which=_which("rustup"))

    with pytest.raises(ToolchainMissingError) as excinfo:
        await orchestrator.build()
    assert "gcc-arm-linux-gnueabihf" in str(excinfo.value)


@pytest.mark.asyncio
async def test_missing_rustup_is_fatal(config, device: FakeDevice) -> None:
    orchestrator = BuildOrchestrator(make_session(config, device), RebuildPolicy("always"), which=_which())

    with pytest.raises(ToolchainMissingError):
        await orchestrator.build()


@pytest.mark.asyncio
async def test_failing_build_tool_raises(config, device: FakeDevice) -> None:
    device.host_handlers["rustup"] = lambda argv: CommandResult(argv=argv, returncode=0, stdout=f"{ARCH}\n")
    device.host_handlers["cargo"] = lambda argv: CommandResult(argv=argv, returncode=101)
    orchestrator = BuildOrchestrator(
        make_session(config, device), RebuildPolicy("always"), which=_which("rustup", "arm-linux-gnueabihf-gcc")
    )

    with pytest.raises(BuildError):
        await orchestrator.build()


@pytest.mark.asyncio
async def test_successful_tool_without_artifact_raises(config, device: FakeDevice) -> None:
    device.host_handlers["rustup"] = lambda argv: CommandResult(argv=argv, returncode=0, stdout=f"{ARCH}\n")
    orchestrator = BuildOrchestrator(
        make_session(config, device), RebuildPolicy("always"), which=_which("rustup", "arm-linux-gnueabihf-gcc")
    )

    with pytest.raises(BuildError):
        await orchestrator.build()


@pytest.mark.asyncio
async def test_skip_build_returns_descriptor_only(project_root: Path, device: FakeDevice) -> None:
    config = make_config(project_root, skip_build=True)
    orchestrator = BuildOrchestrator(make_session(config, device), RebuildPolicy("always"), which=_which("docker"))

    result = await orchestrator.run()

    assert result.outcome is Outcome.SKIPPED
    assert device.calls == []
    assert not orchestrator.session.artifact.exists()
