"""Cross-compilation of the daemon binary."""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Callable, TextIO

import msgspec

from ..config.const import (
    CARGO_REGISTRY_VOLUME,
    CROSS_GCC,
    CROSS_LD,
    CROSS_SYSROOT,
    DAEMON_BINARY_NAME,
    DEFAULT_BUILD_TIMEOUT,
    DOCKER_IMAGE,
    DOCKERFILE,
    REBUILD_ALWAYS,
    REBUILD_ASK,
    REBUILD_POLICIES,
    REBUILD_REUSE,
)
from ..errors import BuildError, ToolchainMissingError
from ..state.session import DeviceSession, Outcome, StageResult
from ..transport.process import CommandResult

logger = logging.getLogger("rhdeploy.service.build")


class BuildArtifact(msgspec.Struct, frozen=True):
    """Descriptor of the daemon binary produced for the device."""

    target_arch: str
    path: str
    built: bool = False

    def exists(self) -> bool:
        return Path(self.path).is_file()


def artifact_path(project_root: Path, target_arch: str) -> Path:
    return project_root / "target" / target_arch / "release" / DAEMON_BINARY_NAME


class RebuildPolicy:
    """Decide whether an existing artifact is rebuilt.

    ``always`` rebuilds, ``reuse`` keeps the artifact, and ``ask`` prompts
    when stdin is a terminal and otherwise behaves like ``reuse``.
    """

    def __init__(
        self,
        mode: str = REBUILD_ASK,
        *,
        stdin: TextIO | None = None,
        prompt: Callable[[str], str] = input,
    ) -> None:
        if mode not in REBUILD_POLICIES:
            raise ValueError(f"Unknown rebuild policy: {mode}")
        self.mode = mode
        self._stdin = stdin
        self._prompt = prompt

    def _interactive(self) -> bool:
        stream = self._stdin if self._stdin is not None else sys.stdin
        try:
            return stream is not None and stream.isatty()
        except ValueError:
            return False

    async def should_rebuild(self, artifact: BuildArtifact) -> bool:
        if self.mode == REBUILD_ALWAYS:
            return True
        if self.mode == REBUILD_REUSE:
            return False
        if not self._interactive():
            logger.info("Non-interactive session; reusing existing build.")
            return False
        answer = await asyncio.to_thread(
            self._prompt,
            f"Existing build found at {artifact.path}. Rebuild? [y/N] ",
        )
        return answer.strip().lower() in ("y", "yes")


class BuildOrchestrator:
    """Produce the daemon binary with Docker or the native toolchain."""

    name = "build"

    def __init__(
        self,
        session: DeviceSession,
        policy: RebuildPolicy,
        *,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.session = session
        self.policy = policy
        self._which = which

    def descriptor(self, *, built: bool = False) -> BuildArtifact:
        config = self.session.config
        return BuildArtifact(
            target_arch=config.target_arch,
            path=str(artifact_path(config.project_root, config.target_arch)),
            built=built,
        )

    async def _run(self, argv: Sequence[str], *, stream: bool = True) -> CommandResult:
        try:
            return await self.session.runner(
                argv,
                timeout=DEFAULT_BUILD_TIMEOUT,
                cwd=self.session.config.project_root,
                stream=stream,
            )
        except OSError as exc:
            raise BuildError(f"Cannot execute {argv[0]}: {exc}") from exc

    async def _checked(self, argv: Sequence[str]) -> None:
        result = await self._run(argv)
        if result.timed_out:
            raise BuildError(f"{argv[0]} timed out after {DEFAULT_BUILD_TIMEOUT:.0f}s")
        if not result.ok:
            raise BuildError(f"{' '.join(argv[:2])} failed with exit code {result.returncode}")

    async def _docker_usable(self) -> bool:
        if not self._which("docker"):
            return False
        try:
            info = await self.session.runner(("docker", "info"), timeout=30.0)
        except OSError:
            return False
        if not info.ok:
            logger.warning("docker is installed but not usable; falling back to a native build")
        return info.ok

    async def _build_docker(self) -> None:
        logger.info("Building with Docker...")
        root = self.session.config.project_root
        arch = self.session.config.target_arch
        await self._checked(("docker", "build", "-t", DOCKER_IMAGE, "-f", DOCKERFILE, "."))
        (root / "target").mkdir(parents=True, exist_ok=True)
        await self._checked(
            (
                "docker", "run", "--rm",
                "-v", f"{root}:/app",
                "-v", f"{root / 'target'}:/app/target",
                "-v", f"{CARGO_REGISTRY_VOLUME}:/usr/local/cargo/registry",
                DOCKER_IMAGE,
                "/bin/bash", "-c", f"cargo build --release --target={arch}",
            )
        )

    async def _build_native(self) -> None:
        logger.info("Building natively...")
        arch = self.session.config.target_arch
        if not self._which("rustup"):
            raise ToolchainMissingError(
                "rustup not found",
                hint="install the Rust toolchain from https://rustup.rs",
            )
        if not self._which(CROSS_GCC):
            raise ToolchainMissingError(
                "Cross-compilation toolchain not found",
                hint="install gcc-arm-linux-gnueabihf and libc6-dev-armhf-cross",
            )
        if not self._which(CROSS_LD):
            logger.warning("%s not found; linking may fail", CROSS_LD)
        if not Path(CROSS_SYSROOT).is_dir():
            logger.warning("armhf sysroot %s not found; linking may fail", CROSS_SYSROOT)

        installed = await self._run(("rustup", "target", "list", "--installed"), stream=False)
        if arch not in installed.stdout.split():
            logger.info("Adding cross-compilation target %s...", arch)
            await self._checked(("rustup", "target", "add", arch))
        await self._checked(("cargo", "build", "--release", f"--target={arch}"))

    async def build(self) -> BuildArtifact:
        config = self.session.config
        existing = self.descriptor()
        if config.skip_build:
            logger.info("Skipping build (skip_build set)")
            return existing
        if existing.exists() and not await self.policy.should_rebuild(existing):
            logger.info("Reusing existing build at %s", existing.path)
            return existing

        if await self._docker_usable():
            await self._build_docker()
        else:
            await self._build_native()

        artifact = self.descriptor(built=True)
        if not artifact.exists():
            raise BuildError(f"Build finished but {artifact.path} does not exist")
        logger.info("Build completed successfully!")
        return artifact

    async def run(self) -> StageResult:
        artifact = await self.build()
        self.session.artifact = artifact
        if artifact.built:
            return StageResult(self.name, Outcome.OK, artifact.path)
        if self.session.config.skip_build:
            return StageResult(self.name, Outcome.SKIPPED, "build skipped")
        return StageResult(self.name, Outcome.SKIPPED, f"reused {artifact.path}")


__all__ = ["BuildArtifact", "BuildOrchestrator", "RebuildPolicy", "artifact_path"]
