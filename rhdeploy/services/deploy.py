"""Staging of the daemon, its configuration and init scripts on the device."""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

import msgspec

from ..config.const import (
    DAEMON_SERVICE,
    DEFAULT_LOCAL_CONFIG,
    DEVICE_CONFIG_PATH,
    DEVICE_DAEMON_PATH,
    DEVICE_INIT_DIR,
    DEVICE_QMDL_DIR,
    DEVICE_TMP_DIR,
    MISC_SERVICE,
    MODE_CONFIG,
    MODE_EXECUTABLE,
)
from ..config.device import ensure_device_config
from ..errors import ArtifactMissingError
from ..state.session import DeviceSession, Outcome, StageResult
from .build import BuildArtifact, artifact_path
from .dispatcher import CommandDispatcher

logger = logging.getLogger("rhdeploy.service.deploy")


class ServiceUnit(msgspec.Struct, frozen=True):
    """An init script installed under ``/etc/init.d``."""

    name: str
    device_path: str
    sources: tuple[str, ...]

    @classmethod
    def named(cls, name: str) -> "ServiceUnit":
        return cls(
            name=name,
            device_path=f"{DEVICE_INIT_DIR}/{name}",
            sources=(f"scripts/{name}", f"dist/scripts/{name}"),
        )

    def locate(self, project_root: Path) -> Path | None:
        for source in self.sources:
            candidate = project_root / source
            if candidate.is_file():
                return candidate
        return None


SERVICE_UNITS: tuple[ServiceUnit, ...] = (
    ServiceUnit.named(DAEMON_SERVICE),
    ServiceUnit.named(MISC_SERVICE),
)


class DeployOrchestrator:
    """Copy every deployable file to its device location.

    Each run overwrites the full file set, so repeating a deployment
    leaves the device in the same state.
    """

    name = "deploy"

    def __init__(
        self,
        session: DeviceSession,
        dispatcher: CommandDispatcher,
        *,
        units: tuple[ServiceUnit, ...] = SERVICE_UNITS,
    ) -> None:
        self.session = session
        self.dispatcher = dispatcher
        self.units = units
        self._problems: list[str] = []

    def _artifact(self) -> BuildArtifact:
        if self.session.artifact is not None:
            return self.session.artifact
        config = self.session.config
        return BuildArtifact(
            target_arch=config.target_arch,
            path=str(artifact_path(config.project_root, config.target_arch)),
        )

    async def _privileged(self, command: str) -> None:
        result = await self.dispatcher.privileged(command)
        if not result.ok:
            self._problems.append(command)

    async def _stage_file(self, local: Path, device_path: str, mode: str) -> bool:
        staged = f"{DEVICE_TMP_DIR}/{Path(device_path).name}"
        logger.info("Pushing %s to %s", local, staged)
        push = await self.session.bridge.push(local, staged)
        if not push.ok:
            logger.warning("Push of %s failed: %s", local, push.stderr.strip())
            self._problems.append(f"push {local.name}")
            return False
        await self._privileged(f"cp {staged} {device_path}")
        await self._privileged(f"chmod {mode} {device_path}")
        return True

    async def deploy(self) -> list[str]:
        """Stage all files and return the device paths written."""
        self._problems = []
        root = self.session.config.project_root
        staged: list[str] = []

        device_config, created = ensure_device_config(root / DEFAULT_LOCAL_CONFIG)
        if created:
            logger.info("Default config.toml written; later runs reuse it.")

        logger.info("Creating rayhunter directory...")
        data_dirs = dict.fromkeys((DEVICE_QMDL_DIR, device_config.qmdl_store_path))
        await self._privileged("mkdir -p " + " ".join(shlex.quote(path) for path in data_dirs))

        logger.info("Stopping rayhunter service if running...")
        stop = await self.dispatcher.rootshell(f"{DEVICE_INIT_DIR}/{DAEMON_SERVICE} stop")
        if not stop.ok:
            logger.debug("Service stop returned %s (ignored)", stop.returncode)

        if await self._stage_file(root / DEFAULT_LOCAL_CONFIG, DEVICE_CONFIG_PATH, MODE_CONFIG):
            staged.append(DEVICE_CONFIG_PATH)

        artifact = self._artifact()
        if not artifact.exists():
            raise ArtifactMissingError(
                f"Daemon binary not found at {artifact.path}",
                hint="build first or drop --skip-build",
            )
        if await self._stage_file(Path(artifact.path), DEVICE_DAEMON_PATH, MODE_EXECUTABLE):
            staged.append(DEVICE_DAEMON_PATH)

        for unit in self.units:
            source = unit.locate(root)
            if source is None:
                logger.warning("%s script not found, skipping", unit.name)
                continue
            logger.info("Installing %s service script from %s", unit.name, source.parent)
            if await self._stage_file(source, unit.device_path, MODE_EXECUTABLE):
                staged.append(unit.device_path)
        return staged

    async def run(self) -> StageResult:
        staged = await self.deploy()
        detail = ", ".join(staged)
        if self._problems:
            return StageResult(self.name, Outcome.DEGRADED, "failed: " + "; ".join(self._problems))
        return StageResult(self.name, Outcome.OK, detail)


__all__ = ["SERVICE_UNITS", "DeployOrchestrator", "ServiceUnit"]
