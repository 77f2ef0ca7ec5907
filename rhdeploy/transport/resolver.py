"""Discovery of the host-side transport tools.

The debug bridge (``adb``) is mandatory; a local platform-tools bundle is
downloaded when it is not installed. The serial helper is optional and its
absence only degrades the run.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
import sys
import zipfile
from collections.abc import Awaitable, Callable
from pathlib import Path

import aiohttp

from ..config.const import (
    ADB_BINARY,
    HOST_RUST_TRIPLES,
    PLATFORM_TOOLS_ARCHIVE,
    PLATFORM_TOOLS_DIR,
    PLATFORM_TOOLS_DOWNLOAD_TIMEOUT,
    PLATFORM_TOOLS_URL,
    QUARANTINE_XATTR,
    SERIAL_BINARY,
    SERIAL_PREBUILT_DIRS,
    SERIAL_RELEASES_URL,
    SERIAL_SOURCE_DIR,
)
from ..config.model import ProvisionConfig
from ..errors import TransportError, UnsupportedPlatformError
from ..state.session import DeviceSession, TransportEndpoint, create_device_session
from .process import CommandRunner, run_command
from .serial import SerialChannel

logger = logging.getLogger("rhdeploy.transport.resolver")

BRIDGE = "bridge"
SERIAL = "serial"

Downloader = Callable[[str, Path], Awaitable[None]]
Which = Callable[[str], "str | None"]


def host_platform(platform_name: str | None = None) -> str:
    """Normalise ``sys.platform`` to ``linux`` or ``darwin``."""
    name = sys.platform if platform_name is None else platform_name
    if name.startswith("linux"):
        return "linux"
    if name == "darwin":
        return "darwin"
    raise UnsupportedPlatformError(f"Unsupported operating system: {name}")


async def download_file(url: str, destination: Path) -> None:
    """Stream ``url`` into ``destination`` using aiohttp."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(destination.name + ".part")
    timeout = aiohttp.ClientTimeout(total=PLATFORM_TOOLS_DOWNLOAD_TIMEOUT)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as response:
                response.raise_for_status()
                with partial.open("wb") as handle:
                    async for chunk in response.content.iter_chunked(64 * 1024):
                        await asyncio.to_thread(handle.write, chunk)
    except (aiohttp.ClientError, TimeoutError) as exc:
        partial.unlink(missing_ok=True)
        raise TransportError(f"Download of {url} failed: {exc}") from exc
    partial.replace(destination)


def extract_archive(archive: Path, target_dir: Path) -> None:
    """Unzip ``archive`` keeping the unix permission bits of each member."""
    with zipfile.ZipFile(archive) as bundle:
        for member in bundle.infolist():
            extracted = Path(bundle.extract(member, target_dir))
            mode = (member.external_attr >> 16) & 0o777
            if mode and not member.is_dir():
                extracted.chmod(mode)


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


class TransportResolver:
    """Resolve both transports once and build the :class:`DeviceSession`."""

    def __init__(
        self,
        config: ProvisionConfig,
        *,
        runner: CommandRunner = run_command,
        which: Which = shutil.which,
        downloader: Downloader = download_file,
        platform_name: str | None = None,
    ) -> None:
        self.config = config
        self._runner = runner
        self._which = which
        self._download = downloader
        self._platform_name = platform_name

    async def resolve(self) -> DeviceSession:
        bridge = await self.resolve_bridge()
        serial = await self.resolve_serial()
        logger.info("Using ADB: %s", bridge.resolved_path)
        if serial.available:
            logger.info("Using serial tool: %s (%s)", serial.resolved_path, serial.source)
        return create_device_session(self.config, bridge, serial, runner=self._runner)

    async def resolve_bridge(self) -> TransportEndpoint:
        found = self._which(ADB_BINARY)
        if found:
            return TransportEndpoint(kind=BRIDGE, available=True, resolved_path=found, source="path")

        platform = host_platform(self._platform_name)
        bundle_dir = self.config.path(PLATFORM_TOOLS_DIR)
        adb_path = bundle_dir / ADB_BINARY
        if not adb_path.exists():
            archive_name = PLATFORM_TOOLS_ARCHIVE.format(platform=platform)
            archive = self.config.path(archive_name)
            logger.info("ADB not found, downloading local copy...")
            await self._download(PLATFORM_TOOLS_URL.format(archive=archive_name), archive)
            await asyncio.to_thread(extract_archive, archive, self.config.project_root)
        if not adb_path.exists():
            raise TransportError(
                f"Debug bridge missing after unpacking platform tools: {adb_path}",
            )
        return TransportEndpoint(
            kind=BRIDGE,
            available=True,
            resolved_path=str(adb_path),
            source="bundle",
        )

    async def resolve_serial(self) -> TransportEndpoint:
        try:
            platform = host_platform(self._platform_name)
        except UnsupportedPlatformError as exc:
            logger.warning("No serial tool for this host: %s", exc)
            return TransportEndpoint(kind=SERIAL, available=False, source="missing")
        prebuilt = self.config.path(SERIAL_PREBUILT_DIRS[platform], SERIAL_BINARY)
        if _is_executable(prebuilt):
            endpoint = TransportEndpoint(
                kind=SERIAL,
                available=True,
                resolved_path=str(prebuilt),
                source="prebuilt",
            )
        else:
            built = await self._build_serial(platform)
            if built is None:
                logger.warning("The serial binary cannot be found at %s.", prebuilt)
                logger.warning(
                    "Download it from the latest release bundle at %s",
                    SERIAL_RELEASES_URL,
                )
                return TransportEndpoint(kind=SERIAL, available=False, source="missing")
            endpoint = TransportEndpoint(
                kind=SERIAL,
                available=True,
                resolved_path=str(built),
                source="built",
            )

        if platform == "darwin":
            await self._clear_quarantine(Path(endpoint.resolved_path or ""))
        await SerialChannel(
            endpoint.resolved_path or "",
            runner=self._runner,
            timeout=self.config.command_timeout,
        ).self_test()
        return endpoint

    async def _build_serial(self, platform: str) -> Path | None:
        source_dir = self.config.path(SERIAL_SOURCE_DIR)
        if not (source_dir / "Cargo.toml").is_file():
            return None

        if self._which("cargo"):
            argv: tuple[str, ...] = ("cargo", "build", "--release", "--bin", SERIAL_BINARY)
            output = source_dir / "target" / "release" / SERIAL_BINARY
        elif self._which("cross"):
            triple = HOST_RUST_TRIPLES[platform]
            argv = ("cross", "build", "--release", "--bin", SERIAL_BINARY, "--target", triple)
            output = source_dir / "target" / triple / "release" / SERIAL_BINARY
        else:
            logger.warning("Neither cargo nor cross is installed; cannot build the serial tool.")
            return None

        logger.info("Building serial tool from %s", source_dir)
        try:
            result = await self._runner(argv, cwd=source_dir, stream=True)
        except OSError as exc:
            logger.warning("Serial tool build could not start: %s", exc)
            return None
        if not result.ok or not _is_executable(output):
            logger.warning("Serial tool build failed (exit %s)", result.returncode)
            return None
        return output

    async def _clear_quarantine(self, path: Path) -> None:
        if not self._which("xattr"):
            return
        try:
            probe = await self._runner(("xattr", "-p", QUARANTINE_XATTR, str(path)))
            if probe.ok:
                logger.info("Removing quarantine attribute from %s", path)
                await self._runner(("xattr", "-d", QUARANTINE_XATTR, str(path)))
        except OSError as exc:
            logger.debug("xattr unavailable: %s", exc)


__all__ = [
    "TransportResolver",
    "download_file",
    "extract_archive",
    "host_platform",
]
