"""Tests for transport discovery."""

import stat
import zipfile
from pathlib import Path

import pytest
from aiohttp import test_utils, web

from rhdeploy.errors import TransportError, UnsupportedPlatformError
from rhdeploy.transport.process import CommandResult
from rhdeploy.transport.resolver import TransportResolver, download_file, extract_archive, host_platform
from tests.mocks import ADB, FakeDevice, make_config


def _which(available: dict[str, str]):
    return lambda name: available.get(name)


def _make_serial(root: Path, folder: str = "serial-ubuntu-latest") -> Path:
    path = root / folder / "serial"
    path.parent.mkdir(parents=True)
    path.write_text("#!/bin/sh\n")
    path.chmod(0o755)
    return path


def _bundle(archive: Path) -> None:
    with zipfile.ZipFile(archive, "w") as bundle:
        info = zipfile.ZipInfo("platform-tools/adb")
        info.external_attr = (stat.S_IFREG | 0o755) << 16
        bundle.writestr(info, "#!/bin/sh\n")


def test_host_platform_normalises_names() -> None:
    assert host_platform("linux") == "linux"
    assert host_platform("darwin") == "darwin"
    with pytest.raises(UnsupportedPlatformError):
        host_platform("win32")


@pytest.mark.asyncio
async def test_adb_on_path_never_downloads(project_root: Path, device: FakeDevice) -> None:
    async def downloader(url: str, destination: Path) -> None:
        raise AssertionError("download attempted")

    resolver = TransportResolver(
        make_config(project_root),
        runner=device,
        which=_which({"adb": ADB}),
        downloader=downloader,
        platform_name="linux",
    )
    endpoint = await resolver.resolve_bridge()

    assert endpoint.available
    assert endpoint.resolved_path == ADB
    assert endpoint.source == "path"


@pytest.mark.asyncio
async def test_missing_adb_downloads_platform_tools(project_root: Path, device: FakeDevice) -> None:
    requested: list[str] = []

    async def downloader(url: str, destination: Path) -> None:
        requested.append(url)
        _bundle(destination)

    resolver = TransportResolver(
        make_config(project_root),
        runner=device,
        which=_which({}),
        downloader=downloader,
        platform_name="darwin",
    )
    endpoint = await resolver.resolve_bridge()

    assert requested == ["https://dl.google.com/android/repository/platform-tools-latest-darwin.zip"]
    assert endpoint.source == "bundle"
    adb = Path(endpoint.resolved_path)
    assert adb == project_root / "platform-tools" / "adb"
    assert adb.stat().st_mode & 0o111


@pytest.mark.asyncio
async def test_existing_bundle_is_reused(project_root: Path, device: FakeDevice) -> None:
    adb = project_root / "platform-tools" / "adb"
    adb.parent.mkdir()
    adb.write_text("")

    async def downloader(url: str, destination: Path) -> None:
        raise AssertionError("download attempted")

    resolver = TransportResolver(
        make_config(project_root), runner=device, which=_which({}), downloader=downloader, platform_name="linux"
    )
    assert (await resolver.resolve_bridge()).resolved_path == str(adb)


@pytest.mark.asyncio
async def test_unsupported_platform_is_fatal(project_root: Path, device: FakeDevice) -> None:
    resolver = TransportResolver(make_config(project_root), runner=device, which=_which({}), platform_name="win32")
    with pytest.raises(UnsupportedPlatformError):
        await resolver.resolve_bridge()


@pytest.mark.asyncio
async def test_prebuilt_serial_is_used_and_self_tested(project_root: Path, device: FakeDevice) -> None:
    serial = _make_serial(project_root)
    resolver = TransportResolver(make_config(project_root), runner=device, which=_which({}), platform_name="linux")

    endpoint = await resolver.resolve_serial()

    assert endpoint.available and endpoint.source == "prebuilt"
    assert endpoint.resolved_path == str(serial)
    assert (str(serial), "--help") in device.calls


@pytest.mark.asyncio
async def test_missing_serial_degrades(project_root: Path, device: FakeDevice, caplog) -> None:
    resolver = TransportResolver(make_config(project_root), runner=device, which=_which({}), platform_name="linux")

    endpoint = await resolver.resolve_serial()

    assert not endpoint.available
    assert endpoint.source == "missing"
    assert "releases" in caplog.text


@pytest.mark.asyncio
async def test_serial_built_from_source_with_cargo(project_root: Path, device: FakeDevice) -> None:
    source = project_root / "serial"
    source.mkdir()
    (source / "Cargo.toml").write_text("[package]\nname = 'serial'\n")
    output = source / "target" / "release" / "serial"

    def cargo(argv):
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text("")
        output.chmod(0o755)
        return CommandResult(argv=argv, returncode=0)

    device.host_handlers["cargo"] = cargo
    resolver = TransportResolver(
        make_config(project_root), runner=device, which=_which({"cargo": "/usr/bin/cargo"}), platform_name="linux"
    )

    endpoint = await resolver.resolve_serial()

    assert endpoint.source == "built"
    assert endpoint.resolved_path == str(output)
    assert ("cargo", "build", "--release", "--bin", "serial") in device.calls


@pytest.mark.asyncio
async def test_failed_serial_build_degrades(project_root: Path, device: FakeDevice) -> None:
    source = project_root / "serial"
    source.mkdir()
    (source / "Cargo.toml").write_text("")
    device.host_handlers["cross"] = lambda argv: CommandResult(argv=argv, returncode=101)
    resolver = TransportResolver(
        make_config(project_root), runner=device, which=_which({"cross": "/usr/bin/cross"}), platform_name="linux"
    )

    endpoint = await resolver.resolve_serial()

    assert not endpoint.available
    assert device.calls[0][:2] == ("cross", "build")
    assert "x86_64-unknown-linux-gnu" in device.calls[0]


@pytest.mark.asyncio
async def test_resolve_builds_session(project_root: Path, device: FakeDevice) -> None:
    _make_serial(project_root)
    resolver = TransportResolver(
        make_config(project_root), runner=device, which=_which({"adb": ADB}), platform_name="linux"
    )

    session = await resolver.resolve()

    assert session.bridge.executable == ADB
    assert session.serial_available


def test_extract_archive_restores_permissions(tmp_path: Path) -> None:
    archive = tmp_path / "tools.zip"
    _bundle(archive)
    extract_archive(archive, tmp_path / "out")
    assert (tmp_path / "out" / "platform-tools" / "adb").stat().st_mode & 0o755 == 0o755


@pytest.mark.asyncio
async def test_bridge_failure_surfaces_transport_error(project_root: Path, device: FakeDevice) -> None:
    async def downloader(url: str, destination: Path) -> None:
        with zipfile.ZipFile(destination, "w") as bundle:
            bundle.writestr("platform-tools/README", "")

    resolver = TransportResolver(
        make_config(project_root), runner=device, which=_which({}), downloader=downloader, platform_name="linux"
    )
    with pytest.raises(TransportError):
        await resolver.resolve_bridge()


@pytest.mark.asyncio
async def test_unknown_host_degrades_serial_when_adb_on_path(project_root: Path, device: FakeDevice, caplog) -> None:
    resolver = TransportResolver(
        make_config(project_root), runner=device, which=_which({"adb": ADB}), platform_name="win32"
    )

    session = await resolver.resolve()

    assert session.bridge.executable == ADB
    assert not session.serial_available
    assert session.serial_endpoint.source == "missing"
    assert "No serial tool for this host" in caplog.text


@pytest.mark.asyncio
async def test_download_file_streams_to_destination(tmp_path: Path) -> None:
    payload = b"PK" * 50_000

    async def bundle(request: web.Request) -> web.Response:
        return web.Response(body=payload)

    app = web.Application()
    app.router.add_get("/platform-tools.zip", bundle)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        destination = tmp_path / "downloads" / "platform-tools.zip"
        await download_file(str(server.make_url("/platform-tools.zip")), destination)
        with pytest.raises(TransportError):
            await download_file(str(server.make_url("/missing.zip")), tmp_path / "missing.zip")
    finally:
        await server.close()

    assert destination.read_bytes() == payload
    assert sorted(p.name for p in tmp_path.iterdir()) == ["downloads"]
