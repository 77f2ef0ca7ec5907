"""Shared constants for rayhunter-deploy components."""

from __future__ import annotations

from typing import Final

# Host side
DEFAULT_TARGET_ARCH: Final[str] = "armv7-unknown-linux-gnueabihf"
DEFAULT_BOOT_TIMEOUT: Final[float] = 300.0
DEFAULT_CONNECT_TIMEOUT: Final[float] = 30.0
DEFAULT_POLL_INTERVAL: Final[float] = 1.0
DEFAULT_COMMAND_TIMEOUT: Final[float] = 120.0
DEFAULT_BUILD_TIMEOUT: Final[float] = 3600.0
DEFAULT_REPORT_PATH: Final[str] = ".rhdeploy/last-run.json"
DEFAULT_LOCAL_CONFIG: Final[str] = "config.toml"

REBUILD_ALWAYS: Final[str] = "always"
REBUILD_REUSE: Final[str] = "reuse"
REBUILD_ASK: Final[str] = "ask"
REBUILD_POLICIES: Final[tuple[str, ...]] = (REBUILD_ALWAYS, REBUILD_REUSE, REBUILD_ASK)

ENV_VERBOSE: Final[str] = "RHDEPLOY_VERBOSE"
ENV_SKIP_BUILD: Final[str] = "RHDEPLOY_SKIP_BUILD"
ENV_REBUILD_POLICY: Final[str] = "RHDEPLOY_REBUILD"
ENV_BOOT_TIMEOUT: Final[str] = "RHDEPLOY_BOOT_TIMEOUT"
ENV_CONNECT_TIMEOUT: Final[str] = "RHDEPLOY_CONNECT_TIMEOUT"
ENV_POLL_INTERVAL: Final[str] = "RHDEPLOY_POLL_INTERVAL"
ENV_COMMAND_TIMEOUT: Final[str] = "RHDEPLOY_COMMAND_TIMEOUT"
ENV_LOG_JSON: Final[str] = "RHDEPLOY_LOG_JSON"
ENV_TARGET_ARCH: Final[str] = "RHDEPLOY_TARGET_ARCH"

# Bridge tooling
ADB_BINARY: Final[str] = "adb"
PLATFORM_TOOLS_DIR: Final[str] = "platform-tools"
PLATFORM_TOOLS_URL: Final[str] = "https://dl.google.com/android/repository/{archive}"
PLATFORM_TOOLS_ARCHIVE: Final[str] = "platform-tools-latest-{platform}.zip"
PLATFORM_TOOLS_DOWNLOAD_TIMEOUT: Final[float] = 300.0

SERIAL_BINARY: Final[str] = "serial"
SERIAL_PREBUILT_DIRS: Final[dict[str, str]] = {
    "linux": "serial-ubuntu-latest",
    "darwin": "serial-macos-latest",
}
SERIAL_SOURCE_DIR: Final[str] = "serial"
SERIAL_RELEASES_URL: Final[str] = "https://github.com/EFForg/rayhunter/releases"
SERIAL_SYSCMD_PREFIX: Final[str] = "AT+SYSCMD="
QUARANTINE_XATTR: Final[str] = "com.apple.quarantine"
HOST_RUST_TRIPLES: Final[dict[str, str]] = {
    "linux": "x86_64-unknown-linux-gnu",
    "darwin": "aarch64-apple-darwin",
}

# Build
DOCKER_IMAGE: Final[str] = "rayhunter-build"
DOCKERFILE: Final[str] = "Dockerfile.build"
CARGO_REGISTRY_VOLUME: Final[str] = "cargo-registry"
CROSS_GCC: Final[str] = "arm-linux-gnueabihf-gcc"
CROSS_LD: Final[str] = "arm-linux-gnueabihf-ld"
CROSS_SYSROOT: Final[str] = "/usr/arm-linux-gnueabihf/lib"
DAEMON_BINARY_NAME: Final[str] = "rayhunter-daemon"
ROOTSHELL_NAME: Final[str] = "rootshell"

# Device layout
DEVICE_TMP_DIR: Final[str] = "/tmp"
DEVICE_ROOTSHELL_PATH: Final[str] = "/bin/rootshell"
DEVICE_QMDL_DIR: Final[str] = "/data/rayhunter/qmdl"
DEVICE_DAEMON_PATH: Final[str] = "/data/rayhunter/rayhunter-daemon"
DEVICE_CONFIG_PATH: Final[str] = "/data/rayhunter/config.toml"
DEVICE_LOG_PATH: Final[str] = "/data/rayhunter/rayhunter.log"
DEVICE_INIT_DIR: Final[str] = "/etc/init.d"
DEVICE_AGENT_PROCESS: Final[str] = "atfwd_daemon"
DAEMON_SERVICE: Final[str] = "rayhunter_daemon"
MISC_SERVICE: Final[str] = "misc-daemon"
MODE_CONFIG: Final[str] = "644"
MODE_EXECUTABLE: Final[str] = "755"
MODE_SETUID: Final[str] = "4755"

# Post-condition polling for privileged sub-steps
POSTCONDITION_TIMEOUT: Final[float] = 10.0
POSTCONDITION_INTERVAL: Final[float] = 0.5

# Device configuration defaults
DEFAULT_HTTP_PORT: Final[int] = 8080
FALLBACK_HTTP_PORTS: Final[tuple[int, ...]] = (8888, 9999)
HTTP_PROBE_TIMEOUT: Final[float] = 5.0
DEFAULT_UI_LEVEL: Final[int] = 1

# Exit status
EXIT_OK: Final[int] = 0
EXIT_FATAL: Final[int] = 1
EXIT_UNREACHABLE: Final[int] = 2
EXIT_INTERRUPTED: Final[int] = 130

PROCESS_KILL_WAIT_TIMEOUT: Final[float] = 2.0

__all__ = [name for name in dir() if name.isupper()]
