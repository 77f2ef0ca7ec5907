"""Provisioning pipeline and command line entry point.

Stages run strictly in order against one device: transport discovery,
debug mode, rootshell installation, build, deploy, reboot and the final
connectivity check. Each stage reports a :class:`StageResult`; the stage
table decides which failures abort the run.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import shutil
import signal
import sys
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, NoReturn, Protocol

import msgspec
import uvloop

from . import __version__
from .config.const import (
    EXIT_FATAL,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_UNREACHABLE,
    REBUILD_POLICIES,
)
from .config.logging import configure_logging
from .config.model import ProvisionConfig
from .config.settings import load_provision_config
from .errors import BootTimeoutError, ProvisionCancelled, ProvisionError
from .services.boot import BootWaiter, DebugModeSwitch
from .services.build import BuildOrchestrator, RebuildPolicy
from .services.deploy import DeployOrchestrator
from .services.dispatcher import CommandDispatcher
from .services.privilege import PrivilegeEscalator
from .services.reboot import RebootCoordinator
from .services.verify import ConnectivityVerifier, HttpProbe, http_probe
from .state.session import DeviceSession, Outcome, StageResult
from .state.status import build_report, write_run_report
from .transport.process import CommandRunner, run_command
from .transport.resolver import TransportResolver

logger = logging.getLogger("rhdeploy.deployer")


class Stage(Protocol):
    name: str

    def run(self) -> Awaitable[StageResult]: ...


class Resolver(Protocol):
    def resolve(self) -> Awaitable[DeviceSession]: ...


@dataclass(slots=True)
class StageServices:
    """Services shared by the stages of one run."""

    session: DeviceSession
    dispatcher: CommandDispatcher
    waiter: BootWaiter
    policy: RebuildPolicy
    probe: HttpProbe
    which: Callable[[str], str | None]


@dataclass(frozen=True, slots=True)
class StageSpec:
    name: str
    factory: Callable[[StageServices], Stage]
    fatal: bool


STAGES: tuple[StageSpec, ...] = (
    StageSpec("debug_mode", lambda s: DebugModeSwitch(s.session, s.waiter), fatal=False),
    StageSpec("rootshell", lambda s: PrivilegeEscalator(s.session, s.dispatcher), fatal=False),
    StageSpec("build", lambda s: BuildOrchestrator(s.session, s.policy, which=s.which), fatal=True),
    StageSpec("deploy", lambda s: DeployOrchestrator(s.session, s.dispatcher), fatal=True),
    StageSpec("reboot", lambda s: RebootCoordinator(s.session, s.dispatcher, s.waiter), fatal=True),
    StageSpec("verify", lambda s: ConnectivityVerifier(s.session, s.dispatcher, probe=s.probe), fatal=False),
)


def _log_result(result: StageResult) -> None:
    level = {
        Outcome.OK: logging.INFO,
        Outcome.SKIPPED: logging.WARNING,
        Outcome.DEGRADED: logging.WARNING,
    }.get(result.outcome, logging.ERROR)
    logger.log(
        level,
        "Stage %s: %s%s (%.1fs)",
        result.stage,
        result.outcome.value,
        f" - {result.detail}" if result.detail else "",
        result.duration,
    )


class ProvisionPipeline:
    """Run every stage against one device and map the outcome to an exit code."""

    def __init__(
        self,
        config: ProvisionConfig,
        *,
        resolver: Resolver | None = None,
        runner: CommandRunner = run_command,
        policy: RebuildPolicy | None = None,
        probe: HttpProbe = http_probe,
        which: Callable[[str], str | None] = shutil.which,
        stages: Sequence[StageSpec] = STAGES,
    ) -> None:
        self.config = config
        self.resolver: Resolver = resolver or TransportResolver(config, runner=runner, which=which)
        self.policy = policy or RebuildPolicy(config.rebuild_policy)
        self.probe = probe
        self.which = which
        self.stages = tuple(stages)
        self.cancel_event = asyncio.Event()
        self.results: list[StageResult] = []
        self.session: DeviceSession | None = None

    def cancel(self) -> None:
        self.cancel_event.set()

    def _record(self, result: StageResult) -> StageResult:
        self.results.append(result)
        _log_result(result)
        return result

    async def _resolve(self) -> DeviceSession:
        started = time.monotonic()
        session = await self.resolver.resolve()
        session.cancel_event = self.cancel_event
        session.results = self.results
        degraded = not session.serial_available
        self._record(
            StageResult(
                "transports",
                Outcome.DEGRADED if degraded else Outcome.OK,
                "serial tool unavailable" if degraded else "",
                time.monotonic() - started,
            )
        )
        return session

    async def _execute(self) -> int:
        try:
            session = await self._resolve()
        except ProvisionError as exc:
            self._record(StageResult("transports", Outcome.FAILED, str(exc)))
            raise
        self.session = session

        dispatcher = CommandDispatcher(session)
        services = StageServices(
            session=session,
            dispatcher=dispatcher,
            waiter=BootWaiter(session, dispatcher),
            policy=self.policy,
            probe=self.probe,
            which=self.which,
        )

        exit_code = EXIT_OK
        for spec in self.stages:
            session.raise_if_cancelled()
            stage = spec.factory(services)
            started = time.monotonic()
            try:
                result = await stage.run()
            except BootTimeoutError as exc:
                self._record(StageResult(spec.name, Outcome.TIMEOUT, str(exc), time.monotonic() - started))
                raise
            except ProvisionCancelled:
                self._record(StageResult(spec.name, Outcome.FAILED, "interrupted", time.monotonic() - started))
                raise
            except ProvisionError as exc:
                self._record(StageResult(spec.name, Outcome.FAILED, str(exc), time.monotonic() - started))
                raise
            result = self._record(msgspec.structs.replace(result, duration=time.monotonic() - started))

            if result.outcome is Outcome.FAILED and spec.fatal:
                logger.critical("Stage %s failed; aborting.", spec.name)
                return EXIT_FATAL
            if result.outcome is Outcome.TIMEOUT:
                exit_code = EXIT_UNREACHABLE
        return exit_code

    async def run(self) -> int:
        """Execute the pipeline and return the process exit code."""
        logger.info("Rayhunter Build & Deploy %s", __version__)
        try:
            exit_code = await self._execute()
        except ProvisionCancelled as exc:
            logger.warning("%s", exc)
            exit_code = EXIT_INTERRUPTED
        except asyncio.CancelledError:
            logger.warning("Provisioning interrupted by operator")
            exit_code = EXIT_INTERRUPTED
        except ProvisionError as exc:
            logger.critical("[%s] %s", exc.code, exc)
            exit_code = EXIT_FATAL
        self._write_report(exit_code)
        if exit_code == EXIT_OK:
            logger.info("Rayhunter deployment complete.")
        return exit_code

    def _write_report(self, exit_code: int) -> None:
        payload = build_report(self.results, exit_code=exit_code, session=self.session)
        try:
            write_run_report(self.config.report_path, payload)
        except OSError as exc:
            logger.warning("Could not write run report %s: %s", self.config.report_path, exc)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rayhunter-deploy",
        description="Build Rayhunter and deploy it to an attached Orbic device.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--skip-build",
        action="store_true",
        default=None,
        help="Deploy the existing binary without building.",
    )
    parser.add_argument(
        "--rebuild",
        dest="rebuild_policy",
        choices=REBUILD_POLICIES,
        help="What to do when a build already exists (default: ask, reuse when not interactive).",
    )
    parser.add_argument("--project-root", help="Rayhunter checkout to build from (default: .).")
    parser.add_argument("--target-arch", help="Rust target triple of the device.")
    parser.add_argument(
        "--boot-timeout",
        type=float,
        help="Seconds to wait for each device boot phase; 0 waits forever.",
    )
    parser.add_argument("--connect-timeout", type=float, help="Seconds to wait for the web interface.")
    parser.add_argument("--poll-interval", type=float, help="Seconds between device polls.")
    parser.add_argument("--command-timeout", type=float, help="Per-command timeout in seconds.")
    parser.add_argument(
        "--log-json",
        action="store_true",
        default=None,
        help="Emit structured JSON log lines.",
    )
    parser.add_argument("--report", dest="report_path", help="Where to write the JSON run report.")
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    keys = (
        "verbose",
        "skip_build",
        "rebuild_policy",
        "project_root",
        "target_arch",
        "boot_timeout",
        "connect_timeout",
        "poll_interval",
        "command_timeout",
        "log_json",
        "report_path",
    )
    return {key: getattr(args, key) for key in keys if getattr(args, key) is not None}


async def _run_with_signals(pipeline: ProvisionPipeline) -> int:
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()

    def _interrupt() -> None:
        pipeline.cancel()
        if task is not None:
            task.cancel()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, _interrupt)
        except (NotImplementedError, RuntimeError):
            pass
    try:
        return await pipeline.run()
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(signum)
            except (NotImplementedError, RuntimeError):
                pass


def main(argv: Sequence[str] | None = None) -> NoReturn:  # pragma: no cover (Entry point wrapper)
    args = build_arg_parser().parse_args(argv)
    try:
        config = load_provision_config(overrides_from_args(args))
    except ValueError as exc:
        logger.critical("%s", exc)
        sys.exit(EXIT_FATAL)
    configure_logging(config)

    pipeline = ProvisionPipeline(config)
    try:
        exit_code = asyncio.run(_run_with_signals(pipeline), loop_factory=uvloop.new_event_loop)
    except KeyboardInterrupt:
        logger.warning("Provisioning interrupted by operator")
        exit_code = EXIT_INTERRUPTED
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
