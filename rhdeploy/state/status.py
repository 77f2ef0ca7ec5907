"""Run report persisted after each provisioning run."""
from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, Dict

import msgspec

from .. import __version__
from .session import DeviceSession, StageResult

logger = logging.getLogger("rhdeploy.status")


def build_report(
    results: list[StageResult],
    *,
    exit_code: int,
    session: DeviceSession | None = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "version": __version__,
        "finished_unix": time.time(),
        "exit_code": exit_code,
        "stages": [msgspec.to_builtins(result) for result in results],
    }
    if session is not None:
        payload["transports"] = {
            "bridge": msgspec.to_builtins(session.bridge_endpoint),
            "serial": msgspec.to_builtins(session.serial_endpoint),
        }
        if session.artifact is not None:
            payload["artifact"] = msgspec.to_builtins(session.artifact)
    return payload


def write_run_report(path: Path, payload: Dict[str, Any]) -> None:
    """Atomically replace ``path`` with the JSON encoded report."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with NamedTemporaryFile(
        "wb",
        dir=path.parent,
        delete=False,
    ) as handle:
        handle.write(msgspec.json.format(msgspec.json.encode(payload), indent=2))
        temp_name = handle.name
    try:
        os.replace(temp_name, path)
    except OSError:
        Path(temp_name).unlink(missing_ok=True)
        raise
    logger.debug("Run report written to %s", path)


__all__ = ["build_report", "write_run_report"]
