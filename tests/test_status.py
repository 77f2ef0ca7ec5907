"""Tests for the persisted run report."""

from pathlib import Path

import msgspec
import pytest

from rhdeploy import __version__
from rhdeploy.services.build import BuildArtifact
from rhdeploy.state.session import Outcome, StageResult
from rhdeploy.state.status import build_report, write_run_report
from tests.mocks import FakeDevice, make_session


def test_build_report_includes_transports_and_artifact(config, device: FakeDevice) -> None:
    session = make_session(config, device, serial=False)
    session.artifact = BuildArtifact(target_arch="armv7-unknown-linux-gnueabihf", path="/tmp/rayhunter-daemon")
    results = [StageResult("build", Outcome.SKIPPED, "reused")]

    payload = build_report(results, exit_code=0, session=session)

    assert payload["version"] == __version__
    assert payload["stages"] == [{"stage": "build", "outcome": "skipped", "detail": "reused", "duration": 0.0}]
    assert payload["transports"]["serial"]["available"] is False
    assert payload["transports"]["bridge"]["source"] == "path"
    assert payload["artifact"]["built"] is False


def test_build_report_without_session() -> None:
    payload = build_report([], exit_code=1)
    assert "transports" not in payload
    assert payload["exit_code"] == 1


def test_write_run_report_replaces_file(tmp_path: Path) -> None:
    path = tmp_path / "reports" / "last-run.json"

    write_run_report(path, {"exit_code": 2})
    write_run_report(path, {"exit_code": 0})

    assert msgspec.json.decode(path.read_bytes()) == {"exit_code": 0}
    assert [p.name for p in path.parent.iterdir()] == ["last-run.json"]


def test_write_run_report_cleans_up_on_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(src, dst):
        raise PermissionError("read-only")

    monkeypatch.setattr("rhdeploy.state.status.os.replace", refuse)
    with pytest.raises(PermissionError):
        write_run_report(tmp_path / "last-run.json", {"exit_code": 0})

    assert list(tmp_path.iterdir()) == []
