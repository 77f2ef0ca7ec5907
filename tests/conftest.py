"""Pytest configuration for rayhunter-deploy tests."""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging
import os
from pathlib import Path

import pytest

from tests.mocks import FakeDevice, make_config

_HAS_PYTEST_ASYNCIO = importlib.util.find_spec("pytest_asyncio") is not None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: run the coroutine test on an event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run coroutine tests ourselves when pytest-asyncio is not installed."""
    if _HAS_PYTEST_ASYNCIO or "asyncio" not in pyfuncitem.keywords:
        return None
    if not inspect.iscoroutinefunction(pyfuncitem.obj):
        return None
    arguments = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
    with asyncio.Runner() as runner:
        runner.run(pyfuncitem.obj(**arguments))
    return True


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Drop handlers installed by configure_logging once a test is done."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep RHDEPLOY_* variables from the developer shell out of tests."""
    for name in list(os.environ):
        if name.startswith("RHDEPLOY_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "rayhunter"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def config(project_root: Path):
    return make_config(project_root)
