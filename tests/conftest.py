# Shared fixtures for sidecar and runtime shim tests.
# Created: 2026-10-16

import textwrap
from pathlib import Path

import pytest

from wm_runtime import runtime
from wm_sidecar.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch):
    """Fresh shim state and no desktop markers or WM_/LOCAL_API_ overrides leaking in."""
    for marker in runtime.DESKTOP_MARKERS:
        monkeypatch.delenv(marker, raising=False)
    for var in (
        "WM_API_BASE_URL",
        "WM_REMOTE_API_BASE_URL",
        "WM_VARIANT",
        "WM_LOCAL_TIMEOUT",
        "LOCAL_API_PORT",
        "LOCAL_API_REMOTE_BASE",
        "LOCAL_API_RESOURCE_DIR",
        "LOCAL_API_MODE",
        "LOCAL_API_LOG_LEVEL",
        "LOCAL_API_UPSTREAM_TIMEOUT",
        "LOCAL_API_HANDLER_TIMEOUT",
    ):
        monkeypatch.delenv(var, raising=False)
    runtime.reset_runtime()
    get_settings.cache_clear()
    yield
    runtime.reset_runtime()
    get_settings.cache_clear()


@pytest.fixture
def desktop(monkeypatch):
    """Pretend to run inside the desktop shell."""
    monkeypatch.setenv("__TAURI_INTERNALS__", "1")
    runtime.reset_runtime()


@pytest.fixture
def api_dir(tmp_path) -> Path:
    d = tmp_path / "api"
    d.mkdir()
    return d


@pytest.fixture
def settings(tmp_path, api_dir) -> Settings:
    return Settings(
        port=46123,
        remote_base="https://worldmonitor.app",
        resource_dir=tmp_path,
        mode="desktop-sidecar",
    )


@pytest.fixture
def write_handler(api_dir):
    """Write ``api/<name>.py`` with the given (dedented) source."""

    def _write(name: str, source: str) -> Path:
        path = api_dir / f"{name}.py"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return path

    return _write
