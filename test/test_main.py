"""Tests for the process entry point."""

import pytest

import tfl_arrivals.__main__ as entry
import tfl_arrivals.app as app_module


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("TFL_STOP_ID", "TFL_APP_ID", "TFL_APP_KEY", "HOST", "PORT", "CONFIG_PATH"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    yield
    app_module._config = None


@pytest.fixture()
def fake_run(monkeypatch):
    calls = []
    monkeypatch.setattr(entry.uvicorn, "run", lambda app, **kw: calls.append((app, kw)))
    return calls


def test_missing_config_exits_non_zero(fake_run):
    assert entry.main() == 1
    assert fake_run == []


def test_missing_config_file_exits_non_zero(fake_run, monkeypatch):
    monkeypatch.setenv("TFL_STOP_ID", "490008660N")
    monkeypatch.setenv("TFL_APP_ID", "id")
    monkeypatch.setenv("TFL_APP_KEY", "key")
    monkeypatch.setenv("CONFIG_PATH", "/nonexistent/config.yaml")
    assert entry.main() == 1
    assert fake_run == []


def test_runs_server_with_configured_address(fake_run, monkeypatch):
    monkeypatch.setenv("TFL_STOP_ID", "490008660N")
    monkeypatch.setenv("TFL_APP_ID", "id")
    monkeypatch.setenv("TFL_APP_KEY", "key")
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "8123")

    assert entry.main() == 0
    (app, kwargs), = fake_run
    assert app is app_module.app
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 8123
    assert app_module._config.stop_id == "490008660N"


def test_malformed_config_file_exits_non_zero(fake_run, monkeypatch, tmp_path):
    monkeypatch.setenv("TFL_STOP_ID", "490008660N")
    monkeypatch.setenv("TFL_APP_ID", "id")
    monkeypatch.setenv("TFL_APP_KEY", "key")
    config_file = tmp_path / "config.yaml"
    config_file.write_text("freshness_window: [unclosed\n")
    monkeypatch.setenv("CONFIG_PATH", str(config_file))
    assert entry.main() == 1
    assert fake_run == []
