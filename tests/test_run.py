"""Tests for the run.py entrypoint helpers."""

from __future__ import annotations

from dataclasses import replace
from types import SimpleNamespace

import pytest

pytest.importorskip("typer")

from typer.testing import CliRunner

import run
from conftest import SUPERADMIN_EMAIL
from kosakata.bootstrap import BootstrapError
from kosakata.services.storage import ContentRepository
from kosakata.services.uploads import VIDEO_MAX_BYTES


def _setup_serve(monkeypatch, config, *, supports_limit=True):
    captured = {}

    monkeypatch.setattr(run, "_initialize", lambda: config)
    monkeypatch.setattr(run, "_prepare_logging", lambda app_config: None)
    monkeypatch.setattr(run, "ContentRepository", lambda app_config: object())

    dummy_app = SimpleNamespace(state=SimpleNamespace())

    def fake_create_app(repository, *, config, root_path):
        captured["root_path"] = root_path
        return dummy_app

    monkeypatch.setattr(run, "create_app", fake_create_app)

    if supports_limit:

        class DummyConfig:
            def __init__(self, app, host=None, port=None, log_config=None, root_path="", limit_max_request_size=None):
                captured["app"] = app
                captured["config_kwargs"] = {"root_path": root_path}
                if limit_max_request_size is not None:
                    captured["config_kwargs"]["limit_max_request_size"] = limit_max_request_size

    else:

        class DummyConfig:  # type: ignore[no-redef]
            def __init__(self, app, host=None, port=None, log_config=None, root_path=""):
                captured["app"] = app
                captured["config_kwargs"] = {"root_path": root_path}

    class DummyServer:
        def __init__(self, server_config):
            captured["server_instance"] = self

        def run(self):
            captured["server_run"] = True

    monkeypatch.setattr(run.uvicorn, "Config", DummyConfig)
    monkeypatch.setattr(run.uvicorn, "Server", DummyServer)

    run.serve(host="0.0.0.0", port=9000, root_path="kosakata/")

    captured["app_state_server"] = dummy_app.state.server
    return captured


def test_serve_applies_request_size_limit(monkeypatch, temp_config):
    captured = _setup_serve(monkeypatch, temp_config)

    expected = max(temp_config.max_upload_bytes, VIDEO_MAX_BYTES) * 2
    assert captured["config_kwargs"]["limit_max_request_size"] == expected
    assert captured["config_kwargs"]["root_path"] == "/kosakata"
    assert captured["root_path"] == "/kosakata"
    assert captured["app_state_server"] is captured["server_instance"]
    assert captured["server_run"]


def test_serve_omits_limit_when_disabled(monkeypatch, temp_config):
    captured = _setup_serve(monkeypatch, replace(temp_config, max_upload_bytes=0))

    assert "limit_max_request_size" not in captured["config_kwargs"]


def test_serve_skips_limit_on_old_uvicorn(monkeypatch, temp_config, caplog):
    with caplog.at_level("WARNING", logger="kosakata.cli"):
        captured = _setup_serve(monkeypatch, temp_config, supports_limit=False)

    assert "limit_max_request_size" not in captured["config_kwargs"]
    assert "does not support" in caplog.text


@pytest.mark.parametrize(
    "raw, expected",
    [(None, ""), ("", ""), ("  ", ""), ("api", "/api"), ("/api/", "/api")],
)
def test_normalize_root_path(raw, expected):
    assert run._normalize_root_path(raw) == expected


def test_init_command_reports_paths(monkeypatch, temp_config):
    monkeypatch.setattr(run, "initialize_app", lambda: temp_config)

    result = CliRunner().invoke(run.cli, ["init"])

    assert result.exit_code == 0
    assert str(temp_config.database_file) in result.output


def test_init_command_fails_cleanly_on_bootstrap_error(monkeypatch):
    def broken():
        raise BootstrapError("The storage directory '/nope' is not writable.")

    monkeypatch.setattr(run, "initialize_app", broken)

    result = CliRunner().invoke(run.cli, ["init"])

    assert result.exit_code == 1
    assert "not writable" in result.output


def test_create_admin_command(monkeypatch, temp_config):
    monkeypatch.setattr(run, "initialize_app", lambda: temp_config)
    monkeypatch.setattr(run, "_prepare_logging", lambda app_config: None)
    runner = CliRunner()
    arguments = ["create-admin", "--name", "Editor", "--email", "editor@example.com", "--password", "pw"]

    created = runner.invoke(run.cli, arguments)
    assert created.exit_code == 0, created.output
    assert "admin 'Editor'" in created.output
    assert ContentRepository(temp_config).find_admin_by_email("editor@example.com") is not None

    duplicate = runner.invoke(
        run.cli,
        ["create-admin", "--name", "Root", "--email", SUPERADMIN_EMAIL, "--password", "pw"],
    )
    assert duplicate.exit_code == 1
    assert "Could not create admin" in duplicate.output
