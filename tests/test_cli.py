from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from llm_switchboard import cli
from llm_switchboard.server import CONFIG_ENV_VAR


@pytest.fixture(autouse=True)
def _quiet_logging(mocker) -> None:
    mocker.patch("llm_switchboard.cli.configure_logging")
    mocker.patch("llm_switchboard.cli.load_dotenv")


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "llm-switchboard.json"
    path.write_text(
        json.dumps(
            {
                "max_retries": 0,
                "backends": [
                    {"name": "primary", "type": "fake", "options": {"response_text": "echo: {prompt}"}},
                    {"name": "broken", "type": "fake", "options": {"simulate_failure": True}},
                ],
            }
        ),
        encoding="utf-8",
    )
    return path


def test_complete_prints_completion(config_path: Path, capsys) -> None:
    exit_code = cli.main(["--config", str(config_path), "complete", "Hello"])

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "echo: Hello" in output
    assert "Backend: primary" in output


def test_complete_reports_failure(config_path: Path, capsys) -> None:
    exit_code = cli.main(["--config", str(config_path), "complete", "Hello", "--backend", "broken"])

    assert exit_code == 1
    output = capsys.readouterr().out
    assert "All backends failed" in output
    assert "Cause: Simulated failure (broken)" in output


def test_chat_parses_roles(config_path: Path, capsys) -> None:
    exit_code = cli.main(["--config", str(config_path), "chat", "system: be nice", "user: hi there"])

    assert exit_code == 0
    assert "echo: hi there" in capsys.readouterr().out


def test_parse_message_defaults_to_user() -> None:
    message = cli._parse_message("what: is this")  # type: ignore[attr-defined]

    assert message.role == "user"
    assert message.content == "what: is this"


def test_check_lists_backend_health(config_path: Path, capsys) -> None:
    exit_code = cli.main(["--config", str(config_path), "check"])

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "primary: HEALTHY" in output
    assert "broken: HEALTHY" in output


def test_missing_config_is_reported(tmp_path: Path, capsys) -> None:
    exit_code = cli.main(["--config", str(tmp_path / "absent.json"), "complete", "Hello"])

    assert exit_code == 1
    assert "Configuration error" in capsys.readouterr().out


def test_serve_runs_uvicorn(config_path: Path, mocker, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(CONFIG_ENV_VAR, "placeholder.json")
    run_with_uvicorn = mocker.patch("llm_switchboard.cli._run_with_uvicorn")
    mocker.patch("llm_switchboard.cli._print_panel")

    exit_code = cli.main(["--config", str(config_path), "serve", "--port", "9000", "--workers", "2"])

    assert exit_code == 0
    options = run_with_uvicorn.call_args[0][0]
    assert options["port"] == 9000
    assert options["workers"] == 2
    assert options["reload"] is False
    assert os.environ[CONFIG_ENV_VAR] == str(config_path)


def test_serve_reload_ignores_workers(config_path: Path, mocker, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(CONFIG_ENV_VAR, "unused.json")
    run_with_uvicorn = mocker.patch("llm_switchboard.cli._run_with_uvicorn")
    mocker.patch("llm_switchboard.cli._print_panel")

    cli.main(["--config", str(config_path), "serve", "--reload"])

    assert run_with_uvicorn.call_args[0][0]["workers"] is None
