from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest
import structlog
import yaml
from typer.testing import CliRunner

from rulemock.main import app
from rulemock.output_config import ENV_VAR_NAME, get_log_format

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    yield
    # serve configures logging against the runner's captured stdout
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


def _write_config(tmp_path: Path, expect: dict) -> Path:
    payload = {
        "rules": [
            {
                "name": "health",
                "match": {"method": "GET", "path": "/health"},
                "response": {"status": 200, "body": "ok"},
                "expect": expect,
            }
        ]
    }
    path = tmp_path / "mock.yaml"
    path.write_text(yaml.safe_dump(payload), encoding="utf-8")
    return path


def test_check_lists_rules(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, {"min": 1})

    result = runner.invoke(app, ["check", str(config_path)])

    assert result.exit_code == 0, result.output
    assert "health [global] method == GET AND path == /health -> 200 expect [1, inf]" in result.output
    assert "1 rule(s) OK" in result.output


def test_check_rejects_invalid_file(tmp_path: Path) -> None:
    config_path = tmp_path / "bad.yaml"
    config_path.write_text("rules: [{expect: {min: 4, max: 1}}]\n", encoding="utf-8")

    result = runner.invoke(app, ["check", str(config_path)])

    assert result.exit_code != 0


def test_serve_exits_cleanly_when_expectations_hold(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, {"max": 0})

    result = runner.invoke(app, ["serve", str(config_path), "--duration", "0", "--log-format", "plain"])

    assert result.exit_code == 0, result.output
    assert "Mock server listening on http://127.0.0.1:" in result.output
    assert "All 1 mock expectation(s) satisfied" in result.output


def test_serve_fails_on_unmet_expectations(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, {"times": 1})

    result = runner.invoke(app, ["serve", str(config_path), "--duration", "0", "--log-format", "json"])

    assert result.exit_code == 1


@pytest.mark.parametrize(
    ("cli_value", "env_value", "expected"),
    [
        ("json", "plain", "json"),
        (None, "plain", "plain"),
        (None, "rich", "console"),
        ("bogus", None, "console"),
        (None, None, "console"),
    ],
)
def test_get_log_format_priority(monkeypatch: pytest.MonkeyPatch, cli_value, env_value, expected) -> None:
    if env_value is None:
        monkeypatch.delenv(ENV_VAR_NAME, raising=False)
    else:
        monkeypatch.setenv(ENV_VAR_NAME, env_value)

    assert get_log_format(cli_value) == expected
