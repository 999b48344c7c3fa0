from __future__ import annotations

import json
from pathlib import Path

import pytest

from invoker import CliConfig
from service import ClaudeCodeService, ServiceConfig
from tools import auth_status, research, text_generation


def _service(cli_config: CliConfig, tmp_path: Path) -> ClaudeCodeService:
    return ClaudeCodeService(
        ServiceConfig(cli=cli_config, small_model="haiku", credentials_path=tmp_path / "creds.json")
    )


def test_text_generation_uses_tier_model(cli_config: CliConfig, tmp_path: Path) -> None:
    result = text_generation.run(service=_service(cli_config, tmp_path), prompt="hello", tier="small")

    assert result["ok"] is True
    assert result["model"] == "haiku"
    assert result["text"].startswith("<response>")


def test_text_generation_strip_marker(cli_config: CliConfig, tmp_path: Path) -> None:
    result = text_generation.run(
        service=_service(cli_config, tmp_path),
        prompt="WRAPPED",
        model="opus",
        strip_marker=True,
    )

    assert result == {"ok": True, "model": "opus", "text": "already wrapped"}


def test_text_generation_reports_failures_as_payload(cli_config: CliConfig, tmp_path: Path) -> None:
    service = _service(cli_config, tmp_path)

    failed = text_generation.run(service=service, prompt="FAIL")
    empty = text_generation.run(service=service, prompt="EMPTY")

    assert failed["ok"] is False
    assert failed["error_kind"] == "non_zero_exit"
    assert "boom" in failed["error"]
    assert empty["ok"] is False
    assert empty["error_kind"] == "empty_output"


def test_text_generation_rejects_blank_prompt_and_unknown_tier(cli_config: CliConfig, tmp_path: Path) -> None:
    service = _service(cli_config, tmp_path)

    with pytest.raises(ValueError):
        text_generation.run(service=service, prompt="   ")
    with pytest.raises(ValueError):
        text_generation.run(service=service, prompt="hi", tier="medium")


def test_research_returns_raw_result(cli_config: CliConfig, tmp_path: Path) -> None:
    project = tmp_path / "repo"
    project.mkdir()

    payload = research.run(
        service=_service(cli_config, tmp_path),
        prompt="survey the code",
        cwd=str(project),
        allowed_tools="Read, Grep ,",
        disallowed_tools=["Bash"],
    )

    assert payload["ok"] is True
    assert payload["cwd"] == str(project.resolve())
    argv = json.loads(payload["output"])["argv"]
    assert argv[argv.index("--allowedTools") + 1] == "Read,Grep"
    assert argv[argv.index("--disallowedTools") + 1] == "Bash"


def test_research_requires_existing_directory(cli_config: CliConfig, tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        research.run(service=_service(cli_config, tmp_path), prompt="x", cwd=str(tmp_path / "missing"))


def test_auth_status_includes_guidance(cli_config: CliConfig, tmp_path: Path) -> None:
    payload = auth_status.run(service=_service(cli_config, tmp_path))

    assert payload["authenticated"] is False
    assert payload["needs_login"] is True
    assert payload["expires_in_hours"] is None
    assert any("claude login" in step for step in payload["next_steps"])
