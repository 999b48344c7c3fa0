from __future__ import annotations

import atexit
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from fastmcp import FastMCP

from service import ClaudeCodeService, ServiceConfig
from tools import auth_status, research, text_generation


LOG = logging.getLogger(__name__)


def load_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    return raw or {}


def apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    merged = dict(config)
    timeout_override = os.environ.get("CLAUDE_CODE_TIMEOUT_SECONDS", "").strip()
    if timeout_override:
        try:
            merged["timeout_seconds"] = float(timeout_override)
        except ValueError:
            LOG.warning("Ignoring non-numeric CLAUDE_CODE_TIMEOUT_SECONDS=%r", timeout_override)
    workspace_override = os.environ.get("CLAUDE_CODE_WORKSPACE_BASE", "").strip()
    if workspace_override:
        merged["workspace_base"] = workspace_override
    return merged


def resolve_server_home() -> Path:
    return Path(
        os.environ.get("CLAUDE_CODE_SERVER_HOME", Path(__file__).resolve().parents[1].as_posix())
    ).resolve()


def build_service(config: dict[str, Any]) -> ClaudeCodeService:
    return ClaudeCodeService(ServiceConfig.from_mapping(apply_env_overrides(config)))


def build_mcp(service: ClaudeCodeService) -> FastMCP:
    mcp = FastMCP("Claude_Code_Backend")

    @mcp.tool(name="llm.text_large")
    def tool_text_large(prompt: str) -> dict:
        return text_generation.run(service=service, prompt=prompt, tier="large")

    @mcp.tool(name="llm.text_small")
    def tool_text_small(prompt: str) -> dict:
        return text_generation.run(service=service, prompt=prompt, tier="small")

    @mcp.tool(name="llm.generate")
    def tool_generate(prompt: str, model: str = "sonnet", strip_marker: bool = False) -> dict:
        return text_generation.run(
            service=service,
            prompt=prompt,
            model=model,
            strip_marker=strip_marker,
        )

    @mcp.tool(name="llm.research")
    def tool_research(
        prompt: str,
        cwd: str,
        model: str = "sonnet",
        allowed_tools: str | list[str] | None = None,
        disallowed_tools: str | list[str] | None = None,
        timeout_seconds: float | None = None,
    ) -> dict:
        return research.run(
            service=service,
            prompt=prompt,
            cwd=cwd,
            model=model,
            allowed_tools=allowed_tools,
            disallowed_tools=disallowed_tools,
            timeout_seconds=timeout_seconds,
        )

    @mcp.tool(name="llm.auth_status")
    def tool_auth_status() -> dict:
        return auth_status.run(service=service)

    @mcp.tool(name="llm.status")
    def tool_status() -> dict:
        return service.status()

    return mcp


def main() -> None:
    # Keep stdio transport quiet for MCP clients that are sensitive to noisy startup logs.
    logging.basicConfig(level=logging.WARNING)

    server_home = resolve_server_home()
    config = load_config(server_home / "config.yaml")
    service = build_service(config).start()
    atexit.register(service.stop)

    mcp = build_mcp(service)
    mcp.run(show_banner=False, log_level="ERROR")


if __name__ == "__main__":
    main()
