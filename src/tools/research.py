from __future__ import annotations

from pathlib import Path

from service import ClaudeCodeService


def _normalize_tools(value: str | list[str] | None) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        items = [item.strip() for item in value.split(",")]
    elif isinstance(value, list):
        items = [str(item).strip() for item in value]
    else:
        return None
    cleaned = [item for item in items if item]
    return cleaned or None


def run(
    *,
    service: ClaudeCodeService,
    prompt: str,
    cwd: str,
    model: str = "sonnet",
    allowed_tools: str | list[str] | None = None,
    disallowed_tools: str | list[str] | None = None,
    timeout_seconds: float | None = None,
) -> dict:
    if not (prompt or "").strip():
        raise ValueError("Provide a non-empty `prompt`.")
    workdir = Path(cwd).expanduser()
    if not workdir.is_dir():
        raise ValueError(f"`cwd` must be an existing directory: {cwd}")

    result = service.research(
        prompt,
        cwd=workdir,
        model=model,
        allowed_tools=_normalize_tools(allowed_tools),
        disallowed_tools=_normalize_tools(disallowed_tools),
        timeout_seconds=timeout_seconds,
    )
    payload = result.to_dict()
    payload["cwd"] = str(workdir.resolve())
    return payload
