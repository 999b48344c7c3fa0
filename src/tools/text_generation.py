from __future__ import annotations

from service import ClaudeCodeError, ClaudeCodeService

TIERS = ("large", "small")


def run(
    *,
    service: ClaudeCodeService,
    prompt: str,
    tier: str | None = None,
    model: str | None = None,
    strip_marker: bool = False,
) -> dict:
    resolved_prompt = (prompt or "").strip()
    if not resolved_prompt:
        raise ValueError("Provide a non-empty `prompt`.")
    if model is None:
        resolved_tier = (tier or "large").strip().lower()
        if resolved_tier not in TIERS:
            raise ValueError(f"Unknown tier {tier!r}; expected one of {', '.join(TIERS)}.")
        model = service.config.large_model if resolved_tier == "large" else service.config.small_model

    generate = service.generate_clean_text if strip_marker else service.generate_text
    try:
        text = generate(prompt, model)
    except ClaudeCodeError as exc:
        return {
            "ok": False,
            "model": model,
            "error": str(exc),
            "error_kind": getattr(exc, "error_kind", "invocation_failed"),
        }
    return {"ok": True, "model": model, "text": text}
