from __future__ import annotations

from service import ClaudeCodeService


def run(*, service: ClaudeCodeService) -> dict:
    status = service.check_auth()
    payload = status.to_dict()
    payload["expires_in_hours"] = status.expires_in_hours()
    if status.authenticated:
        payload["guidance"] = "Claude CLI OAuth credentials are valid."
        payload["next_steps"] = []
    else:
        payload["guidance"] = "Claude CLI is not authenticated in this environment."
        payload["next_steps"] = [
            "Run `claude login` in this same shell environment.",
            "Re-run llm.auth_status after sign-in; restart is not required.",
        ]
    return payload
