from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any


DEFAULT_CREDENTIALS_PATH = Path.home() / ".claude" / ".credentials.json"


@dataclass(frozen=True)
class AuthStatus:
    authenticated: bool
    needs_login: bool
    expires_at_ms: int | None = None
    subscription_type: str = ""
    error: str = ""

    def expires_in_hours(self, now_ms: int | None = None) -> float | None:
        if self.expires_at_ms is None:
            return None
        now = _now_ms() if now_ms is None else now_ms
        return round((self.expires_at_ms - now) / 1000 / 60 / 60, 1)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _extract_token(payload: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _coerce_epoch_ms(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _not_authenticated(error: str, **extra: Any) -> AuthStatus:
    return AuthStatus(authenticated=False, needs_login=True, error=error, **extra)


def check_auth_status(path: str | Path | None = None, *, now_ms: int | None = None) -> AuthStatus:
    creds_path = Path(path).expanduser() if path else DEFAULT_CREDENTIALS_PATH
    try:
        raw = creds_path.read_text(encoding="utf-8")
    except OSError as exc:
        return _not_authenticated(f"{type(exc).__name__}: {exc}")

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return _not_authenticated("invalid_credentials_json")
    if not isinstance(payload, dict):
        return _not_authenticated("invalid_credentials_json")

    oauth = payload.get("claudeAiOauth")
    if not isinstance(oauth, dict):
        return _not_authenticated("oauth_credentials_missing")

    expires_at = _coerce_epoch_ms(oauth.get("expiresAt"))
    subscription = oauth.get("subscriptionType")
    subscription_type = subscription.strip() if isinstance(subscription, str) else ""

    if not _extract_token(oauth, ("accessToken", "access_token")):
        return _not_authenticated(
            "missing_access_token",
            expires_at_ms=expires_at,
            subscription_type=subscription_type,
        )

    now = _now_ms() if now_ms is None else now_ms
    if expires_at is not None and expires_at < now:
        return _not_authenticated(
            "token_expired",
            expires_at_ms=expires_at,
            subscription_type=subscription_type,
        )

    return AuthStatus(
        authenticated=True,
        needs_login=False,
        expires_at_ms=expires_at,
        subscription_type=subscription_type,
    )
