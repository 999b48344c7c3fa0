from __future__ import annotations


AUTH_ERROR_PATTERNS = (
    "OAuth token has expired",
    "Authentication required",
    "token expired",
    "refresh token",
    "invalid token",
    "unauthorized",
    "Please run `claude login`",
    "not logged in",
)

_LOWERED_PATTERNS = tuple(pattern.lower() for pattern in AUTH_ERROR_PATTERNS)


def is_auth_error(text: str | None) -> bool:
    lower = (text or "").lower()
    if not lower:
        return False
    return any(pattern in lower for pattern in _LOWERED_PATTERNS)


def find_auth_error(*texts: str | None) -> str:
    """Return the first text that looks like an authentication failure, or an empty string.

    Some CLI versions print auth diagnostics on stdout instead of stderr, so every
    captured stream is checked on its own.
    """
    for text in texts:
        if is_auth_error(text):
            return str(text)
    return ""
