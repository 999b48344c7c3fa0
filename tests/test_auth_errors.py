from __future__ import annotations

import pytest

from auth_errors import AUTH_ERROR_PATTERNS, find_auth_error, is_auth_error


@pytest.mark.parametrize(
    "text",
    [
        "OAuth token has expired",
        "Error: OAuth token has expired, please re-authenticate",
        "Error: Authentication required to proceed",
        "Your access token expired",
        "The refresh token has been revoked",
        "Error: invalid token provided",
        "Error: Unauthorized access",
        "Not logged in. Please run `claude login` first",
        "You are not logged in",
    ],
)
def test_is_auth_error_matches_substrings(text: str) -> None:
    assert is_auth_error(text) is True


@pytest.mark.parametrize(
    "text",
    ["Network timeout", "File not found", "Process exited with code 1", "Rate limit exceeded", "", None],
)
def test_is_auth_error_ignores_other_failures(text: str | None) -> None:
    assert is_auth_error(text) is False


def test_is_auth_error_is_case_insensitive() -> None:
    assert is_auth_error("OAUTH TOKEN HAS EXPIRED")
    assert is_auth_error("Token Expired")
    assert is_auth_error("AUTHENTICATION REQUIRED")


def test_patterns_cover_expected_messages() -> None:
    assert "OAuth token has expired" in AUTH_ERROR_PATTERNS
    assert "Authentication required" in AUTH_ERROR_PATTERNS
    assert "token expired" in AUTH_ERROR_PATTERNS
    assert len(AUTH_ERROR_PATTERNS) >= 5


def test_find_auth_error_checks_every_stream() -> None:
    assert find_auth_error("", "Error: not logged in") == "Error: not logged in"
    assert find_auth_error("unauthorized", "fine") == "unauthorized"
    assert find_auth_error("all good", None, "") == ""
