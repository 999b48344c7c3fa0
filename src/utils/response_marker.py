from __future__ import annotations

import re

OPEN_MARKER = "<response>"
CLOSE_MARKER = "</response>"

_LEADING_RE = re.compile(r"^\s*<response>\s*", flags=re.IGNORECASE)
_TRAILING_RE = re.compile(r"\s*</response>\s*$", flags=re.IGNORECASE)


def wrap_response(text: str) -> str:
    trimmed = (text or "").strip()
    if _LEADING_RE.match(trimmed):
        return trimmed
    return f"{OPEN_MARKER}\n{trimmed}\n{CLOSE_MARKER}"


def strip_response(text: str) -> str:
    cleaned = _LEADING_RE.sub("", (text or "").strip(), count=1)
    cleaned = _TRAILING_RE.sub("", cleaned, count=1)
    return cleaned.strip()
