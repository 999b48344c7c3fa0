from __future__ import annotations

from dataclasses import dataclass
from typing import Any


TRUNCATION_STRATEGIES = ("tail", "head_tail")
DEFAULT_MAX_PROMPT_CHARS = 50000
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class PromptTruncator:
    strategy: str = "tail"
    max_chars: int = DEFAULT_MAX_PROMPT_CHARS
    head_fraction: float = 0.25

    def __post_init__(self) -> None:
        if self.strategy not in TRUNCATION_STRATEGIES:
            raise ValueError(f"unknown truncation strategy: {self.strategy!r}")
        if self.max_chars <= 0:
            raise ValueError("max_chars must be positive")
        if not 0.0 <= self.head_fraction <= 1.0:
            raise ValueError("head_fraction must be between 0 and 1")

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> PromptTruncator:
        max_tokens = config.get("max_prompt_tokens")
        if max_tokens:
            max_chars = int(max_tokens) * CHARS_PER_TOKEN
        else:
            max_chars = int(config.get("max_prompt_chars", DEFAULT_MAX_PROMPT_CHARS))
        return cls(
            strategy=str(config.get("truncation_strategy", "tail")).strip().lower(),
            max_chars=max_chars,
            head_fraction=float(config.get("truncation_head_fraction", 0.25)),
        )

    def truncate(self, prompt: str) -> str:
        if len(prompt) <= self.max_chars:
            return prompt
        if self.strategy == "tail":
            return prompt[-self.max_chars :]
        head = int(self.max_chars * self.head_fraction)
        tail = self.max_chars - head
        return prompt[:head] + (prompt[-tail:] if tail else "")
