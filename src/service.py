from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from credentials import DEFAULT_CREDENTIALS_PATH, AuthStatus, check_auth_status
from invoker import DEFAULT_MODEL, MODELS, CliConfig, CliInvoker, InvocationRequest, InvocationResult
from utils.response_marker import strip_response, wrap_response
from utils.truncation import PromptTruncator


LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120
DEFAULT_RESEARCH_TIMEOUT_SECONDS = 600


class ClaudeCodeError(RuntimeError):
    pass


class InvocationFailed(ClaudeCodeError):
    def __init__(self, message: str, result: InvocationResult) -> None:
        super().__init__(message)
        self.result = result

    @property
    def error_kind(self) -> str:
        return self.result.error_kind or "non_zero_exit"


class InvocationTimeout(InvocationFailed):
    pass


class AuthenticationFailure(InvocationFailed):
    pass


class EmptyOutput(ClaudeCodeError):
    error_kind = "empty_output"


@dataclass(frozen=True)
class ServiceConfig:
    cli: CliConfig = field(default_factory=CliConfig)
    large_model: str = DEFAULT_MODEL
    small_model: str = "haiku"
    research_timeout_seconds: float = DEFAULT_RESEARCH_TIMEOUT_SECONDS
    credentials_path: Path = DEFAULT_CREDENTIALS_PATH

    def __post_init__(self) -> None:
        for name in ("large_model", "small_model"):
            value = getattr(self, name)
            if value not in MODELS:
                raise ValueError(f"{name} must be one of {', '.join(MODELS)}, got {value!r}")

    @classmethod
    def from_mapping(cls, config: dict[str, Any]) -> ServiceConfig:
        workspace_base = str(config.get("workspace_base") or "").strip()
        credentials_path = str(config.get("credentials_path") or "").strip()
        cli = CliConfig(
            command=str(config.get("claude_command", "claude")),
            args=[str(arg) for arg in config.get("claude_args", []) or []],
            prompt_mode=str(config.get("prompt_mode", "arg")).strip().lower(),
            timeout_seconds=float(config.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            workspace_base=workspace_base or None,
            truncator=PromptTruncator.from_config(config),
        )
        return cls(
            cli=cli,
            large_model=str(config.get("large_model", DEFAULT_MODEL)),
            small_model=str(config.get("small_model", "haiku")),
            research_timeout_seconds=float(
                config.get("research_timeout_seconds", DEFAULT_RESEARCH_TIMEOUT_SECONDS)
            ),
            credentials_path=Path(credentials_path).expanduser() if credentials_path else DEFAULT_CREDENTIALS_PATH,
        )


class ClaudeCodeService:
    def __init__(self, config: ServiceConfig | None = None) -> None:
        self.config = config or ServiceConfig()
        self.invoker = CliInvoker(self.config.cli, on_auth_error=self._handle_auth_error)
        self._auth_error_lock = threading.Lock()
        self._auth_error_reported = False
        self._stats_lock = threading.Lock()
        self._stats: dict[str, Any] = {
            "invocations_total": 0,
            "success_total": 0,
            "failure_total": 0,
            "timeout_total": 0,
            "auth_error_total": 0,
            "last_error": "",
        }

    def start(self) -> ClaudeCodeService:
        auth = self.check_auth()
        if not auth.authenticated:
            LOG.warning("Claude CLI is not authenticated, run: claude login")
            if auth.error:
                LOG.warning("Auth check error: %s", auth.error)
        else:
            expires_in = auth.expires_in_hours()
            LOG.info(
                "Claude CLI authenticated (expires in ~%sh)",
                "unknown" if expires_in is None else round(expires_in),
            )
        LOG.info("Claude Code service started (timeout=%ss)", self.config.cli.timeout_seconds)
        return self

    def stop(self) -> None:
        LOG.info("Claude Code service stopped")

    def check_auth(self) -> AuthStatus:
        return check_auth_status(self.config.credentials_path)

    def _handle_auth_error(self, detail: str) -> None:
        with self._auth_error_lock:
            if self._auth_error_reported:
                return
            self._auth_error_reported = True
        LOG.error("OAuth token expired or invalid: %s", detail.strip()[:240])
        LOG.error("Run: claude login")

    def invoke(self, request: InvocationRequest) -> InvocationResult:
        result = self.invoker.invoke(request)
        self._record(result)
        return result

    def _record(self, result: InvocationResult) -> None:
        with self._stats_lock:
            self._stats["invocations_total"] += 1
            if result.ok:
                self._stats["success_total"] += 1
                return
            self._stats["failure_total"] += 1
            if result.error_kind == "timeout":
                self._stats["timeout_total"] += 1
            elif result.error_kind == "auth_error":
                self._stats["auth_error_total"] += 1
            self._stats["last_error"] = result.error_kind or "non_zero_exit"

    def _generate(self, prompt: str, model: str) -> str:
        result = self.invoke(InvocationRequest(prompt=prompt, model=model))
        if not result.ok:
            message = result.stderr or result.output or "Unknown error"
            if result.error_kind == "timeout":
                raise InvocationTimeout(message, result)
            if result.error_kind == "auth_error":
                raise AuthenticationFailure(message, result)
            raise InvocationFailed(message, result)
        if not result.output.strip():
            raise EmptyOutput("Claude CLI returned no output")
        return result.output

    def generate_text(self, prompt: str, model: str = DEFAULT_MODEL) -> str:
        """Generate text bounded by the ``<response>`` marker pair."""
        return wrap_response(self._generate(prompt, model))

    def generate_clean_text(self, prompt: str, model: str = DEFAULT_MODEL) -> str:
        """Generate text with any ``<response>`` marker pair removed."""
        return strip_response(self._generate(prompt, model))

    def text_large(self, prompt: str) -> str:
        return self.generate_text(prompt, self.config.large_model)

    def text_small(self, prompt: str) -> str:
        return self.generate_text(prompt, self.config.small_model)

    def research(
        self,
        prompt: str,
        *,
        cwd: str | Path,
        model: str = DEFAULT_MODEL,
        allowed_tools: list[str] | str | None = None,
        disallowed_tools: list[str] | str | None = None,
        timeout_seconds: float | None = None,
    ) -> InvocationResult:
        return self.invoke(
            InvocationRequest(
                prompt=prompt,
                model=model,
                timeout_seconds=timeout_seconds or self.config.research_timeout_seconds,
                cwd=cwd,
                allowed_tools=allowed_tools,
                disallowed_tools=disallowed_tools,
            )
        )

    def status(self) -> dict[str, Any]:
        with self._stats_lock:
            usage = dict(self._stats)
        with self._auth_error_lock:
            auth_error_reported = self._auth_error_reported
        cli = self.config.cli
        return {
            "command": cli.command,
            "args": list(cli.args),
            "prompt_mode": cli.prompt_mode,
            "timeout_seconds": cli.timeout_seconds,
            "research_timeout_seconds": self.config.research_timeout_seconds,
            "models": {"large": self.config.large_model, "small": self.config.small_model},
            "truncation": {
                "strategy": cli.truncator.strategy,
                "max_chars": cli.truncator.max_chars,
            },
            "auth": self.check_auth().to_dict(),
            "auth_error_reported": auth_error_reported,
            "usage": usage,
        }
