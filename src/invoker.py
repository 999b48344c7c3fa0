from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable

from auth_errors import find_auth_error
from utils.truncation import PromptTruncator


LOG = logging.getLogger(__name__)

MODELS = ("sonnet", "opus", "haiku")
DEFAULT_MODEL = "sonnet"
PROMPT_MODES = ("arg", "stdin")
AUTH_ERROR_MESSAGE = "OAuth token expired. Run: claude login"
WORKSPACE_PREFIX = "claude-code-"
KILL_GRACE_SECONDS = 5.0


@dataclass(frozen=True)
class InvocationRequest:
    prompt: str
    model: str = DEFAULT_MODEL
    timeout_seconds: float | None = None
    cwd: str | Path | None = None
    allowed_tools: list[str] | str | None = None
    disallowed_tools: list[str] | str | None = None
    cancel_event: threading.Event | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.prompt, str) or not self.prompt:
            raise ValueError("prompt must be a non-empty string")
        if self.model not in MODELS:
            raise ValueError(f"unknown model {self.model!r}; expected one of {', '.join(MODELS)}")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


@dataclass(frozen=True)
class InvocationResult:
    output: str
    exit_code: int
    stderr: str
    duration_ms: int
    error_kind: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.error_kind

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["ok"] = self.ok
        return payload


@dataclass(frozen=True)
class CliConfig:
    command: str = "claude"
    args: list[str] = field(default_factory=list)
    prompt_mode: str = "arg"
    timeout_seconds: float = 120
    workspace_base: str | None = None
    truncator: PromptTruncator = field(default_factory=PromptTruncator)
    poll_interval_seconds: float = 0.1

    def __post_init__(self) -> None:
        if self.prompt_mode not in PROMPT_MODES:
            raise ValueError(f"unknown prompt_mode: {self.prompt_mode!r}")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")


def _join_tools(tools: list[str] | str | None) -> str:
    if tools is None:
        return ""
    if isinstance(tools, str):
        return tools.strip()
    return ",".join(str(tool).strip() for tool in tools if str(tool).strip())


class CliInvoker:
    def __init__(self, config: CliConfig, *, on_auth_error: Callable[[str], None] | None = None) -> None:
        self.config = config
        self._on_auth_error = on_auth_error

    def build_command(self, prompt: str, request: InvocationRequest) -> list[str]:
        cmd = [self.config.command, *self.config.args]
        if not any(arg in {"-p", "--print"} for arg in cmd):
            cmd.append("-p")
        if self.config.prompt_mode == "arg":
            insert_at = max(idx for idx, arg in enumerate(cmd) if arg in {"-p", "--print"}) + 1
            cmd.insert(insert_at, prompt)
        cmd.extend(["--model", request.model])
        allowed = _join_tools(request.allowed_tools)
        if allowed:
            cmd.extend(["--allowedTools", allowed])
        disallowed = _join_tools(request.disallowed_tools)
        if disallowed:
            cmd.extend(["--disallowedTools", disallowed])
        return cmd

    def invoke(self, request: InvocationRequest) -> InvocationResult:
        started = time.monotonic()
        timeout = float(request.timeout_seconds or self.config.timeout_seconds)
        workspace: Path | None = None
        proc: subprocess.Popen[str] | None = None
        try:
            prompt = self.config.truncator.truncate(request.prompt)
            if len(prompt) < len(request.prompt):
                LOG.debug(
                    "Prompt truncated from %s to %s chars (%s).",
                    len(request.prompt),
                    len(prompt),
                    self.config.truncator.strategy,
                )

            if request.cwd:
                workdir = Path(request.cwd).expanduser().resolve()
            else:
                workspace = self._create_workspace()
                workdir = workspace

            use_stdin = self.config.prompt_mode == "stdin"
            command = self.build_command(prompt, request)
            LOG.info("Invoking %s model=%s cwd=%s", self.config.command, request.model, workdir)
            LOG.debug("Prompt preview: %s", prompt[:200])

            proc = subprocess.Popen(
                command,
                cwd=str(workdir),
                stdin=subprocess.PIPE if use_stdin else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
            stdout, stderr, interrupted = self._await_exit(
                proc,
                prompt if use_stdin else None,
                timeout=timeout,
                cancel_event=request.cancel_event,
            )
            return self._classify(
                started=started,
                timeout=timeout,
                returncode=proc.returncode,
                stdout=stdout,
                stderr=stderr,
                interrupted=interrupted,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as exc:
            message = f"{type(exc).__name__}: {exc}"
            LOG.error("Invocation failed: %s", message)
            return InvocationResult(
                output="",
                exit_code=1,
                stderr=message,
                duration_ms=_elapsed_ms(started),
                error_kind="internal_error",
            )
        finally:
            self._teardown(proc, workspace)

    def _create_workspace(self) -> Path:
        path = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=self.config.workspace_base or None))
        LOG.debug("Created workspace %s", path)
        return path

    def _await_exit(
        self,
        proc: subprocess.Popen[str],
        stdin_text: str | None,
        *,
        timeout: float,
        cancel_event: threading.Event | None,
    ) -> tuple[str, str, str]:
        # Deadline and cancel event are one race arm; communicate() may be retried after
        # TimeoutExpired without losing output, but input can only be sent once.
        deadline = time.monotonic() + timeout
        pending_input = stdin_text
        reason = "timeout"
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if cancel_event is not None and cancel_event.is_set():
                reason = "cancelled"
                break
            wait = remaining if cancel_event is None else min(remaining, self.config.poll_interval_seconds)
            try:
                stdout, stderr = proc.communicate(pending_input, timeout=wait)
            except subprocess.TimeoutExpired:
                pending_input = None
                continue
            return stdout or "", stderr or "", ""

        proc.kill()
        try:
            stdout, stderr = proc.communicate(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            LOG.warning("Process %s did not release its output after kill.", proc.pid)
            stdout, stderr = "", ""
        return stdout or "", stderr or "", reason

    def _classify(
        self,
        *,
        started: float,
        timeout: float,
        returncode: int | None,
        stdout: str,
        stderr: str,
        interrupted: str,
    ) -> InvocationResult:
        duration_ms = _elapsed_ms(started)
        auth_text = find_auth_error(stderr, stdout)

        if interrupted:
            if auth_text:
                self._report_auth_error(auth_text)
            if interrupted == "timeout":
                message = f"timeout: exceeded {timeout:g}s"
            else:
                message = "cancelled before the CLI finished"
            LOG.error("Invocation %s after %sms.", interrupted, duration_ms)
            return InvocationResult(
                output="",
                exit_code=1,
                stderr=message,
                duration_ms=duration_ms,
                error_kind=interrupted,
            )

        if auth_text:
            self._report_auth_error(auth_text)
            return InvocationResult(
                output="",
                exit_code=returncode if returncode else 1,
                stderr=AUTH_ERROR_MESSAGE,
                duration_ms=duration_ms,
                error_kind="auth_error",
            )

        if returncode != 0:
            exit_code = 1 if returncode is None else returncode
            LOG.error("CLI exited with code %s.", exit_code)
            LOG.error("CLI stderr: %s", stderr.strip()[:500])
            return InvocationResult(
                output=stdout.strip(),
                exit_code=exit_code,
                stderr=stderr.strip(),
                duration_ms=duration_ms,
                error_kind="non_zero_exit",
            )

        LOG.info("CLI completed in %sms.", duration_ms)
        return InvocationResult(
            output=stdout.strip(),
            exit_code=0,
            stderr=stderr.strip(),
            duration_ms=duration_ms,
        )

    def _report_auth_error(self, text: str) -> None:
        if self._on_auth_error is not None:
            self._on_auth_error(text)

    def _teardown(self, proc: subprocess.Popen[str] | None, workspace: Path | None) -> None:
        if proc is not None:
            terminate_process(proc)
        if workspace is not None:
            remove_workspace(workspace)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def terminate_process(proc: subprocess.Popen[str]) -> None:
    if proc.poll() is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        try:
            proc.wait(timeout=KILL_GRACE_SECONDS)
        except subprocess.TimeoutExpired:
            LOG.warning("Process %s did not exit after kill.", proc.pid)
    for stream in (proc.stdin, proc.stdout, proc.stderr):
        if stream is None:
            continue
        try:
            stream.close()
        except OSError as exc:
            LOG.debug("Closing pipe for process %s failed (%s)", proc.pid, exc)


def remove_workspace(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        LOG.warning("Failed to clean up workspace %s: %s", path, exc)
        return
    LOG.debug("Cleaned up workspace %s", path)
