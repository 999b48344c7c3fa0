from __future__ import annotations

import sys
import textwrap
from pathlib import Path

import pytest

from invoker import CliConfig
from utils.truncation import PromptTruncator

FAKE_CLI = textwrap.dedent(
    """
    import json
    import os
    import sys
    import time

    argv = sys.argv[1:]
    flag = argv.index("-p")
    if flag + 1 < len(argv) and argv[flag + 1] != "--model":
        prompt = argv[flag + 1]
    else:
        prompt = sys.stdin.read()

    if prompt.startswith("SLEEP"):
        with open("pid.txt", "w", encoding="utf-8") as handle:
            handle.write(str(os.getpid()))
        time.sleep(30)
    elif prompt.startswith("FAIL"):
        sys.stdout.write("partial output")
        sys.stderr.write("boom: something broke")
        sys.exit(3)
    elif prompt.startswith("AUTH_STDOUT"):
        print("Error: OAuth token has expired, please re-authenticate")
    elif prompt.startswith("AUTH_STDERR"):
        sys.stderr.write("Not logged in. Please run `claude login` first")
        sys.exit(1)
    elif prompt.startswith("EMPTY"):
        sys.stdout.write("   \\n")
    elif prompt.startswith("BADBYTES"):
        sys.stdout.buffer.write(b"caf\\xe9 answer\\n")
    elif prompt.startswith("WRAPPED"):
        print("<response>\\nalready wrapped\\n</response>")
    else:
        print(json.dumps({"argv": argv, "cwd": os.getcwd(), "prompt": prompt}))
    """
)


@pytest.fixture
def fake_cli(tmp_path: Path) -> Path:
    script = tmp_path / "fake_claude.py"
    script.write_text(FAKE_CLI, encoding="utf-8")
    return script


@pytest.fixture
def workspace_base(tmp_path: Path) -> Path:
    base = tmp_path / "workspaces"
    base.mkdir()
    return base


@pytest.fixture
def cli_config(fake_cli: Path, workspace_base: Path) -> CliConfig:
    return CliConfig(
        command=sys.executable,
        args=[str(fake_cli)],
        timeout_seconds=20,
        workspace_base=str(workspace_base),
        truncator=PromptTruncator(max_chars=50000),
        poll_interval_seconds=0.05,
    )
