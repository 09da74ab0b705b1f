"""
secure-user-setup core helpers.

COMMANDS: Use a `CommandRunner` (or `run_command`) instead of raw `subprocess.run`
so every privileged call is logged and failures surface the same way.
STEPS: Fatal OS mutations go through `check_step`, which raises
`CommandFailedError`. Best-effort steps return a `StepResult` with
`ignorable=True` and the caller reports it and moves on.
CONFIG: `load_config()` reads ~/.pas/secure-user-setup.json. It is never written.
"""

import json
import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .tui import console

logger = logging.getLogger(__name__)

# --- Configuration ---
CONFIG_SERVICE = "secure-user-setup"
DEFAULT_FALLBACK_USER = "ubuntu"
DEFAULT_SHELL = "/bin/bash"
DEFAULT_OS_RELEASE = Path("/etc/os-release")
HOME_ROOT = Path("/home")
CONFIG_KEYS = {"fallback_user", "shell", "os_release"}
# ---------------------


class SetupError(Exception):
    """Base for failures that end the run. `exit_code` is what the process exits with."""

    exit_code = 1

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class PreconditionError(SetupError):
    """Not root, or the host cannot be identified. Raised before anything is changed."""


class SafetyCheckError(SetupError):
    """A removal would break an invariant (e.g. deleting the account just created)."""


class CommandFailedError(SetupError):
    """A privileged command that must succeed returned non-zero."""

    def __init__(self, step: str, cmd: List[str], returncode: int, stderr: str = ""):
        self.step = step
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(
            f"{step} failed (exit {returncode}) running '{format_cmd(cmd)}'{detail}"
        )


@dataclass(frozen=True)
class StepResult:
    """Outcome of a single workflow step."""

    step: str
    ok: bool
    message: str = ""
    ignorable: bool = False


def format_cmd(cmd: List[str]) -> str:
    return " ".join(shlex.quote(str(c)) for c in cmd)


def run_command(cmd: List[str], capture_output: bool = True, env: Optional[Dict[str, str]] = None) -> subprocess.CompletedProcess:
    """
    Robust wrapper for subprocess execution.
    Never raises: a command that cannot be started comes back as returncode 1
    with the exception text in stderr.
    """
    try:
        return subprocess.run(
            cmd,
            capture_output=capture_output,
            text=True,
            check=False,
            env=env,
        )
    except Exception as e:
        return subprocess.CompletedProcess(args=cmd, returncode=1, stdout="", stderr=str(e))


class CommandRunner:
    """Base class for executing system commands."""

    def run(self, cmd: List[str], capture_output: bool = True) -> subprocess.CompletedProcess:
        raise NotImplementedError


class LocalRunner(CommandRunner):
    """Executes commands on this host. The process is expected to already be root."""

    def run(self, cmd: List[str], capture_output: bool = True) -> subprocess.CompletedProcess:
        logger.debug("CMD %s", format_cmd(cmd))
        res = run_command(cmd, capture_output=capture_output)
        if res.returncode != 0:
            logger.debug("exit %s from %s: %s", res.returncode, cmd[0], (res.stderr or "").strip())
        return res


def check_step(res: subprocess.CompletedProcess, step: str, ignorable: bool = False) -> StepResult:
    """
    Turn a finished command into a StepResult.
    A failed command raises CommandFailedError unless the step is ignorable.
    """
    if res.returncode == 0:
        return StepResult(step=step, ok=True)
    stderr = res.stderr or ""
    if not ignorable:
        logger.info("%s failed: %s", step, stderr.strip())
        raise CommandFailedError(step, list(res.args), res.returncode, stderr)
    logger.info("%s failed (ignored): %s", step, stderr.strip())
    return StepResult(step=step, ok=False, message=stderr.strip(), ignorable=True)


def check_root():
    """The whole workflow needs root. Refuse to start otherwise."""
    if os.geteuid() != 0:
        raise PreconditionError("This script must be run as root (or with sudo)")


def get_config_dir() -> Path:
    """Return the path to the common config directory ~/.pas/ (not created)."""
    return Path.home() / ".pas"


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the optional JSON config (~/.pas/secure-user-setup.json by default).
    Unknown keys are dropped. A missing file gives {}; a malformed one warns and gives {}.
    """
    config_file = path or get_config_dir() / f"{CONFIG_SERVICE}.json"
    if not config_file.exists():
        return {}
    try:
        data = json.loads(config_file.read_text())
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[yellow]Warning: Could not parse config {config_file} ({e}). Using defaults.[/yellow]")
        return {}
    if not isinstance(data, dict):
        console.print(f"[yellow]Warning: Config {config_file} is not a JSON object. Using defaults.[/yellow]")
        return {}
    return {k: v for k, v in data.items() if k in CONFIG_KEYS and isinstance(v, str) and v}
