"""Subprocess runner for worker executables: allowlist, stdin payload, timeout."""

import os
import subprocess
from dataclasses import dataclass

from config.defaults import DEFAULTS


@dataclass(frozen=True)
class CompletedRun:
    stdout: str
    stderr: str
    returncode: int
    timed_out: bool = False

    @property
    def ok(self):
        return self.returncode == 0 and not self.timed_out


def check_command(command):
    """Raise ValueError unless command is a non-empty, allow-listed list."""
    if not command or not isinstance(command, list):
        raise ValueError("Command must be a non-empty list of strings")
    allowed = DEFAULTS["allowed_commands"]
    if command[0] not in allowed:
        raise ValueError(f"Command '{command[0]}' not in allowlist: {allowed}")


def run_in_sandbox(command, cwd, timeout=None, input_text=None) -> CompletedRun:
    """Run an allow-listed command in cwd.

    Args:
        command: Command as a list of strings, e.g. ["npx", "playwright", "test"]
        cwd: Working directory (must exist)
        timeout: Seconds before killing the process (default from config)
        input_text: Text written to the process's stdin

    Raises:
        ValueError: If command is not in the allowlist or cwd is invalid.
    """
    check_command(command)
    if timeout is None:
        timeout = DEFAULTS["worker_timeout"]

    cwd = os.path.realpath(cwd)
    if not os.path.isdir(cwd):
        raise ValueError(f"Working directory does not exist: {cwd}")

    try:
        result = subprocess.run(
            command,
            cwd=cwd,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return CompletedRun("", f"Command timed out after {timeout}s", -1, timed_out=True)
    except FileNotFoundError:
        return CompletedRun("", f"Command not found: {command[0]}", -1)
    return CompletedRun(result.stdout, result.stderr, result.returncode)
