"""
External command execution.

Everything CacheSift runs outside its own process (tool verification probes)
goes through ``run_command``: capture stdout, and treat a non-zero exit or any exception as failure.
"""

from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

from .logging import get_logger

LOGGER = get_logger("core.commands")

DEFAULT_COMMAND_TIMEOUT = 15.0


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of an external command."""

    ok: bool
    returncode: Optional[int]
    stdout: str = ""
    error: Optional[str] = None


CommandRunner = Callable[[Sequence[str], float], CommandResult]


def split_command(command: Union[str, Sequence[str]]) -> List[str]:
    """Split a probe string into argv; sequences are passed through."""
    if isinstance(command, str):
        return shlex.split(command)
    return list(command)


def run_command(args: Sequence[str], timeout: float = DEFAULT_COMMAND_TIMEOUT) -> CommandResult:
    """
    Run an external command and capture its output.

    Args:
        args: argv of the command
        timeout: Seconds before the command is killed

    Returns:
        CommandResult; ``ok`` is True only for exit code zero
    """
    if not args:
        return CommandResult(ok=False, returncode=None, error="empty command")
    try:
        process = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        LOGGER.warning("Command timed out after %.1fs: %s", timeout, args[0])
        return CommandResult(ok=False, returncode=None, error=f"timed out after {timeout:g}s")
    except (OSError, subprocess.SubprocessError) as exc:
        LOGGER.warning("Unable to run %s: %s", args[0], exc)
        return CommandResult(ok=False, returncode=None, error=str(exc))

    output = process.stdout or ""
    if process.returncode != 0:
        detail = (process.stderr or output).strip().splitlines()
        error = detail[0] if detail else f"exit code {process.returncode}"
        LOGGER.debug("Command %s exited with %d", args[0], process.returncode)
        return CommandResult(ok=False, returncode=process.returncode, stdout=output, error=error)
    return CommandResult(ok=True, returncode=0, stdout=output)
