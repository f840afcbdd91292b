"""Runs external tools with a bounded timeout."""

import logging
import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence

from nginx_console.errors import CommandFailedError, CommandNotFoundError, CommandTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


# (argv, input_text, timeout) -> CommandResult
Runner = Callable[..., CommandResult]


def run_command(argv: Sequence[str], input_text: str | None = None,
                timeout: float = DEFAULT_TIMEOUT) -> CommandResult:
    """Run *argv*, feeding *input_text* on stdin, and capture its output.

    The child is killed when *timeout* expires. Never logs *input_text*.
    """
    argv = tuple(argv)
    logger.debug("Running %s", " ".join(argv))
    try:
        proc = subprocess.run(
            argv,
            input=input_text,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise CommandNotFoundError(argv) from e
    except subprocess.TimeoutExpired as e:
        logger.warning("%s timed out after %gs", argv[0], timeout)
        raise CommandTimeoutError(argv, timeout) from e
    except OSError as e:
        raise CommandFailedError(f"Failed to execute {argv[0]}: {e}", argv, str(e)) from e

    if proc.returncode != 0:
        logger.debug("%s exited with %d", argv[0], proc.returncode)
    return CommandResult(argv, proc.returncode, proc.stdout or "", proc.stderr or "")
