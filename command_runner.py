"""
External command execution for mount and rsync.

The sync components only ever see ``run(argv) -> exit status``; tests swap in
a recording runner instead of touching real filesystems.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from typing import List, Optional, Sequence

from migration_errors import CommandExecutionError
from structured_logger import COMMAND_RECORD_FLAG

logger = logging.getLogger(__name__)


def split_args(arg_string: str) -> List[str]:
    """Split a configured argument string into argv items."""
    return shlex.split(arg_string)


def format_command(argv: Sequence[str]) -> str:
    return shlex.join(argv)


def log_command(argv: Sequence[str]) -> None:
    """Log a command line; quiet dry-runs still show these records."""
    logger.info(
        f"exec: {format_command(argv)}",
        extra={COMMAND_RECORD_FLAG: True, 'extra_fields': {'argv': list(argv)}}
    )



def run_command(runner: CommandRunner, argv: Sequence[str], dry_run: bool) -> int:
    """Run ``argv`` through ``runner``; under dry-run only log it and report success."""
    if dry_run:
        log_command(argv)
        return 0
    return runner.run(argv)

class CommandRunner:
    """Interface for running an external command."""

    def run(self, argv: Sequence[str]) -> int:
        raise NotImplementedError


class SubprocessCommandRunner(CommandRunner):
    """
    Runs commands with ``subprocess.run``.

    Every command line is logged before it runs. In dry-run mode the command
    is logged and reported as successful without being executed.
    """

    def __init__(self, dry_run: bool = False, timeout: Optional[float] = None):
        self.dry_run = dry_run
        self.timeout = timeout

    def run(self, argv: Sequence[str]) -> int:
        command = format_command(argv)
        log_command(argv)

        if self.dry_run:
            return 0

        try:
            result = subprocess.run(
                list(argv),
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except FileNotFoundError as e:
            raise CommandExecutionError(
                f"Command not found: {argv[0]}", argv
            ) from e
        except subprocess.TimeoutExpired as e:
            raise CommandExecutionError(
                f"Command timed out after {self.timeout}s: {command}", argv
            ) from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            logger.warning(
                f"Command exited with status {result.returncode}: {command}"
                + (f" ({stderr})" if stderr else "")
            )
        return result.returncode
