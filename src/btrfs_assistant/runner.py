# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# btrfs-assistant/src/btrfs_assistant/runner.py

"""Run external commands through bash and capture their output."""

import logging
import os
import subprocess
from typing import Sequence

from .errors import CommandError, CommandTimeoutError
from .types import CommandResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


def join_commands(command: str | Sequence[str]) -> str:
    """Join a list of commands into one statement sequence."""
    if isinstance(command, str):
        return command
    return "; ".join(c for c in command if c)


def run_cmd(command: str | Sequence[str], include_stderr: bool = False,
            timeout: float = DEFAULT_TIMEOUT) -> CommandResult:
    """Run a command (or a sequence of them) with /bin/bash -c.

    Only the exit status of the last command in a sequence is reported.
    Output is stripped of surrounding whitespace.
    """
    cmd = join_commands(command)
    env = dict(os.environ, LANG="C", LC_ALL="C")
    logger.debug("running: %s", cmd)
    try:
        proc = subprocess.run(
            ["/bin/bash", "-c", cmd],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if include_stderr else subprocess.DEVNULL,
            timeout=timeout,
            env=env,
        )
    except subprocess.TimeoutExpired as e:
        raise CommandTimeoutError(cmd, timeout) from e

    output = proc.stdout.decode("utf-8", errors="replace").strip()
    if proc.returncode != 0:
        logger.debug("exit %d from: %s", proc.returncode, cmd)
    return CommandResult(proc.returncode, output)


class CommandRunner:
    """Callable wrapper around run_cmd with a configured timeout."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout

    def __call__(self, command: str | Sequence[str],
                 include_stderr: bool = False) -> CommandResult:
        return run_cmd(command, include_stderr, self.timeout)

    def check(self, command: str | Sequence[str]) -> str:
        """Run a command and raise CommandError unless it exits 0."""
        result = self(command, include_stderr=True)
        if not result.ok:
            raise CommandError(join_commands(command), result.exit_code,
                               result.output)
        return result.output
