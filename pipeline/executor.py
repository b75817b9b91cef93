"""
External command executor used by analysis and download consumers.

Commands are argument vectors (no shell). There is no timeout: a hung
command blocks its consumer until the process is killed.
"""

from __future__ import annotations

import asyncio
import shlex
from dataclasses import dataclass
from typing import Optional, Sequence

from pipeline.exceptions import CommandExecutionError
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str


class CommandExecutor:
    async def execute(self, args: Sequence[str], *, cwd: Optional[str] = None) -> CommandResult:
        """
        Run ``args`` and wait for it to finish.

        Raises CommandExecutionError on launch failure or non-zero exit.
        """
        args = tuple(str(a) for a in args)
        logger.info("Executing command", command=shlex.join(args), cwd=cwd)

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as e:
            raise CommandExecutionError(args, exit_code=None, stderr=str(e)) from e

        out, err = await proc.communicate()
        stdout = out.decode("utf-8", errors="replace")
        stderr = err.decode("utf-8", errors="replace")

        if proc.returncode != 0:
            logger.error(
                "Command failed",
                command=shlex.join(args),
                exit_code=proc.returncode,
                stderr=stderr[-2000:],
            )
            raise CommandExecutionError(args, exit_code=proc.returncode, stderr=stderr, stdout=stdout)

        return CommandResult(args=args, exit_code=proc.returncode, stdout=stdout, stderr=stderr)


_executor: Optional[CommandExecutor] = None


def get_executor() -> CommandExecutor:
    global _executor
    if _executor is None:
        _executor = CommandExecutor()
    return _executor
