# ============================================================================
# SCHEDULER COMMAND RUNNER
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Infrastructure - Async subprocess execution
# PURPOSE: Run scheduler CLIs (sbatch, qstat, bkill...) without blocking
# CREATED: 19 OCT 2026
# ============================================================================
"""
Command Runner

Every scheduler adapter talks to its backend through a CommandRunner so
the event loop never blocks on a slow login node, and so tests can
substitute canned command output.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Captured result of one scheduler command."""
    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command(self) -> str:
        return " ".join(self.argv)

    @property
    def output(self) -> str:
        """stdout and stderr together, for marker matching."""
        return f"{self.stdout}\n{self.stderr}"


class CommandRunner:
    """
    Runs a command with asyncio subprocesses.

    A missing executable is reported as returncode 127 rather than raised,
    matching what a shell would do. Timeouts kill the process and raise
    asyncio.TimeoutError.
    """

    def __init__(self, timeout_seconds: float = 60.0):
        self.timeout_seconds = timeout_seconds

    async def run(
        self,
        argv: List[str],
        stdin: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        timeout = timeout or self.timeout_seconds
        logger.debug(f"Running scheduler command: {' '.join(argv)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return CommandResult(argv=list(argv), returncode=127, stderr=f"command not found: {argv[0]}")

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(stdin.encode() if stdin is not None else None),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"Scheduler command timed out after {timeout}s: {argv[0]}")
            raise

        return CommandResult(
            argv=list(argv),
            returncode=proc.returncode,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )


__all__ = ["CommandResult", "CommandRunner"]
