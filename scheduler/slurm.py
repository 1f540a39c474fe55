# ============================================================================
# SLURM ADAPTER
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Backend - Slurm (sbatch / squeue / sacct / scancel)
# PURPOSE: Submit, poll and cancel persistent worker jobs on Slurm
# CREATED: 19 OCT 2026
# ============================================================================
"""
Slurm Adapter

Polls squeue first (live jobs) and falls back to sacct once the job has
left the queue. Job states are the long form (%T), e.g. PENDING, RUNNING,
CANCELLED by 1234.
"""

import logging
import re
from typing import List, Optional

from core.contracts import JobState, SchedulerKind
from core.models import ResourceSpec
from scheduler.base import BatchSchedulerAdapter, first_line

logger = logging.getLogger(__name__)


_STATE_MAP = {
    "PENDING": JobState.QUEUED,
    "CONFIGURING": JobState.QUEUED,
    "REQUEUED": JobState.QUEUED,
    "REQUEUE_HOLD": JobState.QUEUED,
    "REQUEUE_FED": JobState.QUEUED,
    "RESIZING": JobState.QUEUED,
    "SUSPENDED": JobState.QUEUED,
    "RUNNING": JobState.RUNNING,
    "COMPLETING": JobState.RUNNING,
    "STAGE_OUT": JobState.RUNNING,
    "SIGNALING": JobState.RUNNING,
    "COMPLETED": JobState.COMPLETED,
    "FAILED": JobState.FAILED,
    "CANCELLED": JobState.FAILED,
    "TIMEOUT": JobState.FAILED,
    "OUT_OF_MEMORY": JobState.FAILED,
    "NODE_FAIL": JobState.FAILED,
    "PREEMPTED": JobState.FAILED,
    "BOOT_FAIL": JobState.FAILED,
    "DEADLINE": JobState.FAILED,
    "REVOKED": JobState.FAILED,
}

_JOB_ID = re.compile(r"^(\d+(?:_\d+)?)")


def map_slurm_state(raw: str) -> JobState:
    """Map a Slurm state string ("CANCELLED by 0", "RUNNING") to JobState."""
    tokens = raw.strip().split()
    if not tokens:
        return JobState.UNKNOWN
    return _STATE_MAP.get(tokens[0].rstrip("+").upper(), JobState.UNKNOWN)


class SlurmAdapter(BatchSchedulerAdapter):
    kind = SchedulerKind.SLURM
    directive_prefix = "#SBATCH"
    commands = ("sbatch", "squeue", "sacct", "scancel")
    already_gone_markers = (
        "already completing or completed",
        "invalid job id",
        "job has already finished",
    )

    def resource_flags(self, spec: ResourceSpec, job_name: str) -> List[str]:
        flags = [
            f"--job-name={job_name}",
            "--ntasks=1",
            f"--cpus-per-task={spec.cpus}",
            f"--mem={spec.memory_str()}",
        ]
        if spec.gpus:
            flags.append(f"--gres=gpu:{spec.gpus}")
        if spec.walltime:
            flags.append(f"--time={spec.walltime}")
        if spec.queue:
            flags.append(f"--partition={spec.queue}")
        if spec.account:
            flags.append(f"--account={spec.account}")
        return flags

    def reserved_options(self, spec: ResourceSpec) -> List[str]:
        reserved = [
            "--job-name", "-J",
            "--ntasks", "-n",
            "--cpus-per-task", "-c",
            "--mem", "--mem-per-cpu",
        ]
        if spec.gpus:
            reserved += ["--gres", "--gpus", "-G"]
        if spec.walltime:
            reserved += ["--time", "-t"]
        if spec.queue:
            reserved += ["--partition", "-p"]
        if spec.account:
            reserved += ["--account", "-A"]
        return reserved

    def submit_argv(self) -> List[str]:
        return ["sbatch", "--parsable"]

    def parse_job_id(self, stdout: str) -> Optional[str]:
        # --parsable prints "jobid" or "jobid;cluster"
        line = first_line(stdout).split(";", 1)[0]
        match = _JOB_ID.match(line)
        return match.group(1) if match else None

    async def poll(self, job_id: str) -> JobState:
        live = await self.runner.run(
            ["squeue", "--noheader", "--format=%T", f"--jobs={job_id}"]
        )
        if live.ok and first_line(live.stdout):
            return map_slurm_state(first_line(live.stdout))

        # Job left the queue (or squeue refused the id): ask accounting
        history = await self.runner.run(
            ["sacct", "--noheader", "--parsable2", "--allocations",
             "--format=State", f"--jobs={job_id}"]
        )
        if not history.ok:
            self._raise_for(history)
        state = first_line(history.stdout)
        if not state:
            return JobState.UNKNOWN
        return map_slurm_state(state)

    def cancel_argv(self, job_id: str) -> List[str]:
        return ["scancel", job_id]


__all__ = ["SlurmAdapter", "map_slurm_state"]
