# ============================================================================
# SGE ADAPTER
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Backend - Grid Engine (qsub -terse / qstat / qacct / qdel)
# PURPOSE: Submit, poll and cancel persistent worker jobs on SGE
# CREATED: 19 OCT 2026
# ============================================================================
"""
SGE Adapter

Grid Engine forgets a job the moment it leaves the queue, so poll reads the
qstat listing first and then qacct. h_vmem is a per-slot limit, so the
memory request is divided across the parallel environment's slots.
"""

import logging
import math
from typing import List, Optional

from core.contracts import JobState, SchedulerKind
from core.models import ResourceSpec
from scheduler.base import BatchSchedulerAdapter, first_line, non_empty_lines

logger = logging.getLogger(__name__)


def map_sge_state(code: str) -> JobState:
    """Map a qstat state code (qw, r, Eqw, hqw, dr...) to JobState."""
    if "E" in code:
        return JobState.FAILED
    if "r" in code or "t" in code or "R" in code:
        return JobState.RUNNING
    if code:
        return JobState.QUEUED
    return JobState.UNKNOWN


class SGEAdapter(BatchSchedulerAdapter):
    kind = SchedulerKind.SGE
    directive_prefix = "#$"
    commands = ("qsub", "qstat", "qacct", "qdel")
    already_gone_markers = ("does not exist",)

    parallel_environment = "smp"

    def resource_flags(self, spec: ResourceSpec, job_name: str) -> List[str]:
        per_slot_mb = math.ceil(spec.memory_mb / spec.cpus)
        flags = [f"-N {job_name}"]
        if spec.cpus > 1:
            flags.append(f"-pe {self.parallel_environment} {spec.cpus}")
        flags.append(f"-l h_vmem={per_slot_mb}M")
        if spec.gpus:
            flags.append(f"-l gpu={spec.gpus}")
        if spec.walltime:
            flags.append(f"-l h_rt={spec.walltime}")
        if spec.queue:
            flags.append(f"-q {spec.queue}")
        if spec.account:
            flags.append(f"-P {spec.account}")
        return flags

    def reserved_options(self, spec: ResourceSpec) -> List[str]:
        reserved = ["-N", "-pe", "-l h_vmem", "-l mem_free"]
        if spec.gpus:
            reserved.append("-l gpu")
        if spec.walltime:
            reserved.append("-l h_rt")
        if spec.queue:
            reserved.append("-q")
        if spec.account:
            reserved.append("-P")
        return reserved

    def submit_argv(self) -> List[str]:
        return ["qsub", "-terse"]

    def parse_job_id(self, stdout: str) -> Optional[str]:
        # -terse prints "1234" or "1234.1-10:1" for array jobs
        job_id = first_line(stdout).split(".", 1)[0]
        return job_id if job_id.isdigit() else None

    async def poll(self, job_id: str) -> JobState:
        listing = await self.runner.run(["qstat", "-u", "*"])
        if not listing.ok:
            self._raise_for(listing)
        for line in non_empty_lines(listing.stdout):
            columns = line.split()
            if len(columns) > 4 and columns[0] == job_id:
                return map_sge_state(columns[4])

        accounting = await self.runner.run(["qacct", "-j", job_id])
        if not accounting.ok:
            # "error: job id 1234 not found"
            return JobState.UNKNOWN

        failed: Optional[str] = None
        exit_status: Optional[str] = None
        for line in non_empty_lines(accounting.stdout):
            parts = line.split(None, 1)
            if len(parts) != 2:
                continue
            # qacct lists every run of a requeued job; the last one wins
            if parts[0] == "failed":
                failed = parts[1].split()[0]
            elif parts[0] == "exit_status":
                exit_status = parts[1].split()[0]

        if failed is None and exit_status is None:
            return JobState.UNKNOWN
        if failed in (None, "0") and exit_status in (None, "0"):
            return JobState.COMPLETED
        return JobState.FAILED

    def cancel_argv(self, job_id: str) -> List[str]:
        return ["qdel", job_id]


__all__ = ["SGEAdapter", "map_sge_state"]
