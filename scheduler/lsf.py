# ============================================================================
# LSF ADAPTER
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Backend - IBM Spectrum LSF (bsub / bjobs / bkill)
# PURPOSE: Submit, poll and cancel persistent worker jobs on LSF
# CREATED: 19 OCT 2026
# ============================================================================
"""
LSF Adapter

Memory is requested in MB with explicit units so the result does not
depend on the site's LSF_UNIT_FOR_LIMITS. Walltime (-W) is HH:MM.
"""

import logging
import re
from typing import List, Optional

from core.contracts import JobState, SchedulerKind
from core.models import ResourceSpec
from scheduler.base import BatchSchedulerAdapter, first_line

logger = logging.getLogger(__name__)


_STATE_MAP = {
    "PEND": JobState.QUEUED,
    "PSUSP": JobState.QUEUED,
    "WAIT": JobState.QUEUED,
    "RUN": JobState.RUNNING,
    "PROV": JobState.RUNNING,
    "USUSP": JobState.RUNNING,
    "SSUSP": JobState.RUNNING,
    "DONE": JobState.COMPLETED,
    "EXIT": JobState.FAILED,
    "ZOMBI": JobState.FAILED,
    "UNKWN": JobState.UNKNOWN,
}

_SUBMITTED = re.compile(r"Job <(\d+(?:\[\d+\])?)>")
_NOT_FOUND = "is not found"


class LSFAdapter(BatchSchedulerAdapter):
    kind = SchedulerKind.LSF
    directive_prefix = "#BSUB"
    commands = ("bsub", "bjobs", "bkill")
    already_gone_markers = (
        "job has already finished",
        _NOT_FOUND,
        "no matching job found",
    )

    def resource_flags(self, spec: ResourceSpec, job_name: str) -> List[str]:
        flags = [
            f"-J {job_name}",
            f"-n {spec.cpus}",
            '-R "span[hosts=1]"',
            f'-R "rusage[mem={spec.memory_mb}MB]"',
            f"-M {spec.memory_mb}MB",
        ]
        if spec.gpus:
            flags.append(f'-gpu "num={spec.gpus}"')
        if spec.walltime_minutes is not None:
            hours, minutes = divmod(spec.walltime_minutes, 60)
            flags.append(f"-W {hours}:{minutes:02d}")
        if spec.queue:
            flags.append(f"-q {spec.queue}")
        if spec.account:
            flags.append(f"-P {spec.account}")
        return flags

    def reserved_options(self, spec: ResourceSpec) -> List[str]:
        reserved = ["-J", "-n", "-M"]
        if spec.gpus:
            reserved.append("-gpu")
        if spec.walltime:
            reserved.append("-W")
        if spec.queue:
            reserved.append("-q")
        if spec.account:
            reserved.append("-P")
        return reserved

    def submit_argv(self) -> List[str]:
        return ["bsub"]

    def parse_job_id(self, stdout: str) -> Optional[str]:
        match = _SUBMITTED.search(stdout)
        return match.group(1) if match else None

    async def poll(self, job_id: str) -> JobState:
        result = await self.runner.run(["bjobs", "-noheader", "-o", "stat", job_id])
        if _NOT_FOUND in result.output:
            return JobState.UNKNOWN
        if not result.ok:
            self._raise_for(result)
        state = first_line(result.stdout).upper()
        if not state:
            return JobState.UNKNOWN
        return _STATE_MAP.get(state, JobState.UNKNOWN)

    def cancel_argv(self, job_id: str) -> List[str]:
        return ["bkill", job_id]


__all__ = ["LSFAdapter"]
