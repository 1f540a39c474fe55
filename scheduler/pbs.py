# ============================================================================
# PBS ADAPTER
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Backend - PBS Pro / OpenPBS (qsub / qstat -x / qdel)
# PURPOSE: Submit, poll and cancel persistent worker jobs on PBS
# CREATED: 19 OCT 2026
# ============================================================================
"""
PBS Adapter

Resources are requested as a single select chunk. qstat -x includes
finished jobs from the server history, so one command covers both live
and finished jobs; Exit_status decides COMPLETED versus FAILED.
"""

import logging
import re
from typing import Dict, List, Optional

from core.contracts import JobState, SchedulerKind
from core.models import ResourceSpec
from scheduler.base import BatchSchedulerAdapter, first_line, non_empty_lines

logger = logging.getLogger(__name__)


_QUEUED = {"Q", "H", "W", "T", "S", "U", "M"}
_RUNNING = {"R", "E", "B"}
_FINISHED = {"F", "X"}

_JOB_ID = re.compile(r"^(\d+(?:\[\d*\])?(?:\.[\w.-]+)?)$")
_UNKNOWN_JOB = "unknown job id"


def parse_qstat_full(text: str) -> Dict[str, str]:
    """Parse "key = value" attribute lines from qstat -f output."""
    attributes: Dict[str, str] = {}
    for line in non_empty_lines(text):
        if " = " in line:
            key, value = line.split(" = ", 1)
            attributes[key.strip()] = value.strip()
    return attributes


class PBSAdapter(BatchSchedulerAdapter):
    kind = SchedulerKind.PBS
    directive_prefix = "#PBS"
    commands = ("qsub", "qstat", "qdel")
    already_gone_markers = (
        _UNKNOWN_JOB,
        "job has finished",
        "request invalid for state of job",
    )

    def resource_flags(self, spec: ResourceSpec, job_name: str) -> List[str]:
        select = f"select=1:ncpus={spec.cpus}:mem={spec.memory_str('gb', 'mb')}"
        if spec.gpus:
            select += f":ngpus={spec.gpus}"
        flags = [f"-N {job_name}", f"-l {select}"]
        if spec.walltime:
            flags.append(f"-l walltime={spec.walltime}")
        if spec.queue:
            flags.append(f"-q {spec.queue}")
        if spec.account:
            flags.append(f"-A {spec.account}")
        return flags

    def reserved_options(self, spec: ResourceSpec) -> List[str]:
        reserved = ["-N", "-l select", "-l ncpus", "-l mem", "-l ngpus", "-l nodes"]
        if spec.walltime:
            reserved.append("-l walltime")
        if spec.queue:
            reserved.append("-q")
        if spec.account:
            reserved.append("-A")
        return reserved

    def submit_argv(self) -> List[str]:
        return ["qsub"]

    def parse_job_id(self, stdout: str) -> Optional[str]:
        match = _JOB_ID.match(first_line(stdout))
        return match.group(1) if match else None

    async def poll(self, job_id: str) -> JobState:
        result = await self.runner.run(["qstat", "-x", "-f", job_id])
        if not result.ok:
            if _UNKNOWN_JOB in result.output.lower():
                return JobState.UNKNOWN
            self._raise_for(result)

        attributes = parse_qstat_full(result.stdout)
        state = attributes.get("job_state", "").upper()
        if state in _QUEUED:
            return JobState.QUEUED
        if state in _RUNNING:
            return JobState.RUNNING
        if state in _FINISHED:
            exit_status = attributes.get("Exit_status")
            if exit_status is not None and exit_status.lstrip("-").isdigit():
                return JobState.COMPLETED if int(exit_status) == 0 else JobState.FAILED
            # Deleted before it ever ran
            return JobState.FAILED
        return JobState.UNKNOWN

    def cancel_argv(self, job_id: str) -> List[str]:
        return ["qdel", job_id]


__all__ = ["PBSAdapter", "parse_qstat_full"]
