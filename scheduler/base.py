# ============================================================================
# BATCH SCHEDULER ADAPTER BASE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Polymorphic interface over batch schedulers
# PURPOSE: Script generation, config validation, submit/poll/cancel contract
# CREATED: 19 OCT 2026
# ============================================================================
"""
Batch Scheduler Adapter

Contract every backend implements:
- submit(script) -> job id, or SubmissionError
- poll(job_id) -> JobState (UNKNOWN when the backend has no record)
- cancel(job_id) -> None, idempotent for jobs that are already gone

Script layout (hard external contract):
    #!/bin/bash
    <resource directives>      <- render_directives()
    <pool script_lines>
    <setup_lines>
    <worker launch command>

validate_config() runs when a pool is constructed, so ordering mistakes
and attempts to override generated directives fail at startup instead of
at submission time.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

from jinja2 import Environment, BaseLoader, StrictUndefined

from core.contracts import JobState, SchedulerKind
from core.errors import (
    PoolConfigurationError,
    SchedulerCommandError,
    ScriptOrderError,
    SubmissionError,
)
from core.models import GeneratedScript, ResourceSpec, WorkerPoolConfig
from scheduler.commands import CommandResult, CommandRunner

logger = logging.getLogger(__name__)


SCRIPT_TEMPLATE = """{{ shebang }}
{% for line in directives %}
{{ line }}
{% endfor %}
{% for line in script_lines %}
{{ line }}
{% endfor %}
{% for line in setup_lines %}
{{ line }}
{% endfor %}
{{ launch_command }}
"""

_env = Environment(
    loader=BaseLoader(),
    autoescape=False,
    undefined=StrictUndefined,
    trim_blocks=True,
    keep_trailing_newline=True,
)
_script_template = _env.from_string(SCRIPT_TEMPLATE)


def option_key(flag: str) -> str:
    """
    Identify which option a raw flag sets.

    "--mem=4G" -> "--mem", "-c 4" -> "-c",
    "-l select=1:ncpus=2" -> "-l select", "-l h_vmem=2G" -> "-l h_vmem"
    """
    tokens = flag.split()
    if not tokens:
        return ""
    first = tokens[0].split("=", 1)[0]
    if first == "-l" and len(tokens) > 1:
        resource = tokens[1].split("=", 1)[0].split(":", 1)[0]
        return f"-l {resource}"
    return first


class BatchSchedulerAdapter(ABC):
    """
    Base class for scheduler backends.

    Subclasses define the directive prefix, the directives generated from
    a ResourceSpec, the CLI argv for submit/poll/cancel and how to parse
    their output.
    """

    kind: SchedulerKind
    directive_prefix: str = "#"

    # Case-insensitive substrings meaning "that job is already gone"
    already_gone_markers: Tuple[str, ...] = ()

    # CLI tools the backend shells out to
    commands: Tuple[str, ...] = ()

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner()

    # =========================================================================
    # SCRIPT GENERATION
    # =========================================================================

    @abstractmethod
    def resource_flags(self, spec: ResourceSpec, job_name: str) -> List[str]:
        """Flags generated from the resource spec (without the prefix)."""

    @abstractmethod
    def reserved_options(self, spec: ResourceSpec) -> List[str]:
        """Option keys the generated directives own; users may not set them."""

    def directive(self, flag: str) -> str:
        """Render one flag as a directive line."""
        flag = flag.strip()
        if self.is_directive(flag):
            return flag
        return f"{self.directive_prefix} {flag}"

    def is_directive(self, line: str) -> bool:
        stripped = line.strip()
        return stripped == self.directive_prefix or stripped.startswith(self.directive_prefix + " ")

    def _flag_of(self, line: str) -> str:
        stripped = line.strip()
        if self.is_directive(stripped):
            return stripped[len(self.directive_prefix):].strip()
        return stripped

    def render_directives(self, spec: ResourceSpec, job_name: str) -> List[str]:
        """All directive lines: generated resources, then extra_flags."""
        flags = self.resource_flags(spec, job_name) + list(spec.extra_flags)
        return [self.directive(flag) for flag in flags]

    def job_name_for(self, pool_name: str, worker_id: str) -> str:
        return worker_id

    def build_script(
        self,
        config: WorkerPoolConfig,
        worker_id: str,
        launch_command: str,
        shebang: str = "#!/bin/bash",
    ) -> GeneratedScript:
        """Render the submission script for one worker of a pool."""
        job_name = self.job_name_for(config.name, worker_id)
        directives = self.render_directives(config.resource_spec, job_name)
        text = _script_template.render(
            shebang=shebang,
            directives=directives,
            script_lines=config.script_lines,
            setup_lines=config.resource_spec.setup_lines,
            launch_command=launch_command,
        )
        body = config.script_lines + config.resource_spec.setup_lines + (launch_command,)
        return GeneratedScript(
            pool_name=config.name,
            worker_id=worker_id,
            job_name=job_name,
            directives=tuple(directives),
            body=body,
            text=text,
        )

    # =========================================================================
    # CONFIG VALIDATION
    # =========================================================================

    def validate_config(self, config: WorkerPoolConfig) -> None:
        """
        Validate a pool's free-form lines against this backend.

        Raises:
            ScriptOrderError: a directive in script_lines follows a command
            PoolConfigurationError: a user line overrides a generated directive
        """
        reserved = set(self.reserved_options(config.resource_spec))

        def check_override(flag: str, source: str) -> None:
            key = option_key(flag)
            if key in reserved:
                raise PoolConfigurationError(
                    f"{source} entry {flag!r} overrides generated option {key!r}; "
                    f"set it through the resource spec instead",
                    pool_name=config.name,
                )

        for flag in config.resource_spec.extra_flags:
            check_override(self._flag_of(flag), "extra_flags")

        first_command: Optional[str] = None
        for line in config.script_lines:
            stripped = line.strip()
            if not stripped:
                continue
            if self.is_directive(stripped):
                if first_command is not None:
                    raise ScriptOrderError(config.name, stripped, first_command)
                check_override(self._flag_of(stripped), "script_lines")
            elif stripped.startswith("#"):
                continue
            else:
                first_command = first_command or stripped

    # =========================================================================
    # SUBMIT / POLL / CANCEL
    # =========================================================================

    @abstractmethod
    def submit_argv(self) -> List[str]:
        """Command that reads a script on stdin and submits it."""

    @abstractmethod
    def parse_job_id(self, stdout: str) -> Optional[str]:
        """Extract the job id from submit output, or None."""

    @abstractmethod
    async def poll(self, job_id: str) -> JobState:
        """Query the backend for a job's state."""

    @abstractmethod
    def cancel_argv(self, job_id: str) -> List[str]:
        """Command that cancels a job."""

    async def submit(self, script: GeneratedScript) -> str:
        """
        Submit a generated script.

        Raises:
            SubmissionError: the backend rejected the script or the
                command failed or timed out
        """
        argv = self.submit_argv()
        try:
            result = await self.runner.run(argv, stdin=script.text)
        except asyncio.TimeoutError:
            raise SubmissionError(
                f"{argv[0]} timed out",
                pool_name=script.pool_name,
                worker_id=script.worker_id,
            )

        if not result.ok:
            raise SubmissionError(
                f"{argv[0]} rejected job {script.job_name} "
                f"(exit {result.returncode}): {result.stderr.strip()[:500]}",
                pool_name=script.pool_name,
                worker_id=script.worker_id,
            )

        job_id = self.parse_job_id(result.stdout)
        if not job_id:
            raise SubmissionError(
                f"could not parse job id from {argv[0]} output: {result.stdout.strip()[:200]!r}",
                pool_name=script.pool_name,
                worker_id=script.worker_id,
            )

        logger.info(f"Submitted {self.kind.value} job {job_id} for worker {script.worker_id}")
        return job_id

    async def cancel(self, job_id: str) -> None:
        """
        Cancel a job. Succeeds without side effects if it is already gone.

        Raises:
            SchedulerCommandError: the backend refused for another reason
        """
        argv = self.cancel_argv(job_id)
        try:
            result = await self.runner.run(argv)
        except asyncio.TimeoutError:
            raise SchedulerCommandError(" ".join(argv), -1, "timed out")

        if result.ok:
            logger.info(f"Cancelled {self.kind.value} job {job_id}")
            return
        if self._already_gone(result):
            logger.debug(f"Job {job_id} already terminal, cancel is a no-op")
            return
        raise SchedulerCommandError(result.command, result.returncode, result.stderr)

    def _already_gone(self, result: CommandResult) -> bool:
        text = result.output.lower()
        return any(marker.lower() in text for marker in self.already_gone_markers)

    def _raise_for(self, result: CommandResult) -> None:
        raise SchedulerCommandError(result.command, result.returncode, result.stderr)


def first_line(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ""


def non_empty_lines(text: str) -> Iterable[str]:
    return (line.strip() for line in text.splitlines() if line.strip())


__all__ = [
    "BatchSchedulerAdapter",
    "SCRIPT_TEMPLATE",
    "option_key",
    "first_line",
    "non_empty_lines",
]
