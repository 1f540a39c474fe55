# ============================================================================
# RESOURCE & POOL CONFIGURATION MODELS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core model - Resource profiles and pool configuration
# PURPOSE: Immutable description of what each worker batch job requests
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: ResourceSpec, WorkerPoolConfig, ClusterConfig
# DEPENDENCIES: pydantic
# ============================================================================
"""
Resource and Pool Configuration Models

Key concept:
- ResourceSpec = what ONE worker job asks the scheduler for
- WorkerPoolConfig = a named group of identical workers (a resource profile)
- ClusterConfig = every pool for one run, plus the scheduler backend

All three are frozen: configuration is immutable for the run's duration.
Adding pools mid-run is unsupported.
"""

import math
import re
from typing import Optional, Tuple
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from core.contracts import SchedulerKind


_WALLTIME_PATTERN = re.compile(r"^(\d+):([0-5]\d):([0-5]\d)$")


class ResourceSpec(BaseModel):
    """
    Resource request for one persistent worker batch job.

    extra_flags are raw scheduler flags (e.g. "--constraint=skylake"),
    emitted as directives. setup_lines (alias: modules) are shell lines
    such as "module load cuda/12.2", emitted after the directives.
    """

    cpus: int = Field(default=1, ge=1, description="CPU cores per worker")
    memory_gb: float = Field(default=1.0, gt=0, description="Memory per worker (GB)")
    gpus: int = Field(default=0, ge=0, description="GPUs per worker")
    walltime: Optional[str] = Field(
        default=None,
        description="Wall-clock limit HH:MM:SS"
    )
    queue: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Partition / queue name"
    )
    account: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Allocation account / project"
    )
    extra_flags: Tuple[str, ...] = Field(
        default=(),
        description="Raw scheduler flags, emitted as directives"
    )
    setup_lines: Tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices("setup_lines", "modules"),
        description="Environment setup shell lines (module loads, venv activation)"
    )

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("walltime")
    @classmethod
    def _check_walltime(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _WALLTIME_PATTERN.match(value):
            raise ValueError(f"walltime must be HH:MM:SS, got {value!r}")
        return value

    @field_validator("extra_flags", "setup_lines")
    @classmethod
    def _strip_lines(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        lines = tuple(line.strip() for line in value)
        if any("\n" in line for line in lines):
            raise ValueError("each entry must be a single line")
        return tuple(line for line in lines if line)

    @property
    def memory_mb(self) -> int:
        """Memory in whole megabytes (rounded up)."""
        return math.ceil(self.memory_gb * 1024)

    def memory_str(self, suffix_gb: str = "G", suffix_mb: str = "M") -> str:
        """Memory in whole GB when exact, else whole MB."""
        if float(self.memory_gb).is_integer():
            return f"{int(self.memory_gb)}{suffix_gb}"
        return f"{self.memory_mb}{suffix_mb}"

    @property
    def walltime_minutes(self) -> Optional[int]:
        """Walltime in whole minutes (rounded up), for HH:MM backends."""
        if self.walltime is None:
            return None
        hours, minutes, seconds = (int(p) for p in _WALLTIME_PATTERN.match(self.walltime).groups())
        return hours * 60 + minutes + (1 if seconds else 0)


class WorkerPoolConfig(BaseModel):
    """
    Configuration of one worker pool (one resource profile).

    script_lines are appended to the generated submission script after the
    generated resource directives. Directive lines inside script_lines must
    precede any shell command in script_lines; this is validated against the
    scheduler's directive prefix when the pool is constructed.
    """

    name: str = Field(
        ...,
        min_length=1,
        max_length=48,
        pattern=r"^[A-Za-z0-9_.-]+$",
        description="Unique pool name; tasks route to it by resource_profile_tag"
    )
    resource_spec: ResourceSpec = Field(
        default_factory=ResourceSpec,
        validation_alias=AliasChoices("resource_spec", "resources"),
    )
    max_workers: int = Field(default=1, ge=1, description="Live worker ceiling")
    min_workers: int = Field(
        default=0,
        ge=0,
        description="Floor the pool resubmits up to after a worker dies"
    )
    script_lines: Tuple[str, ...] = Field(default=())
    task_timeout_seconds: Optional[int] = Field(
        default=None,
        ge=1,
        description="Per-pool execution deadline override"
    )

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("script_lines")
    @classmethod
    def _single_lines(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if any("\n" in line for line in value):
            raise ValueError("script_lines entries must be single lines")
        return tuple(line.rstrip() for line in value)

    @model_validator(mode="after")
    def _check_floor(self) -> "WorkerPoolConfig":
        if self.min_workers > self.max_workers:
            raise ValueError(
                f"min_workers ({self.min_workers}) exceeds max_workers ({self.max_workers})"
            )
        return self


class ClusterConfig(BaseModel):
    """
    Every pool for one run.

    Loaded once at startup (see services.config_service) and never mutated.
    """

    scheduler: SchedulerKind = Field(default=SchedulerKind.SLURM)
    pools: Tuple[WorkerPoolConfig, ...] = Field(..., min_length=1)
    default_pool: Optional[str] = Field(
        default=None,
        description="Pool used for tags that match no pool name"
    )
    controller_url: Optional[str] = Field(
        default=None,
        description="URL workers register with (HTTP transport)"
    )
    worker_command: str = Field(
        default="python -m worker.main",
        description="Command that starts a worker process inside the job"
    )
    shebang: str = Field(default="#!/bin/bash")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_pools(self) -> "ClusterConfig":
        names = [pool.name for pool in self.pools]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate pool names: {', '.join(duplicates)}")
        if self.default_pool is not None and self.default_pool not in names:
            raise ValueError(f"default_pool '{self.default_pool}' is not a configured pool")
        if not self.shebang.startswith("#!"):
            raise ValueError("shebang must start with '#!'")
        return self

    def get_pool(self, name: str) -> Optional[WorkerPoolConfig]:
        for pool in self.pools:
            if pool.name == name:
                return pool
        return None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["ResourceSpec", "WorkerPoolConfig", "ClusterConfig"]
