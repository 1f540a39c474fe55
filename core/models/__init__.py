# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the worker pool controller.
"""

from core.models.resources import ResourceSpec, WorkerPoolConfig, ClusterConfig
from core.models.script import GeneratedScript
from core.models.worker import Worker
from core.models.task import Task, TaskMessage, TaskResult, TaskOutcome

__all__ = [
    # Configuration
    "ResourceSpec",
    "WorkerPoolConfig",
    "ClusterConfig",
    # Scheduler payload
    "GeneratedScript",
    # Runtime state
    "Worker",
    # Tasks
    "Task",
    "TaskMessage",
    "TaskResult",
    "TaskOutcome",
]
