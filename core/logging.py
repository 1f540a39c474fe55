# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Structured logging with context
# PURPOSE: Consistent, queryable logging across controller and workers
# CREATED: 19 OCT 2026
# ============================================================================
"""
Structured Logging

JSON or human-readable logging for the controller and worker processes.

Features:
- Contextual fields (pool_name, worker_id, task_id, batch_job_id)
- JSON output for log aggregation on shared login nodes
- Named checkpoints for tracing a task through dispatch

Usage:
    from core.logging import get_logger, log_context

    logger = get_logger("orchestrator.loop")

    with log_context(pool_name="small", task_id="t-1"):
        logger.info("Dispatching task", extra={"attempt": 1})

Context is kept in a contextvar so concurrent asyncio tasks (one per
task execution) each see their own fields.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
from enum import Enum


class ComponentType(str, Enum):
    """Component types for logging categorization."""
    CONTROLLER = "controller"
    POOL = "pool"
    SCHEDULER = "scheduler"
    WORKER = "worker"
    API = "api"


@dataclass(frozen=True)
class LogContext:
    """Contextual fields attached to every record logged inside a log_context."""
    pool_name: Optional[str] = None
    worker_id: Optional[str] = None
    task_id: Optional[str] = None
    batch_job_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        result = {
            key: value
            for key, value in asdict(self).items()
            if value is not None and key != "extra"
        }
        if self.extra:
            result.update(self.extra)
        return result


_current_context: ContextVar[LogContext] = ContextVar(
    "pool_log_context", default=LogContext()
)


def get_current_context() -> LogContext:
    """Get current logging context."""
    return _current_context.get()


@contextmanager
def log_context(**kwargs):
    """
    Context manager for adding logging context.

    Fields not given are inherited from the enclosing context.

    Example:
        with log_context(pool_name="big", worker_id="big-3f2a"):
            logger.info("Worker idle")
    """
    parent = get_current_context()
    extra = {**parent.extra, **kwargs.pop("extra", {})}
    new_context = replace(parent, extra=extra, **kwargs)
    token = _current_context.set(new_context)
    try:
        yield new_context
    finally:
        _current_context.reset(token)


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line for log aggregators.
    """

    def __init__(self, include_context: bool = True, include_source: bool = True):
        super().__init__()
        self.include_context = include_context
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": _timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_context:
            context_dict = get_current_context().to_dict()
            if context_dict:
                log_data["context"] = context_dict

        data = getattr(record, "data", None)
        if data:
            log_data["data"] = data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_source:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """
    Human-readable formatter for interactive sessions.

    Pool, worker and task ids are shown inline.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)

        context = get_current_context()
        parts = []
        if context.pool_name:
            parts.append(f"pool={context.pool_name}")
        if context.worker_id:
            parts.append(f"worker={context.worker_id}")
        if context.task_id:
            parts.append(f"task={context.task_id}")
        context_str = f" [{', '.join(parts)}]" if parts else ""

        data = getattr(record, "data", None)
        data_str = f" {data}" if data else ""

        result = f"{timestamp} {level} {record.name}{context_str}: {record.getMessage()}{data_str}"
        if record.exc_info:
            result += f"\n{self.formatException(record.exc_info)}"
        return result


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that moves `extra=` fields under a single `data` attribute.

    Keeps caller-supplied keys from colliding with LogRecord attributes.
    """

    def process(self, msg, kwargs):
        data = dict(kwargs.pop("extra", None) or {})
        if self.extra and self.extra.get("component"):
            data.setdefault("component", self.extra["component"])
        kwargs["extra"] = {"data": data}
        return msg, kwargs


def get_logger(
    name: str,
    component: Optional[ComponentType] = None,
) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (e.g., "pool.worker_pool")
        component: Optional component type for categorization
    """
    value = component.value if component else None
    return ContextLogger(logging.getLogger(name), {"component": value})


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure root logging for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Use JSON format (for log aggregation)
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_output or os.getenv("LOG_FORMAT", "").lower() == "json":
        formatter = StructuredFormatter()
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    # httpx logs every request at INFO; workers poll often enough to flood
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ============================================================================
# CHECKPOINT LOGGING
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a named checkpoint (e.g. "task_dispatched", "worker_lost").

    Checkpoints are queryable markers for following one task or worker
    through the controller.
    """
    if logger is None:
        logger = logging.getLogger("checkpoint")

    checkpoint_data: Dict[str, Any] = {"checkpoint": name, "timestamp": _timestamp()}
    checkpoint_data.update(get_current_context().to_dict())
    if data:
        checkpoint_data["data"] = data

    logger.info(f"CHECKPOINT: {name}", extra={"data": checkpoint_data})


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ComponentType",
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
