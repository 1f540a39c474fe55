# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for retries, polling, timeouts
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Defaults

Retry, polling and timeout defaults for the controller. Each group can be
overridden via environment variables.

Chosen defaults:
- Submissions: 5 attempts, 2s initial backoff doubling to a 60s cap
- Worker loss: a lost task is redispatched at most 2 more times
- Unknown/timed-out polls: 3 consecutive misses before a worker is lost,
  re-polled after 5s, 10s, 20s...
- Poll every 15s, dispatch tick every 1s, 30s poll command timeout
- Task deadline 1 hour unless the pool overrides it

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class RetryDefaults:
    """
    Retry and backoff limits for infrastructure failures.

    Task-logic failures are never retried by the controller.
    """
    # Batch job submission
    submit_max_attempts: int = 5
    submit_backoff_seconds: float = 2.0
    submit_backoff_max_seconds: float = 60.0

    # Redispatches of a task interrupted by worker loss
    lost_task_max_retries: int = 2

    # Consecutive UNKNOWN / timed-out polls before a worker is declared lost
    unknown_poll_limit: int = 3
    unknown_poll_backoff_seconds: float = 5.0

    def submit_delay(self, attempt: int) -> float:
        """Backoff before submission retry number `attempt` (0-based)."""
        return min(
            self.submit_backoff_seconds * (2 ** attempt),
            self.submit_backoff_max_seconds,
        )

    def unknown_poll_delay(self, misses: int) -> float:
        """Delay before re-polling a job after `misses` consecutive misses."""
        return self.unknown_poll_backoff_seconds * (2 ** max(misses - 1, 0))

    @classmethod
    def from_env(cls) -> "RetryDefaults":
        """Create from environment variables."""
        return cls(
            submit_max_attempts=int(os.getenv("POOL_SUBMIT_MAX_ATTEMPTS", 5)),
            submit_backoff_seconds=float(os.getenv("POOL_SUBMIT_BACKOFF_SECONDS", 2.0)),
            submit_backoff_max_seconds=float(os.getenv("POOL_SUBMIT_BACKOFF_MAX_SECONDS", 60.0)),
            lost_task_max_retries=int(os.getenv("POOL_LOST_TASK_MAX_RETRIES", 2)),
            unknown_poll_limit=int(os.getenv("POOL_UNKNOWN_POLL_LIMIT", 3)),
            unknown_poll_backoff_seconds=float(os.getenv("POOL_UNKNOWN_POLL_BACKOFF_SECONDS", 5.0)),
        )


@dataclass(frozen=True)
class PollDefaults:
    """
    Loop intervals.

    Poll loops run per pool; the dispatch tick is global.
    """
    poll_interval_seconds: float = 15.0
    dispatch_interval_seconds: float = 1.0
    poll_timeout_seconds: float = 30.0

    # DEAD worker records are dropped from their pool after this long
    dead_worker_retention_seconds: float = 3600.0

    @classmethod
    def from_env(cls) -> "PollDefaults":
        """Create from environment variables."""
        return cls(
            poll_interval_seconds=float(os.getenv("POOL_POLL_INTERVAL_SECONDS", 15.0)),
            dispatch_interval_seconds=float(os.getenv("DISPATCH_INTERVAL_SECONDS", 1.0)),
            poll_timeout_seconds=float(os.getenv("POOL_POLL_TIMEOUT_SECONDS", 30.0)),
            dead_worker_retention_seconds=float(
                os.getenv("POOL_DEAD_WORKER_RETENTION_SECONDS", 3600.0)
            ),
        )


@dataclass(frozen=True)
class TimeoutDefaults:
    """
    Deadlines for task execution and scheduler commands.
    """
    # A worker that accepts a task and stays silent this long is lost
    task_timeout_seconds: int = 3600

    # Scheduler CLI invocations
    command_timeout_seconds: float = 60.0
    cancel_timeout_seconds: float = 30.0

    def get_task_timeout(self, pool_override: Optional[int] = None) -> int:
        """Task deadline, honoring a per-pool override."""
        return pool_override or self.task_timeout_seconds

    @classmethod
    def from_env(cls) -> "TimeoutDefaults":
        """Create from environment variables."""
        return cls(
            task_timeout_seconds=int(os.getenv("TASK_TIMEOUT_SECONDS", 3600)),
            command_timeout_seconds=float(os.getenv("SCHEDULER_COMMAND_TIMEOUT_SECONDS", 60.0)),
            cancel_timeout_seconds=float(os.getenv("SCHEDULER_CANCEL_TIMEOUT_SECONDS", 30.0)),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    retry: RetryDefaults = field(default_factory=RetryDefaults)
    poll: PollDefaults = field(default_factory=PollDefaults)
    timeouts: TimeoutDefaults = field(default_factory=TimeoutDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            retry=RetryDefaults.from_env(),
            poll=PollDefaults.from_env(),
            timeouts=TimeoutDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "RetryDefaults",
    "PollDefaults",
    "TimeoutDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
