# ============================================================================
# HANDLER REGISTRY
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Handler registration and lookup
# PURPOSE: Register and discover task handlers by name
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Handler Registry

Central registry for task handlers. A persistent worker looks up the
handler named in each TaskMessage here and runs it.

Design:
- Handlers are registered at import time via decorator
- Registry is a simple dict (handler_name -> handler_func)
- Fail-fast on duplicate registration
- Supports both sync and async handlers
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


# ============================================================================
# HANDLER TYPES
# ============================================================================

@dataclass
class HandlerContext:
    """
    Context passed to handler functions.

    params is the task payload exactly as the task-graph engine supplied it.
    """
    task_id: str
    handler: str
    params: Dict[str, Any]
    timeout_seconds: int
    attempt: int = 1
    pool_name: Optional[str] = None
    worker_id: Optional[str] = None


@dataclass
class HandlerResult:
    """
    Result returned by handler functions.

    success=False is a task-logic failure: reported verbatim, never retried.
    """
    success: bool = True
    output: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None

    @classmethod
    def success_result(cls, output: Optional[Dict[str, Any]] = None) -> "HandlerResult":
        """Create a success result."""
        return cls(success=True, output=output or {})

    @classmethod
    def failure_result(
        cls,
        error_message: str,
        output: Optional[Dict[str, Any]] = None,
    ) -> "HandlerResult":
        """Create a failure result."""
        return cls(success=False, error_message=error_message, output=output or {})


# Handler function type
HandlerFunc = Callable[[HandlerContext], Union[HandlerResult, Awaitable[HandlerResult]]]


# ============================================================================
# EXCEPTIONS
# ============================================================================

class HandlerError(Exception):
    """Base exception for handler errors."""
    pass


class HandlerNotFoundError(HandlerError):
    """Raised when a handler is not found in the registry."""
    def __init__(self, handler_name: str):
        self.handler_name = handler_name
        super().__init__(f"Handler not found: {handler_name}")


class DuplicateHandlerError(HandlerError):
    """Raised when a handler name is already registered."""
    def __init__(self, handler_name: str):
        self.handler_name = handler_name
        super().__init__(f"Handler already registered: {handler_name}")


# ============================================================================
# REGISTRY
# ============================================================================

_handlers: Dict[str, HandlerFunc] = {}
_handler_metadata: Dict[str, Dict[str, Any]] = {}


def register_handler(
    name: str,
    *,
    description: str = "",
    tags: Optional[List[str]] = None,
) -> Callable[[HandlerFunc], HandlerFunc]:
    """
    Decorator to register a handler function.

    Example:
        @register_handler("align_reads")
        async def align_reads(ctx: HandlerContext) -> HandlerResult:
            return HandlerResult.success_result({"bam": "..."})
    """
    def decorator(func: HandlerFunc) -> HandlerFunc:
        if name in _handlers:
            raise DuplicateHandlerError(name)

        _handlers[name] = func
        _handler_metadata[name] = {
            "name": name,
            "description": description,
            "tags": tags or [],
            "function": func.__name__,
            "module": func.__module__,
            "is_async": asyncio.iscoroutinefunction(func),
            "registered_at": datetime.now(timezone.utc).isoformat(),
        }

        logger.debug(f"Registered handler: {name} ({func.__module__}.{func.__name__})")
        return func

    return decorator


def get_handler(name: str) -> Optional[HandlerFunc]:
    return _handlers.get(name)


def get_handler_or_raise(name: str) -> HandlerFunc:
    """
    Get a handler by name.

    Raises:
        HandlerNotFoundError if handler not found
    """
    handler = _handlers.get(name)
    if handler is None:
        raise HandlerNotFoundError(name)
    return handler


def list_handlers() -> List[Dict[str, Any]]:
    """List all registered handlers with metadata."""
    return list(_handler_metadata.values())


def clear_handlers() -> None:
    """
    Clear all registered handlers.

    Primarily for testing.
    """
    _handlers.clear()
    _handler_metadata.clear()
    logger.debug("Cleared all handlers")


# ============================================================================
# ASYNC HANDLER EXECUTION
# ============================================================================

async def execute_handler(name: str, context: HandlerContext) -> HandlerResult:
    """
    Execute a handler by name.

    Sync handlers run in the default thread pool. Exceptions raised by the
    handler become failure results.

    Raises:
        HandlerNotFoundError if handler not found
    """
    handler = get_handler_or_raise(name)

    try:
        if asyncio.iscoroutinefunction(handler):
            result = await handler(context)
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, handler, context)
        return result

    except Exception as e:
        logger.exception(f"Handler {name} failed: {e}")
        return HandlerResult.failure_result(f"{type(e).__name__}: {e}")


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "register_handler",
    "get_handler",
    "get_handler_or_raise",
    "list_handlers",
    "clear_handlers",
    "execute_handler",
    "HandlerFunc",
    "HandlerContext",
    "HandlerResult",
    "HandlerError",
    "HandlerNotFoundError",
    "DuplicateHandlerError",
]
