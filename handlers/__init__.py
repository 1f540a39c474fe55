# ============================================================================
# HANDLER REGISTRY
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Handler registration and lookup
# PURPOSE: Register and discover task handlers
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Handler Registry

Provides a decorator-based registration system for task handlers.

Usage:
    from handlers import register_handler, get_handler

    @register_handler("my_handler")
    async def my_handler(context: HandlerContext) -> HandlerResult:
        # Do work
        return HandlerResult(output={"key": "value"})

    # Later, to execute:
    handler = get_handler("my_handler")
    result = await handler(context)
"""

from handlers.registry import (
    register_handler,
    get_handler,
    get_handler_or_raise,
    list_handlers,
    clear_handlers,
    execute_handler,
    HandlerFunc,
    HandlerContext,
    HandlerResult,
    HandlerError,
    HandlerNotFoundError,
    DuplicateHandlerError,
)

# Import handler modules to trigger registration
import handlers.examples  # noqa: F401 - import for side effects (echo, sleep, fail)

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
