# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Task dispatch loop
# PURPOSE: Drive ready tasks onto persistent workers
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
Orchestrator Module

Usage:
    from orchestrator import Dispatcher, InMemoryTaskEngine, LocalWorkerTransport

    engine = InMemoryTaskEngine(tasks)
    dispatcher = Dispatcher(group, engine, LocalWorkerTransport())
    await dispatcher.run()
"""

from .engine import TaskGraphEngine, InMemoryTaskEngine
from .transport import WorkerTransport, HTTPWorkerTransport, LocalWorkerTransport
from .loop import Dispatcher

__all__ = [
    "Dispatcher",
    "TaskGraphEngine",
    "InMemoryTaskEngine",
    "WorkerTransport",
    "HTTPWorkerTransport",
    "LocalWorkerTransport",
]
