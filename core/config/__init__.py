# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the controller.
"""

from core.config.defaults import (
    RetryDefaults,
    PollDefaults,
    TimeoutDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "RetryDefaults",
    "PollDefaults",
    "TimeoutDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
