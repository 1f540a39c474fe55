# ============================================================================
# VERSION - WORKER POOL CONTROLLER
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# ============================================================================
"""
Version information for the worker pool controller.

This is the single source of truth for the application version.
Updated manually for each release.
"""
# Version format: major.minor.patch.build
# Criteria for 0.1 - scheduler adapters, pools and dispatch loop complete
__version__ = "0.1.0.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Build metadata
BUILD_DATE = "2026-10-19"

EPOCH = 1
CODENAME = "Worker Pool Controller"
