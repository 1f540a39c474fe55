# ============================================================================
# GENERATED SCRIPT MODEL
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core model - Batch submission script
# PURPOSE: Submission payload handed to a scheduler adapter
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: GeneratedScript
# DEPENDENCIES: pydantic
# ============================================================================
"""
Generated Script

The text a scheduler adapter submits for one worker. Order is an external
contract: shebang, resource directives, pool script_lines, setup lines,
worker launch command. Schedulers reject or silently ignore directives
that appear after the first shell command.
"""

from typing import Tuple
from pydantic import BaseModel, Field


class GeneratedScript(BaseModel):
    """Submission script for one worker batch job."""

    pool_name: str = Field(..., max_length=48)
    worker_id: str = Field(..., max_length=64)
    job_name: str = Field(..., max_length=128)
    directives: Tuple[str, ...] = Field(default=())
    body: Tuple[str, ...] = Field(default=(), description="Lines after the directives")
    text: str = Field(..., min_length=1)

    model_config = {"frozen": True}

    @property
    def lines(self) -> Tuple[str, ...]:
        return tuple(self.text.splitlines())


__all__ = ["GeneratedScript"]
