# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# LAST_REVIEWED: 19 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the controller API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.contracts import OutcomeStatus, WorkerState
from core.models import Task, TaskOutcome


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class TaskCreate(BaseModel):
    """Request to run a ready task."""
    task_id: str = Field(..., min_length=1, max_length=128)
    resource_profile_tag: str = Field(
        ...,
        min_length=1,
        max_length=48,
        description="Pool name the task routes to"
    )
    payload: Dict[str, Any] = Field(
        default_factory=dict,
        description="Handler name under 'handler'; the whole payload is passed as handler params"
    )
    dependencies: List[str] = Field(default_factory=list)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "task_id": "align-sample-07",
                    "resource_profile_tag": "big",
                    "payload": {
                        "handler": "sleep",
                        "duration_seconds": 5
                    }
                }
            ]
        }
    }

    def to_task(self) -> Task:
        return Task(
            task_id=self.task_id,
            resource_profile_tag=self.resource_profile_tag,
            payload=self.payload,
            dependencies=frozenset(self.dependencies),
        )


class WorkerRegistration(BaseModel):
    """Sent by a worker once its HTTP server is listening."""
    address: str = Field(..., max_length=256, description="http://host:port")
    pool_name: Optional[str] = Field(None, max_length=48)


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class RegistrationResponse(BaseModel):
    worker_id: str
    pool_name: str
    state: WorkerState
    batch_job_id: Optional[str] = None


class TaskStatusResponse(BaseModel):
    task_id: str
    resource_profile_tag: str
    status: Optional[OutcomeStatus] = Field(
        None,
        description="None until the task has an outcome"
    )
    outcome: Optional[TaskOutcome] = None


class TaskAccepted(BaseModel):
    task_id: str
    accepted_at: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
