"""Data models for persisted workflow state."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..contracts import RunStatus


class StepRecord(BaseModel):
    """Record of an individual step execution.

    ``completed`` marks the memoization boundary: once set, the record is
    final and the step is never executed again for this run.
    """

    id: Optional[int] = None
    run_key: str
    step_name: str
    status: str = "running"
    completed: bool = False
    output: Any = None
    attempts: int = 0
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class WorkflowRun(BaseModel):
    """Persisted workflow run keyed by the triggering event's idempotency key."""

    run_key: str
    event_type: str
    event: dict[str, Any] = Field(default_factory=dict)
    status: RunStatus = RunStatus.RUNNING
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    deliveries: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    steps: list[StepRecord] = Field(default_factory=list)

    def step(self, step_name: str) -> StepRecord | None:
        return next((s for s in self.steps if s.step_name == step_name), None)

    @property
    def is_settled(self) -> bool:
        """``True`` once the run reached a state a redelivery must not redo."""
        return self.status in (RunStatus.COMPLETED, RunStatus.AWAITING_INPUT)
