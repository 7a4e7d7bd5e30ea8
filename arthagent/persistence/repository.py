"""Repository abstraction for workflow state persistence."""

from __future__ import annotations

from typing import Any, Protocol

from ..contracts import RunStatus
from .models import StepRecord, WorkflowRun


class WorkflowRepository(Protocol):
    """Protocol for workflow state persistence backends."""

    async def create_run(self, run_key: str, event_type: str, event: dict) -> bool:
        """Persist a new run; return ``False`` (and count the delivery) if it exists."""

    async def mark_run_status(
        self,
        run_key: str,
        status: RunStatus,
        result: dict | None = None,
        error: str | None = None,
    ) -> None:
        """Record the run's current status."""

    async def mark_step_started(self, run_key: str, step_name: str) -> None:
        """Record start of a step unless it already completed."""

    async def mark_step_completed(
        self,
        run_key: str,
        step_name: str,
        status: str,
        output: Any = None,
        completed: bool = True,
        attempts: int = 1,
        error: str | None = None,
    ) -> bool:
        """Record the step outcome; return ``False`` if a completed record exists."""

    async def get_step(self, run_key: str, step_name: str) -> StepRecord | None:
        """Retrieve a single step record."""

    async def get_run(self, run_key: str) -> WorkflowRun | None:
        """Retrieve the run with its steps."""

    async def list_runs(self) -> list[WorkflowRun]:
        """Return all persisted runs without their steps."""
