"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any, Dict

from ..contracts import RunStatus
from .models import StepRecord, WorkflowRun
from .repository import WorkflowRepository


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._runs: Dict[str, WorkflowRun] = {}
        self._step_id = 0

    # ------------------------------------------------------------------
    async def create_run(self, run_key: str, event_type: str, event: dict) -> bool:
        existing = self._runs.get(run_key)
        if existing is not None:
            existing.deliveries += 1
            existing.updated_at = _now()
            return False
        now = _now()
        self._runs[run_key] = WorkflowRun(
            run_key=run_key,
            event_type=event_type,
            event=copy.deepcopy(event),
            status=RunStatus.RUNNING,
            created_at=now,
            updated_at=now,
        )
        return True

    async def mark_run_status(
        self,
        run_key: str,
        status: RunStatus,
        result: dict | None = None,
        error: str | None = None,
    ) -> None:
        run = self._runs.get(run_key)
        if run is None:
            return
        run.status = status
        run.result = copy.deepcopy(result)
        run.error = error
        run.updated_at = _now()

    async def mark_step_started(self, run_key: str, step_name: str) -> None:
        run = self._runs.get(run_key)
        if run is None:
            return
        step = run.step(step_name)
        if step is None:
            self._step_id += 1
            run.steps.append(
                StepRecord(
                    id=self._step_id,
                    run_key=run_key,
                    step_name=step_name,
                    started_at=_now(),
                )
            )
        elif not step.completed:
            step.status = "running"
            step.started_at = _now()

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
        run = self._runs.get(run_key)
        if run is None:
            return False
        step = run.step(step_name)
        if step is None:
            await self.mark_step_started(run_key, step_name)
            step = run.step(step_name)
        if step.completed:
            return False
        step.status = status
        step.completed = completed
        step.output = copy.deepcopy(output)
        step.attempts = attempts
        step.error = error
        step.completed_at = _now()
        return True

    async def get_step(self, run_key: str, step_name: str) -> StepRecord | None:
        run = self._runs.get(run_key)
        if run is None:
            return None
        step = run.step(step_name)
        return step.model_copy(deep=True) if step else None

    async def get_run(self, run_key: str) -> WorkflowRun | None:
        run = self._runs.get(run_key)
        return run.model_copy(deep=True) if run else None

    async def list_runs(self) -> list[WorkflowRun]:
        return [r.model_copy(update={"steps": []}) for r in self._runs.values()]
