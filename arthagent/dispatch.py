"""Workflow dispatcher for arthagent."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Callable, Dict, List, Optional

from .config import EngineConfig
from .constants import EVENT_TOPIC
from .contracts import RunOutcome, RunStatus, WorkflowEvent, WorkflowResult
from .errors import StepFailed
from .persistence import WorkflowRepository, WorkflowRun
from .transports import BaseTransport
from .workflow import WorkflowContext, WorkflowFn

logger = logging.getLogger(__name__)


class WorkflowDispatcher:
    """Maps event types to workflow functions and drives their runs.

    A run is identified by the event's idempotency key. The first delivery
    creates it; later deliveries resume it from the last completed step, or
    return the stored result when the run already settled.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        transport: Optional[BaseTransport] = None,
        engine: Optional[EngineConfig] = None,
        topic: str = EVENT_TOPIC,
    ) -> None:
        self.repository = repository
        self.transport = transport
        self.engine = engine or EngineConfig()
        self.topic = topic
        self._workflows: Dict[str, WorkflowFn] = {}
        self._locks: Dict[str, List] = {}

    def register(
        self, event_type: str, workflow_fn: Optional[WorkflowFn] = None
    ) -> WorkflowFn | Callable[[WorkflowFn], WorkflowFn]:
        """Register ``workflow_fn`` for ``event_type``; usable as a decorator."""

        def _register(fn: WorkflowFn) -> WorkflowFn:
            if event_type in self._workflows:
                raise ValueError(f"Workflow already registered for {event_type}")
            self._workflows[event_type] = fn
            return fn

        if workflow_fn is None:
            return _register
        return _register(workflow_fn)

    @property
    def event_types(self) -> list[str]:
        return list(self._workflows)

    async def publish(self, event: WorkflowEvent) -> str:
        """Queue ``event`` for a worker and return its run key."""
        if self.transport is None:
            raise RuntimeError("Dispatcher has no transport to publish to")
        if event.type not in self._workflows:
            raise ValueError(f"No workflow registered for event type {event.type}")
        run_key = event.idempotency_key
        await self.transport.publish(self.topic, event)
        logger.info(f"Published {event.type} event {event.event_id} for run {run_key}")
        return run_key

    async def get_run(self, run_key: str) -> WorkflowRun | None:
        return await self.repository.get_run(run_key)

    async def run(self, event: WorkflowEvent) -> WorkflowResult:
        """Execute or resume the run for ``event``."""
        workflow_fn = self._workflows.get(event.type)
        if workflow_fn is None:
            raise ValueError(f"No workflow registered for event type {event.type}")
        run_key = event.idempotency_key

        async with self._serialized(run_key):
            return await self._run(run_key, event, workflow_fn)

    # ------------------------------------------------------------------
    @contextlib.asynccontextmanager
    async def _serialized(self, run_key: str) -> AsyncIterator[None]:
        entry = self._locks.get(run_key)
        if entry is None:
            entry = self._locks[run_key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[run_key]

    async def _run(
        self, run_key: str, event: WorkflowEvent, workflow_fn: WorkflowFn
    ) -> WorkflowResult:
        created = await self.repository.create_run(
            run_key, event.type, event.model_dump(mode="json")
        )
        resumed = not created
        if resumed:
            existing = await self.repository.get_run(run_key)
            if existing is not None and existing.is_settled:
                logger.info(
                    f"Run {run_key} already {existing.status.value}; returning stored result"
                )
                outcome = (
                    RunOutcome.model_validate(existing.result) if existing.result else None
                )
                return WorkflowResult(
                    run_key=run_key, status=existing.status, outcome=outcome, resumed=True
                )
            logger.info(f"Resuming run {run_key}")
            await self.repository.mark_run_status(run_key, RunStatus.RUNNING)
        else:
            logger.info(f"Starting run {run_key} for {event.type}")

        ctx = WorkflowContext(
            run_key,
            event,
            self.repository,
            retry=self.engine.retry,
            step_timeout=self.engine.step_timeout,
            parallel=self.engine.parallel_agents,
            resumed=resumed,
        )
        try:
            if self.engine.run_timeout is None:
                outcome = await workflow_fn(ctx, event)
            else:
                outcome = await asyncio.wait_for(
                    workflow_fn(ctx, event), timeout=self.engine.run_timeout
                )
        except asyncio.TimeoutError:
            logger.warning(
                f"Run {run_key} exceeded {self.engine.run_timeout}s; left running for redelivery"
            )
            return WorkflowResult(
                run_key=run_key, status=RunStatus.RUNNING, resumed=resumed, timed_out=True
            )
        except StepFailed as exc:
            await self.repository.mark_run_status(run_key, RunStatus.FAILED, error=str(exc))
            return WorkflowResult(
                run_key=run_key, status=RunStatus.FAILED, error=str(exc), resumed=resumed
            )
        except Exception as exc:
            logger.exception(f"Run {run_key} raised outside a step")
            error = f"{type(exc).__name__}: {exc}"
            await self.repository.mark_run_status(run_key, RunStatus.FAILED, error=error)
            return WorkflowResult(
                run_key=run_key, status=RunStatus.FAILED, error=error, resumed=resumed
            )

        status = RunStatus.COMPLETED if outcome.status == RunStatus.RUNNING else outcome.status
        await self.repository.mark_run_status(
            run_key, status, result=outcome.model_dump(mode="json")
        )
        logger.info(
            f"Run {run_key} finished {status.value} "
            f"(executed={ctx.executed}, replayed={ctx.replayed})"
        )
        return WorkflowResult(
            run_key=run_key,
            status=status,
            outcome=outcome.model_copy(update={"status": status}),
            resumed=resumed,
        )
