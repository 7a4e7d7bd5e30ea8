"""Durable step execution for arthagent workflows.

A workflow function receives a :class:`WorkflowContext` and routes every side
effect through :meth:`WorkflowContext.step` or :meth:`WorkflowContext.invoke`.
Each step is keyed by its name within the run; once a step has a completed
record its stored result is returned on every later delivery instead of
running the function again.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from pydantic import TypeAdapter
from pydantic_core import to_jsonable_python

from .config import RetryConfig
from .contracts import (
    AgentFailure,
    AgentOutcome,
    AgentReply,
    AgentRequest,
    RunOutcome,
    WorkflowEvent,
)
from .errors import StepFailed
from .persistence import WorkflowRepository
from .utils.retry import is_transient, schedule_retry

logger = logging.getLogger(__name__)

WorkflowFn = Callable[["WorkflowContext", WorkflowEvent], Awaitable[RunOutcome]]


class WorkflowContext:
    """Per-delivery view of a run used by workflow functions."""

    def __init__(
        self,
        run_key: str,
        event: WorkflowEvent,
        repository: WorkflowRepository,
        retry: Optional[RetryConfig] = None,
        step_timeout: Optional[float] = None,
        parallel: bool = True,
        resumed: bool = False,
    ) -> None:
        self.run_key = run_key
        self.event = event
        self.resumed = resumed
        self.parallel = parallel
        self._repository = repository
        self._retry = retry or RetryConfig()
        self._step_timeout = step_timeout
        self._seen: set[str] = set()
        self.executed: list[str] = []
        self.replayed: list[str] = []

    # ------------------------------------------------------------------
    async def step(
        self,
        name: str,
        fn: Callable[..., Any],
        *args: Any,
        required: bool = True,
        default: Any = None,
        default_factory: Optional[Callable[[BaseException], Any]] = None,
        result_type: Any = None,
        **kwargs: Any,
    ) -> Any:
        """Run ``fn`` once for this run and memoize its result under ``name``.

        Transient failures are retried with backoff. When attempts run out a
        required step raises :class:`StepFailed`; a non-required step records
        the failure and yields ``default`` (or ``default_factory(exc)``).
        """
        if name in self._seen:
            raise ValueError(f"Step name '{name}' used twice in run {self.run_key}")
        self._seen.add(name)

        record = await self._repository.get_step(self.run_key, name)
        if record is not None and record.completed:
            logger.debug(f"Replaying step {name} for run {self.run_key}")
            self.replayed.append(name)
            return self._restore(record.output, result_type)

        await self._repository.mark_step_started(self.run_key, name)
        attempts = 0
        while True:
            attempts += 1
            try:
                value = await self._call(fn, args, kwargs)
                break
            except Exception as exc:
                if is_transient(exc) and attempts < self._retry.max_attempts:
                    logger.warning(
                        f"Step {name} of run {self.run_key} failed transiently "
                        f"(attempt {attempts}/{self._retry.max_attempts}): {exc!r}"
                    )
                    await schedule_retry(
                        attempts,
                        base=self._retry.backoff_base,
                        jitter=self._retry.jitter,
                        max_delay=self._retry.max_delay,
                    )
                    continue
                return await self._fail(
                    name, exc, attempts, required, default, default_factory, result_type
                )

        payload = to_jsonable_python(value)
        stored = await self._repository.mark_step_completed(
            self.run_key, name, status="completed", output=payload, attempts=attempts
        )
        if not stored:
            # Another delivery completed the step first; its result wins.
            record = await self._repository.get_step(self.run_key, name)
            payload = record.output if record is not None else payload
        self.executed.append(name)
        logger.info(f"Step {name} completed for run {self.run_key} after {attempts} attempt(s)")
        return self._restore(payload, result_type)

    async def invoke(
        self,
        name: str,
        agent: Any,
        request: AgentRequest,
        required: bool = False,
    ) -> AgentReply | AgentFailure:
        """Invoke a sub-agent as a step.

        Unless ``required``, an exhausted invocation is recorded as an
        :class:`AgentFailure` so the rest of the run proceeds.
        """
        agent_name = str(getattr(agent, "name", name))

        def failure(exc: BaseException) -> AgentFailure:
            return AgentFailure(agent=agent_name, error=str(exc) or type(exc).__name__)

        return await self.step(
            name,
            agent.run,
            request,
            required=required,
            default_factory=failure,
            result_type=AgentOutcome,
        )

    async def gather(self, *aws: Awaitable[Any]) -> list[Any]:
        """Await independent steps, concurrently when the engine allows it."""
        if self.parallel:
            return list(await asyncio.gather(*aws))
        results = []
        for aw in aws:
            results.append(await aw)
        return results

    # ------------------------------------------------------------------
    async def _call(self, fn: Callable[..., Any], args: Iterable[Any], kwargs: dict) -> Any:
        async def _run() -> Any:
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

        if self._step_timeout is None:
            return await _run()
        return await asyncio.wait_for(_run(), timeout=self._step_timeout)

    async def _fail(
        self,
        name: str,
        exc: Exception,
        attempts: int,
        required: bool,
        default: Any,
        default_factory: Optional[Callable[[BaseException], Any]],
        result_type: Any,
    ) -> Any:
        error = f"{type(exc).__name__}: {exc}"
        if required:
            logger.error(f"Required step {name} of run {self.run_key} failed: {error}")
            await self._repository.mark_step_completed(
                self.run_key,
                name,
                status="failed",
                completed=False,
                attempts=attempts,
                error=error,
            )
            raise StepFailed(name, exc, attempts) from exc

        logger.warning(f"Step {name} of run {self.run_key} degraded after failure: {error}")
        fallback = default_factory(exc) if default_factory is not None else default
        payload = to_jsonable_python(fallback)
        await self._repository.mark_step_completed(
            self.run_key,
            name,
            status="failed",
            output=payload,
            completed=True,
            attempts=attempts,
            error=error,
        )
        return self._restore(payload, result_type)

    @staticmethod
    def _restore(payload: Any, result_type: Any) -> Any:
        if result_type is None or payload is None:
            return payload
        return TypeAdapter(result_type).validate_python(payload)
