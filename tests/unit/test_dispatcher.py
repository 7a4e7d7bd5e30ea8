"""Tests for run creation, resumption and delivery settlement."""

import asyncio

import pytest

from arthagent.config import EngineConfig, RetryConfig
from arthagent.contracts import RunOutcome, RunStatus, WorkflowEvent
from arthagent.dispatch import WorkflowDispatcher
from arthagent.errors import TransientError
from arthagent.execute import EventExecutor
from arthagent.persistence import InMemoryWorkflowRepository
from arthagent.transports import InMemoryTransport

EVENT_TYPE = "test.event"


def _event(message_id="m1"):
    return WorkflowEvent(type=EVENT_TYPE, data={"userId": "u1", "messageId": message_id})


def _dispatcher(**engine):
    engine.setdefault("retry", RetryConfig(max_attempts=2, backoff_base=0.0, jitter=0.0))
    return WorkflowDispatcher(
        InMemoryWorkflowRepository(),
        InMemoryTransport(poll_interval=0.01),
        EngineConfig(**engine),
    )


def test_register_rejects_duplicates():
    dispatcher = _dispatcher()

    @dispatcher.register(EVENT_TYPE)
    async def first(ctx, event):
        return RunOutcome()

    with pytest.raises(ValueError):
        dispatcher.register(EVENT_TYPE, first)
    assert dispatcher.event_types == [EVENT_TYPE]


@pytest.mark.asyncio
async def test_unknown_event_type_is_rejected():
    dispatcher = _dispatcher()
    with pytest.raises(ValueError):
        await dispatcher.run(_event())
    with pytest.raises(ValueError):
        await dispatcher.publish(_event())


@pytest.mark.asyncio
async def test_settled_run_returns_stored_outcome():
    dispatcher = _dispatcher()
    calls = []

    async def side_effect():
        calls.append(1)
        return len(calls)

    @dispatcher.register(EVENT_TYPE)
    async def workflow(ctx, event):
        n = await ctx.step("side-effect", side_effect)
        return RunOutcome(reply=f"done {n}")

    first = await dispatcher.run(_event())
    second = await dispatcher.run(_event())

    assert first.status == second.status == RunStatus.COMPLETED
    assert second.resumed
    assert second.outcome.reply == first.outcome.reply == "done 1"
    assert calls == [1]
    run = await dispatcher.get_run(first.run_key)
    assert run.deliveries == 2


@pytest.mark.asyncio
async def test_concurrent_deliveries_execute_steps_once():
    dispatcher = _dispatcher()
    calls = []

    async def slow():
        calls.append(1)
        await asyncio.sleep(0.02)
        return "ok"

    @dispatcher.register(EVENT_TYPE)
    async def workflow(ctx, event):
        return RunOutcome(reply=await ctx.step("slow", slow))

    results = await asyncio.gather(dispatcher.run(_event()), dispatcher.run(_event()))

    assert [r.outcome.reply for r in results] == ["ok", "ok"]
    assert len(calls) == 1
    assert sorted(r.resumed for r in results) == [False, True]


@pytest.mark.asyncio
async def test_failed_required_step_fails_run_and_resumes_on_redelivery():
    dispatcher = _dispatcher()
    outcomes = [TransientError("down", status_code=503)] * 2 + ["recovered"]
    done = []

    async def flaky():
        outcome = outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def before():
        done.append("before")
        return True

    @dispatcher.register(EVENT_TYPE)
    async def workflow(ctx, event):
        await ctx.step("before", before)
        return RunOutcome(reply=await ctx.step("flaky", flaky))

    failed = await dispatcher.run(_event())
    assert failed.status == RunStatus.FAILED
    assert "flaky" in failed.error

    retried = await dispatcher.run(_event())
    assert retried.status == RunStatus.COMPLETED
    assert retried.outcome.reply == "recovered"
    assert done == ["before"]


@pytest.mark.asyncio
async def test_error_outside_steps_fails_run():
    dispatcher = _dispatcher()

    @dispatcher.register(EVENT_TYPE)
    async def workflow(ctx, event):
        raise KeyError("missing")

    result = await dispatcher.run(_event())
    assert result.status == RunStatus.FAILED
    assert result.error.startswith("KeyError")
    run = await dispatcher.get_run(result.run_key)
    assert run.status == RunStatus.FAILED


@pytest.mark.asyncio
async def test_run_timeout_leaves_run_running():
    dispatcher = _dispatcher(run_timeout=0.05)

    @dispatcher.register(EVENT_TYPE)
    async def workflow(ctx, event):
        await asyncio.sleep(1)
        return RunOutcome()

    result = await dispatcher.run(_event())
    assert result.timed_out
    assert result.status == RunStatus.RUNNING
    run = await dispatcher.get_run(result.run_key)
    assert run.status == RunStatus.RUNNING
    assert not run.is_settled


@pytest.mark.asyncio
async def test_awaiting_input_is_settled():
    dispatcher = _dispatcher()

    @dispatcher.register(EVENT_TYPE)
    async def workflow(ctx, event):
        return RunOutcome(status=RunStatus.AWAITING_INPUT, reply="How old are you?")

    first = await dispatcher.run(_event())
    second = await dispatcher.run(_event())
    assert first.status == RunStatus.AWAITING_INPUT
    assert second.resumed
    assert second.outcome.reply == "How old are you?"


@pytest.mark.asyncio
async def test_executor_acks_finished_runs():
    dispatcher = _dispatcher()

    @dispatcher.register(EVENT_TYPE)
    async def workflow(ctx, event):
        return RunOutcome(reply="hi")

    event = _event()
    await dispatcher.publish(event)
    executor = EventExecutor(dispatcher)
    await executor.start(lifespan=0.1)

    assert [r.status for r in executor.results] == [RunStatus.COMPLETED]
    assert dispatcher.transport.acked == [event.event_id]
    assert dispatcher.transport.pending(dispatcher.topic) == 0


@pytest.mark.asyncio
async def test_executor_requeues_timed_out_runs():
    dispatcher = _dispatcher(run_timeout=0.05)
    attempts = []

    @dispatcher.register(EVENT_TYPE)
    async def workflow(ctx, event):
        attempts.append(1)
        if len(attempts) == 1:
            await asyncio.sleep(1)
        return RunOutcome(reply="second time lucky")

    await dispatcher.publish(_event())
    executor = EventExecutor(dispatcher)
    await executor.start(lifespan=0.3)

    assert [r.timed_out for r in executor.results] == [True, False]
    assert executor.results[-1].outcome.reply == "second time lucky"
    assert executor.results[-1].resumed


@pytest.mark.asyncio
async def test_executor_discards_unknown_events():
    dispatcher = _dispatcher()
    transport = dispatcher.transport
    event = WorkflowEvent(type="unknown", data={"messageId": "x"})
    await transport.publish(dispatcher.topic, event)

    executor = EventExecutor(dispatcher)
    await executor.start(lifespan=0.1)

    assert executor.results == []
    assert transport.acked == [event.event_id]


def test_executor_requires_transport():
    with pytest.raises(ValueError):
        EventExecutor(WorkflowDispatcher(InMemoryWorkflowRepository()))
