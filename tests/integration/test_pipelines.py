"""Transaction-ingest and goal-input pipelines."""

import pytest

from arthagent.agents.prompts import GOAL_SYSTEM_PROMPT, TRANSACTION_SYSTEM_PROMPT
from arthagent.constants import GOAL_INPUT_RECEIVED, TRANSACTION_INPUT_RECEIVED
from arthagent.contracts import (
    GoalInputReceived,
    RunStatus,
    TransactionInputReceived,
    WorkflowEvent,
)
from arthagent.execute import EventExecutor
from arthagent.workflows import build_dispatcher


@pytest.fixture
def dispatcher(services):
    return build_dispatcher(services)


def _transaction(text, message_id="t1", source="text"):
    return WorkflowEvent.create(
        TRANSACTION_INPUT_RECEIVED,
        TransactionInputReceived(user_id="u1", message_id=message_id, text=text, source=source),
    )


def _goal(text, message_id="g1"):
    return WorkflowEvent.create(
        GOAL_INPUT_RECEIVED, GoalInputReceived(user_id="u1", message_id=message_id, text=text)
    )


@pytest.mark.asyncio
async def test_transactions_update_balance_once(dispatcher, services, llm):
    llm.script(
        TRANSACTION_SYSTEM_PROMPT,
        {
            "intent": "log_transaction",
            "transactions": [
                {"type": "income", "amount": 60000, "category": "salary", "date": "2026-03-01"},
                {"type": "expense", "amount": "15k", "category": "rent", "date": "2026-03-02"},
            ],
        },
    )

    result = await dispatcher.run(_transaction("salary 60k, rent 15k"))
    again = await dispatcher.run(_transaction("salary 60k, rent 15k"))

    assert result.status == RunStatus.COMPLETED
    assert result.outcome.agents == ["transaction"]
    assert result.outcome.data["balance"] == 45_000
    assert again.resumed
    assert again.outcome == result.outcome
    assert (await services.store.get_profile("u1")).balance == 45_000
    assert len(await services.store.list_transactions("u1")) == 2


@pytest.mark.asyncio
async def test_separate_messages_are_separate_transactions(dispatcher, services, llm):
    llm.script(
        TRANSACTION_SYSTEM_PROMPT,
        {"intent": "log_transaction", "transaction": {"type": "expense", "amount": 500, "category": "food"}},
    )

    await dispatcher.run(_transaction("lunch 500", message_id="t1"))
    await dispatcher.run(_transaction("lunch 500", message_id="t2", source="voice"))

    transactions = await services.store.list_transactions("u1")
    assert sorted(t.transaction_id for t in transactions) == ["txn_t1_0", "txn_t2_0"]
    assert sorted(t.source for t in transactions) == ["text", "voice"]
    assert (await services.store.get_profile("u1")).balance == -1_000


@pytest.mark.asyncio
async def test_unparseable_transaction_awaits_input(dispatcher, llm):
    llm.script(TRANSACTION_SYSTEM_PROMPT, "I am not sure what you mean.")

    result = await dispatcher.run(_transaction("hmm"))

    assert result.status == RunStatus.AWAITING_INPUT
    assert result.outcome.reply.startswith("Please specify: type (income/expense)")


@pytest.mark.asyncio
async def test_transaction_model_outage_fails_run(dispatcher, llm):
    llm.script(TRANSACTION_SYSTEM_PROMPT, ConnectionError("provider unreachable"))

    result = await dispatcher.run(_transaction("salary 60k"))

    assert result.status == RunStatus.FAILED
    assert "invoke-transaction" in result.error
    assert len(llm.calls_for(TRANSACTION_SYSTEM_PROMPT)) == dispatcher.engine.retry.max_attempts


@pytest.mark.asyncio
async def test_goal_is_set_once(dispatcher, services, llm):
    llm.script(
        GOAL_SYSTEM_PROMPT,
        {"goal": {"name": "Emergency fund", "targetAmount": "3L", "timeHorizonMonths": 12}, "missingFields": []},
    )

    result = await dispatcher.run(_goal("I want 3 lakh as an emergency fund within a year"))
    await dispatcher.run(_goal("I want 3 lakh as an emergency fund within a year"))

    assert result.status == RunStatus.COMPLETED
    assert result.outcome.agents == ["goal_setting"]
    assert "Rs.3,00,000 in 12 months" in result.outcome.reply
    user = await services.store.get_user("u1")
    assert [g.goal_id for g in user.goals] == ["goal_g1"]


@pytest.mark.asyncio
async def test_goal_without_amount_awaits_input(dispatcher, services, llm):
    llm.script(GOAL_SYSTEM_PROMPT, {"goal": {"name": "House"}, "missingFields": ["targetAmount"]})

    result = await dispatcher.run(_goal("I want to buy a house"))

    assert result.status == RunStatus.AWAITING_INPUT
    assert result.outcome.reply.endswith("Please specify: targetAmount.")
    assert (await services.store.get_user("u1")).goals == []


@pytest.mark.asyncio
async def test_worker_drains_published_events(dispatcher, services, llm):
    llm.script(
        TRANSACTION_SYSTEM_PROMPT,
        {"intent": "log_transaction", "transaction": {"type": "income", "amount": 1000}},
    )
    await dispatcher.publish(_transaction("got 1000", message_id="t1"))
    await dispatcher.publish(_transaction("got 1000", message_id="t1"))

    executor = EventExecutor(dispatcher)
    await executor.start(lifespan=0.2)

    assert [r.status for r in executor.results] == [RunStatus.COMPLETED, RunStatus.COMPLETED]
    assert [r.resumed for r in executor.results] == [False, True]
    assert (await services.store.get_profile("u1")).balance == 1_000
