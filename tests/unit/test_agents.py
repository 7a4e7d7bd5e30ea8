"""Tests for the specialist sub-agents."""

from datetime import date

import pytest

from arthagent.agents import AgentRegistry, GoalAgent, StaticKnowledgeBase, TransactionAgent
from arthagent.agents.advisors import KnowledgeAdvisor, build_advisors
from arthagent.agents.prompts import GOAL_SYSTEM_PROMPT, TAX_ROLE, TRANSACTION_SYSTEM_PROMPT
from arthagent.agents.transactions import CLARIFICATION, parse_transaction_output
from arthagent.contracts import AgentFailure, AgentKind, AgentReply, AgentRequest

TODAY = date(2026, 3, 15)

LOG_TWO = {
    "intent": "log_transaction",
    "transactions": [
        {"type": "income", "amount": "50k", "category": "salary", "date": "2026-03-01"},
        {"type": "expense", "amount": 1200, "category": "food", "frequency": "Once"},
        {"type": "refund", "amount": 10},
    ],
}


def _request(message, message_id="m1", **kwargs):
    return AgentRequest(message=message, user_id="u1", message_id=message_id, **kwargs)


@pytest.fixture
def kb():
    return StaticKnowledgeBase.from_yaml()


def test_registry_resolves_in_order_and_skips_unserved_kinds(llm, kb):
    registry = AgentRegistry(build_advisors(llm, kb))
    assert len(registry) == 4
    assert AgentKind.TAX_ITR in registry

    resolved = registry.resolve(
        [AgentKind.RETIREMENT_PENSION, AgentKind.GENERAL_QA, AgentKind.TAX_ITR]
    )
    assert [(kind, agent.name) for kind, agent in resolved] == [
        (AgentKind.RETIREMENT_PENSION, "retirement"),
        (AgentKind.TAX_ITR, "tax"),
    ]
    with pytest.raises(ValueError):
        registry.register(KnowledgeAdvisor("tax2", AgentKind.TAX_ITR, "tax", llm, kb, TAX_ROLE))


@pytest.mark.asyncio
async def test_advisor_answers_with_sources(llm, kb):
    llm.script(None, "```markdown\nClaim 80C through ELSS.\n```")
    advisor = KnowledgeAdvisor("tax", AgentKind.TAX_ITR, "tax", llm, kb, TAX_ROLE)

    reply = await advisor.run(_request("How do I save tax under 80C?", profile={"age": 30}))

    assert isinstance(reply, AgentReply)
    assert reply.response == "Claim 80C through ELSS."
    assert reply.sources[0] == "tax-80c"
    prompt = llm.calls[0][0]
    assert "How do I save tax under 80C?" in prompt
    assert '"age": 30' in prompt
    assert "[tax-80c]" in prompt


@pytest.mark.asyncio
async def test_advisor_empty_answer_is_a_failure(llm, kb):
    llm.script(None, "   ")
    advisor = KnowledgeAdvisor("schemes", AgentKind.GOVERNMENT_SCHEMES, "schemes", llm, kb, TAX_ROLE)
    outcome = await advisor.run(_request("PPF?"))
    assert isinstance(outcome, AgentFailure)
    assert outcome.agent == "schemes"


def test_parse_transaction_output_accepts_single_transaction():
    parsed = parse_transaction_output(
        {"intent": "log_transaction", "transaction": {"type": "expense", "amount": "2k", "date": "soon"}}
    )
    assert len(parsed.transactions) == 1
    assert parsed.transactions[0].amount == 2_000
    assert parsed.transactions[0].date is None
    assert parse_transaction_output("nope") is None


@pytest.mark.asyncio
async def test_transaction_agent_records_and_is_idempotent(llm, store):
    llm.script(TRANSACTION_SYSTEM_PROMPT, LOG_TWO)
    agent = TransactionAgent(llm, store, today=lambda: TODAY)

    reply = await agent.run(_request("got salary 50k on 1st, spent 1200 on food"))

    assert isinstance(reply, AgentReply)
    assert reply.response.splitlines()[:3] == [
        "Recorded 2 transaction(s):",
        "- income of Rs.50,000 (salary) on 2026-03-01",
        "- expense of Rs.1,200 (food) on 2026-03-15",
    ]
    assert "1 item(s) could not be understood." in reply.response
    assert reply.response.endswith("Current balance: Rs.48,800")
    ids = [t["transaction_id"] for t in reply.data["recorded"]]
    assert ids == ["txn_m1_0", "txn_m1_1"]

    again = await agent.run(_request("got salary 50k on 1st, spent 1200 on food"))
    assert again.data["recorded"] == []
    assert again.data["duplicates"] == 2
    assert (await store.get_profile("u1")).balance == 48_800


@pytest.mark.asyncio
async def test_transaction_agent_records_source(llm, store):
    llm.script(TRANSACTION_SYSTEM_PROMPT, {"intent": "log_transaction", "transaction": {"type": "expense", "amount": 99}})
    agent = TransactionAgent(llm, store, today=lambda: TODAY)

    await agent.run(_request("receipt", source="receipt_image"))

    [txn] = await store.list_transactions("u1")
    assert txn.source == "receipt_image"
    assert txn.date == TODAY


@pytest.mark.asyncio
async def test_transaction_agent_balance_enquiry(llm, store):
    llm.script(TRANSACTION_SYSTEM_PROMPT, LOG_TWO, {"intent": "get_balance"})
    agent = TransactionAgent(llm, store, today=lambda: TODAY)
    await agent.run(_request("log"))

    reply = await agent.run(_request("what's my balance?", message_id="m2"))

    assert reply.response.startswith("Your current balance is Rs.48,800.")
    assert "In 2026-03 you earned Rs.50,000 and spent Rs.1,200." in reply.response
    assert reply.data["balance"] == 48_800


@pytest.mark.asyncio
async def test_transaction_agent_asks_for_details(llm, store):
    llm.script(TRANSACTION_SYSTEM_PROMPT, {"intent": "log_transaction", "transactions": []})
    outcome = await TransactionAgent(llm, store).run(_request("spent some money"))
    assert isinstance(outcome, AgentFailure)
    assert outcome.clarification == CLARIFICATION
    assert await store.list_transactions("u1") == []


@pytest.mark.asyncio
async def test_goal_agent_adds_goal_once(llm, store):
    llm.script(
        GOAL_SYSTEM_PROMPT,
        {
            "goal": {"name": "Vacation", "targetAmount": "1.5L", "timeHorizonMonths": 10, "priority": "HIGH"},
            "missingFields": [],
        },
    )
    agent = GoalAgent(llm, store)

    reply = await agent.run(_request("Save 1.5 lakh for a vacation in 10 months"))
    again = await agent.run(_request("Save 1.5 lakh for a vacation in 10 months"))

    assert reply.response == (
        'Great! I\'ve set a goal for "Vacation" with a target of Rs.1,50,000 in 10 months. '
        "That is about Rs.15,000 a month."
    )
    assert reply.data["goal"]["priority"] == "high"
    assert reply.data["added"] and not again.data["added"]
    user = await store.get_user("u1")
    assert [g.goal_id for g in user.goals] == ["goal_m1"]


@pytest.mark.asyncio
async def test_goal_agent_asks_for_missing_fields(llm, store):
    llm.script(GOAL_SYSTEM_PROMPT, {"goal": None, "missingFields": ["targetAmount", "timeHorizonMonths"]})
    outcome = await GoalAgent(llm, store).run(_request("I want to buy a car"))

    assert isinstance(outcome, AgentFailure)
    assert outcome.clarification.endswith("Please specify: targetAmount, timeHorizonMonths.")
    assert await store.get_user("u1") is None


@pytest.mark.asyncio
async def test_goal_agent_rejects_invalid_goal(llm, store):
    llm.script(GOAL_SYSTEM_PROMPT, {"goal": {"name": "Car", "targetAmount": -5}})
    outcome = await GoalAgent(llm, store).run(_request("car"))
    assert isinstance(outcome, AgentFailure)
    assert outcome.error == "Could not parse goal"
