"""End-to-end runs of the chat pipeline on in-memory collaborators."""

import pytest

from arthagent.agents.prompts import (
    EXTRACTION_SYSTEM_PROMPT,
    INVESTMENT_ROLE,
    ROUTER_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    TRANSACTION_SYSTEM_PROMPT,
)
from arthagent.constants import CHAT_MESSAGE_RECEIVED
from arthagent.contracts import ChatMessageReceived, RunStatus, WorkflowEvent
from arthagent.models import ConversationMessage, EmploymentType, ProfilePatch, UserPatch
from arthagent.workflows import build_dispatcher

ROUTE_TAX_AND_INVESTMENT = {
    "intent": "tax_planning",
    "agents": ["tax_itr", "investment_planning"],
    "confidence": 0.9,
}


def _chat(text="How can I save tax this year?", message_id="m1", chat_id="c1"):
    return WorkflowEvent.create(
        CHAT_MESSAGE_RECEIVED,
        ChatMessageReceived(user_id="u1", message_id=message_id, chat_id=chat_id, text=text),
    )


async def _seed_known_user(store):
    await store.patch_user("u1", UserPatch(age=32))
    await store.patch_profile(
        "u1",
        ProfilePatch(
            monthly_burn_rate=40_000,
            monthly_income=100_000,
            employment_type=EmploymentType.SALARIED,
        ),
    )


@pytest.fixture
def dispatcher(services):
    return build_dispatcher(services)


@pytest.mark.asyncio
async def test_chat_produces_report_with_expert_advice(dispatcher, services, llm):
    await _seed_known_user(services.store)
    llm.script(EXTRACTION_SYSTEM_PROMPT, {})
    llm.script(ROUTER_SYSTEM_PROMPT, ROUTE_TAX_AND_INVESTMENT)
    llm.script(SUMMARY_SYSTEM_PROMPT, "You are in good shape overall.")

    result = await dispatcher.run(_chat())

    assert result.status == RunStatus.COMPLETED
    outcome = result.outcome
    assert outcome.agents == ["tax", "investment"]
    assert outcome.data["intent"] == "tax_planning"
    assert outcome.data["unavailable"] == []
    assert "## Executive Summary\n\nYou are in good shape overall." in outcome.reply
    assert "### Tax Agent" in outcome.reply
    assert "### Investment Agent" in outcome.reply
    assert "Monthly Income: Rs.1,00,000" in outcome.reply

    conversation = await services.store.get_conversation("c1")
    assert [(m.message_id, m.sender) for m in conversation.messages] == [
        ("m1", "user"),
        ("m1-response", "assistant"),
    ]
    assert conversation.messages[1].agents_involved == ["tax", "investment"]
    assert conversation.title == "How can I save tax this year?"


@pytest.mark.asyncio
async def test_spending_message_is_recorded_once_through_chat(dispatcher, services, llm):
    await _seed_known_user(services.store)
    llm.script(EXTRACTION_SYSTEM_PROMPT, {})
    llm.script(
        ROUTER_SYSTEM_PROMPT,
        {"intent": "log_transaction", "agents": ["transaction_tracking"], "confidence": 0.95},
    )
    llm.script(
        TRANSACTION_SYSTEM_PROMPT,
        {
            "intent": "log_transaction",
            "transaction": {"type": "expense", "amount": 500, "category": "groceries"},
        },
    )
    event = _chat("I spent 500 on groceries")

    first = await dispatcher.run(event)
    second = await dispatcher.run(event)

    assert first.status == RunStatus.COMPLETED
    assert first.outcome.agents == ["transaction"]
    assert second.outcome.reply == first.outcome.reply
    transactions = await services.store.list_transactions("u1")
    assert [(t.type.value, t.amount) for t in transactions] == [("expense", 500)]
    assert (await services.store.get_profile("u1")).balance == -500
    assert len(llm.calls_for(TRANSACTION_SYSTEM_PROMPT)) == 1


@pytest.mark.asyncio
async def test_redelivery_returns_stored_result_without_side_effects(dispatcher, services, llm):
    await _seed_known_user(services.store)
    llm.script(ROUTER_SYSTEM_PROMPT, ROUTE_TAX_AND_INVESTMENT)

    first = await dispatcher.run(_chat())
    calls = len(llm.calls)
    second = await dispatcher.run(_chat())

    assert second.resumed
    assert second.outcome.reply == first.outcome.reply
    assert len(llm.calls) == calls
    conversation = await services.store.get_conversation("c1")
    assert len(conversation.messages) == 2
    run = await dispatcher.get_run(first.run_key)
    assert run.deliveries == 2


@pytest.mark.asyncio
async def test_missing_critical_facts_ask_for_clarification(dispatcher, services, llm):
    llm.script(EXTRACTION_SYSTEM_PROMPT, {"monthlyExpenses": "35k"})

    result = await dispatcher.run(_chat("Am I saving enough?"))

    assert result.status == RunStatus.AWAITING_INPUT
    assert result.outcome.data["missingFields"] == ["age", "employmentType"]
    reply = result.outcome.reply
    assert reply.startswith("To give you accurate advice I need a few more details:")
    assert "1. What is your age?" in reply
    assert llm.calls_for(ROUTER_SYSTEM_PROMPT) == []

    profile = await services.store.get_profile("u1")
    assert profile.monthly_burn_rate == 35_000
    conversation = await services.store.get_conversation("c1")
    assert conversation.messages[-1].text == reply


@pytest.mark.asyncio
async def test_facts_from_the_message_complete_the_profile(dispatcher, services, llm):
    llm.script(
        EXTRACTION_SYSTEM_PROMPT,
        {"age": 29, "monthlyExpenses": 30000, "monthlyIncome": "75k", "employmentType": "salaried"},
    )

    result = await dispatcher.run(_chat("I'm 29, salaried, earn 75k and spend 30k. Advice?"))

    assert result.status == RunStatus.COMPLETED
    assert (await services.store.get_user("u1")).age == 29
    profile = await services.store.get_profile("u1")
    assert profile.monthly_income == 75_000
    assert profile.employment_type == EmploymentType.SALARIED
    assert result.outcome.agents == []


@pytest.mark.asyncio
async def test_failing_sub_agent_is_reported_unavailable(dispatcher, services, llm):
    await _seed_known_user(services.store)
    llm.script(ROUTER_SYSTEM_PROMPT, ROUTE_TAX_AND_INVESTMENT)

    def advisor(prompt):
        if INVESTMENT_ROLE in prompt:
            raise RuntimeError("model refused")
        return "Use the new regime."

    llm.script(None, advisor)

    result = await dispatcher.run(_chat())

    assert result.status == RunStatus.COMPLETED
    assert result.outcome.agents == ["tax"]
    assert result.outcome.data["unavailable"] == ["investment"]
    assert "- agent investment unavailable, advice from it is not included" in result.outcome.reply
    step = (await dispatcher.get_run(result.run_key)).step("invoke-investment_planning")
    assert step.status == "failed"
    assert step.completed


@pytest.mark.asyncio
async def test_degraded_classifier_still_reports(dispatcher, services, llm):
    await _seed_known_user(services.store)
    llm.script(ROUTER_SYSTEM_PROMPT, ValueError("classifier down"))
    llm.script(EXTRACTION_SYSTEM_PROMPT, ValueError("extractor down"))

    result = await dispatcher.run(_chat())

    assert result.status == RunStatus.COMPLETED
    assert result.outcome.agents == []
    assert result.outcome.data["intent"] == "general"
    assert "# Personal Finance Report" in result.outcome.reply


@pytest.mark.asyncio
async def test_failed_required_step_fails_run_then_resumes(dispatcher, services, llm, monkeypatch):
    await _seed_known_user(services.store)
    llm.script(ROUTER_SYSTEM_PROMPT, ROUTE_TAX_AND_INVESTMENT)
    store = services.store
    real_append = store.append_message

    async def broken_append(chat_id, user_id, message, title=None):
        if message.sender == "assistant":
            raise RuntimeError("disk full")
        return await real_append(chat_id, user_id, message, title=title)

    monkeypatch.setattr(store, "append_message", broken_append)
    failed = await dispatcher.run(_chat())

    assert failed.status == RunStatus.FAILED
    assert "store-response" in failed.error
    run = await dispatcher.get_run(failed.run_key)
    assert run.status == RunStatus.FAILED
    calls = len(llm.calls)

    monkeypatch.setattr(store, "append_message", real_append)
    resumed = await dispatcher.run(_chat())

    assert resumed.status == RunStatus.COMPLETED
    assert resumed.resumed
    assert len(llm.calls) == calls
    conversation = await store.get_conversation("c1")
    assert [m.sender for m in conversation.messages] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_message_for_another_users_chat_fails_without_writing(dispatcher, services, llm):
    await services.store.append_message(
        "c1", "alice", ConversationMessage(message_id="a1", sender="user", text="private")
    )

    result = await dispatcher.run(_chat())

    assert result.status == RunStatus.FAILED
    assert "store-user-message" in result.error
    assert llm.calls == []
    conversation = await services.store.get_conversation("c1")
    assert [m.message_id for m in conversation.messages] == ["a1"]
