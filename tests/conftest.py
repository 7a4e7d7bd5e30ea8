"""Shared fixtures: a scripted language model and in-memory services."""

import json
from typing import Any, Dict, List, Optional

import pytest

from arthagent.agents.knowledge import StaticKnowledgeBase
from arthagent.config import ArthagentConfig, AuthConfig, EngineConfig, RetryConfig
from arthagent.persistence import InMemoryWorkflowRepository
from arthagent.services import Services
from arthagent.store import InMemoryDocumentStore
from arthagent.transports import InMemoryTransport

TEST_SECRET = "test-secret-with-at-least-32-bytes!!"


class ScriptedLLM:
    """Answers by system prompt; unscripted prompts get ``default``.

    A reply may be text, a JSON-able value (serialised), an exception to raise
    or a callable taking the prompt. Several replies are used one per call,
    the last one repeating.
    """

    def __init__(self, default: str = "") -> None:
        self.default = default
        self.replies: Dict[Optional[str], Any] = {}
        self.calls: List[tuple] = []

    def script(self, system_prompt: Optional[str], *replies: Any) -> "ScriptedLLM":
        self.replies[system_prompt] = list(replies)
        return self

    def calls_for(self, system_prompt: Optional[str]) -> List[str]:
        return [prompt for prompt, system in self.calls if system == system_prompt]

    async def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> str:
        self.calls.append((prompt, system_prompt))
        queue = self.replies.get(system_prompt)
        if queue:
            reply = queue.pop(0) if len(queue) > 1 else queue[0]
        else:
            reply = self.default
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(prompt)
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM(default="General guidance.")


@pytest.fixture
def config() -> ArthagentConfig:
    return ArthagentConfig(
        engine=EngineConfig(
            retry=RetryConfig(max_attempts=2, backoff_base=0.0, jitter=0.0),
            step_timeout=5.0,
            run_timeout=10.0,
            embedded_worker=False,
        ),
        auth=AuthConfig(secret=TEST_SECRET),
    )


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def services(config, llm, store) -> Services:
    return Services.from_config(
        config,
        llm=llm,
        store=store,
        repository=InMemoryWorkflowRepository(),
        transport=InMemoryTransport(poll_interval=0.01),
        knowledge=StaticKnowledgeBase.from_yaml(),
    )
