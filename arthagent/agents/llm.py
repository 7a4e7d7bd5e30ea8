"""Language model boundary.

Everything that talks to a model goes through :class:`LanguageModel`: text
in, text out. Structured answers are parsed with :func:`parse_json_output`
and validated by the caller; model output is never trusted as-is.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional, Protocol

from pydantic_ai import Agent

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json|markdown)?\s*|```", re.IGNORECASE)
_OBJECT = re.compile(r"\{[\s\S]*\}")


class LanguageModel(Protocol):
    async def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> str:
        """Return the model's text answer to ``prompt``."""


class PydanticAIModel:
    """:class:`LanguageModel` backed by a pydantic-ai ``Agent``.

    One agent is built lazily per distinct system prompt. ``model`` is any
    pydantic-ai model name, e.g. ``google-gla:gemini-2.0-flash`` or ``test``.
    """

    def __init__(self, model: str) -> None:
        self.model = model
        self._agents: Dict[str, Agent] = {}

    def _agent(self, system_prompt: Optional[str]) -> Agent:
        key = system_prompt or ""
        agent = self._agents.get(key)
        if agent is None:
            agent = Agent(
                self.model,
                output_type=str,
                system_prompt=system_prompt or (),
                defer_model_check=True,
            )
            self._agents[key] = agent
        return agent

    async def complete(self, prompt: str, *, system_prompt: Optional[str] = None) -> str:
        result = await self._agent(system_prompt).run(prompt)
        return result.output


def strip_fences(text: str) -> str:
    return _FENCE.sub("", text).strip()


def parse_json_output(text: Optional[str]) -> Any:
    """Best-effort JSON from a model answer, or ``None``.

    Code fences are removed first; if the remainder is not JSON the first
    ``{...}`` span is tried.
    """
    if not text:
        return None
    cleaned = strip_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    match = _OBJECT.search(cleaned)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.debug("Embedded JSON object could not be parsed")
    return None


async def complete_json(
    llm: LanguageModel, prompt: str, system_prompt: Optional[str] = None
) -> Any:
    """Ask ``llm`` for JSON and return the parsed value (``None`` if unusable)."""
    text = await llm.complete(prompt, system_prompt=system_prompt)
    data = parse_json_output(text)
    if data is None:
        logger.warning(f"Model returned non-JSON output: {text[:200]!r}")
    return data
