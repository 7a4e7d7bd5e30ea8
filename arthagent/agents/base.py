"""Sub-agent contract and the registry the chat pipeline resolves against."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

from ..contracts import AgentFailure, AgentKind, AgentReply, AgentRequest

logger = logging.getLogger(__name__)


class SubAgent(ABC):
    """A specialised handler invoked through ``WorkflowContext.invoke``.

    ``run`` returns an :class:`AgentReply` or an :class:`AgentFailure`.
    Raising is also allowed; the invoking step turns the exception into a
    recorded failure.
    """

    name: str
    kind: AgentKind

    @abstractmethod
    async def run(self, request: AgentRequest) -> AgentReply | AgentFailure:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, kind={self.kind.value!r})"


class AgentRegistry:
    """Maps each :class:`AgentKind` to at most one sub-agent."""

    def __init__(self, agents: Iterable[SubAgent] = ()) -> None:
        self._agents: Dict[AgentKind, SubAgent] = {}
        for agent in agents:
            self.register(agent)

    def register(self, agent: SubAgent) -> SubAgent:
        if agent.kind in self._agents:
            raise ValueError(f"Agent kind {agent.kind.value} already registered")
        self._agents[agent.kind] = agent
        logger.debug(f"Registered sub-agent {agent.name} for {agent.kind.value}")
        return agent

    def get(self, kind: AgentKind) -> Optional[SubAgent]:
        return self._agents.get(kind)

    def __contains__(self, kind: object) -> bool:
        return kind in self._agents

    def __len__(self) -> int:
        return len(self._agents)

    @property
    def kinds(self) -> List[AgentKind]:
        return list(self._agents)

    def resolve(self, kinds: Iterable[AgentKind]) -> List[Tuple[AgentKind, SubAgent]]:
        """Registered agents for ``kinds`` in the order given.

        Kinds without a sub-agent (``analysis``, ``general_qa``) are answered
        by the report and silently skipped.
        """
        resolved = []
        for kind in kinds:
            agent = self._agents.get(kind)
            if agent is not None:
                resolved.append((kind, agent))
        return resolved
