"""Process-wide collaborators, built once from configuration."""

from __future__ import annotations

import logging
from typing import Optional

from .agents import (
    AgentRegistry,
    GoalAgent,
    IntentRouter,
    KnowledgeSource,
    LanguageModel,
    PydanticAIModel,
    ReportComposer,
    StaticKnowledgeBase,
    TransactionAgent,
    build_advisors,
)
from .config import ArthagentConfig, load_config
from .persistence import WorkflowRepository, get_repository
from .store import DocumentStore, get_store
from .transports import BaseTransport, get_transport

logger = logging.getLogger(__name__)


class Services:
    """Explicit container for repositories, transport and agents.

    Workflows, the HTTP app and the CLI receive one instance instead of
    reaching for module-level singletons.
    """

    def __init__(
        self,
        config: ArthagentConfig,
        repository: WorkflowRepository,
        store: DocumentStore,
        transport: BaseTransport,
        llm: LanguageModel,
        knowledge: KnowledgeSource,
    ) -> None:
        self.config = config
        self.repository = repository
        self.store = store
        self.transport = transport
        self.llm = llm
        self.knowledge = knowledge
        self.registry = AgentRegistry(
            [*build_advisors(llm, knowledge), TransactionAgent(llm, store)]
        )
        self.router = IntentRouter(llm)
        self.composer = ReportComposer(llm)
        self.goal_agent = GoalAgent(llm, store)

    @classmethod
    def from_config(
        cls,
        config: Optional[ArthagentConfig] = None,
        *,
        llm: Optional[LanguageModel] = None,
        knowledge: Optional[KnowledgeSource] = None,
        store: Optional[DocumentStore] = None,
        repository: Optional[WorkflowRepository] = None,
        transport: Optional[BaseTransport] = None,
    ) -> "Services":
        """Build every collaborator the configuration names.

        Keyword arguments replace the configured collaborator, which is how
        tests plug in fakes.
        """
        config = config or load_config()
        return cls(
            config=config,
            repository=repository or get_repository(config.database_url),
            store=store or get_store(config.store_url),
            transport=transport or get_transport(config.transport),
            llm=llm or PydanticAIModel(config.llm.model),
            knowledge=knowledge or StaticKnowledgeBase.from_yaml(),
        )

    async def start(self) -> None:
        await self.store.init()
        await self.transport.connect()
        logger.info(
            f"Services started (transport={self.config.transport.backend}, "
            f"store={type(self.store).__name__}, repository={type(self.repository).__name__})"
        )

    async def close(self) -> None:
        await self.transport.disconnect()
        await self.store.close()
