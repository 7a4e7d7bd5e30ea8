"""arthagent: durable conversational financial-advisory workflows."""

from .config import ArthagentConfig, load_config
from .contracts import (
    AgentFailure,
    AgentKind,
    AgentReply,
    AgentRequest,
    RunOutcome,
    RunStatus,
    WorkflowEvent,
    WorkflowResult,
)
from .dispatch import WorkflowDispatcher
from .execute import EventExecutor
from .persistence import get_repository
from .store import get_store
from .transports import get_transport
from .workflow import WorkflowContext

__version__ = "0.1.0"

__all__ = [
    "AgentFailure",
    "AgentKind",
    "AgentReply",
    "AgentRequest",
    "ArthagentConfig",
    "EventExecutor",
    "RunOutcome",
    "RunStatus",
    "WorkflowContext",
    "WorkflowDispatcher",
    "WorkflowEvent",
    "WorkflowResult",
    "get_repository",
    "get_store",
    "get_transport",
    "load_config",
]
