"""Core message contracts for the arthagent workflow system."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class EventPayload(BaseModel):
    """Base for event data; wire names are camelCase."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    message_id: str = Field(alias="messageId")


class ChatMessageReceived(EventPayload):
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    text: str
    image: Optional[str] = None


class TransactionInputReceived(EventPayload):
    text: str
    source: str = "text"


class GoalInputReceived(EventPayload):
    text: str


class WorkflowEvent(BaseModel):
    """Envelope delivered over the transport to start or resume a run."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    spec_version: str = "1.0"

    @property
    def message_id(self) -> str:
        message_id = self.data.get("messageId") or self.data.get("message_id")
        if not message_id:
            raise ValueError(f"Event {self.event_id} of type {self.type} has no messageId")
        return str(message_id)

    @property
    def idempotency_key(self) -> str:
        """Run identity: repeated deliveries of one message map to one run."""
        return f"{self.type}:{self.message_id}"

    def payload(self, model: Type[PayloadT]) -> PayloadT:
        """Validate ``data`` against ``model``."""
        return model.model_validate(self.data)

    @classmethod
    def create(cls, event_type: str, payload: EventPayload) -> "WorkflowEvent":
        return cls(type=event_type, data=payload.model_dump(by_alias=True, exclude_none=True))

    def to_json(self) -> str:
        """Serialize event to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "WorkflowEvent":
        """Deserialize event from JSON."""
        return cls.model_validate_json(data)


class AgentKind(str, Enum):
    """Closed set of specialised handlers the router may select."""

    INVESTMENT_PLANNING = "investment_planning"
    TAX_ITR = "tax_itr"
    RETIREMENT_PENSION = "retirement_pension"
    GOVERNMENT_SCHEMES = "government_schemes"
    TRANSACTION_TRACKING = "transaction_tracking"
    ANALYSIS = "analysis"
    GENERAL_QA = "general_qa"


class RouteDecision(BaseModel):
    intent: str = "general"
    agents: List[AgentKind] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class AgentRequest(BaseModel):
    """Input handed to a sub-agent: the message plus the caller's profile."""

    message: str
    profile: Dict[str, Any] = Field(default_factory=dict)
    user_id: str
    message_id: Optional[str] = None
    source: str = "text"


class AgentReply(BaseModel):
    outcome: Literal["reply"] = "reply"
    agent: str
    response: str
    sources: List[str] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)


class AgentFailure(BaseModel):
    outcome: Literal["failure"] = "failure"
    agent: str
    error: str
    clarification: Optional[str] = None


AgentOutcome = Annotated[Union[AgentReply, AgentFailure], Field(discriminator="outcome")]


class RunStatus(str, Enum):
    RUNNING = "running"
    AWAITING_INPUT = "awaiting_input"
    COMPLETED = "completed"
    FAILED = "failed"


class RunOutcome(BaseModel):
    """Value returned by a workflow function to close its run."""

    status: RunStatus = RunStatus.COMPLETED
    reply: Optional[str] = None
    agents: List[str] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)


class WorkflowResult(BaseModel):
    """What a caller of :meth:`WorkflowDispatcher.run` gets back."""

    run_key: str
    status: RunStatus
    outcome: Optional[RunOutcome] = None
    error: Optional[str] = None
    resumed: bool = False
    timed_out: bool = False
