"""Pipelines registered with the dispatcher."""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING

from ..constants import (
    CHAT_MESSAGE_RECEIVED,
    GOAL_INPUT_RECEIVED,
    TRANSACTION_INPUT_RECEIVED,
)
from ..dispatch import WorkflowDispatcher
from .chat import chat_workflow
from .goals import goal_workflow
from .transactions import transaction_workflow

if TYPE_CHECKING:
    from ..services import Services


def build_dispatcher(services: "Services") -> WorkflowDispatcher:
    """Dispatcher with every pipeline bound to ``services``."""
    dispatcher = WorkflowDispatcher(
        services.repository,
        transport=services.transport,
        engine=services.config.engine,
    )
    dispatcher.register(CHAT_MESSAGE_RECEIVED, functools.partial(chat_workflow, services=services))
    dispatcher.register(
        TRANSACTION_INPUT_RECEIVED, functools.partial(transaction_workflow, services=services)
    )
    dispatcher.register(GOAL_INPUT_RECEIVED, functools.partial(goal_workflow, services=services))
    return dispatcher


__all__ = ["build_dispatcher", "chat_workflow", "goal_workflow", "transaction_workflow"]
