"""Event execution worker for arthagent workflows."""

from __future__ import annotations

import logging
from typing import Any, Optional

from .contracts import WorkflowEvent, WorkflowResult
from .dispatch import WorkflowDispatcher
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class EventExecutor:
    """Runs workflows for events pulled from the transport."""

    def __init__(
        self,
        dispatcher: WorkflowDispatcher,
        transport: Optional[BaseTransport] = None,
        topic: Optional[str] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._transport = transport or dispatcher.transport
        if self._transport is None:
            raise ValueError("EventExecutor needs a transport")
        self._topic = topic or dispatcher.topic
        self.results: list[WorkflowResult] = []

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Start listening for workflow events on the configured topic."""
        logger.info(f"Worker listening on {self._topic}")
        async for raw_message, event in self._transport.subscribe(
            self._topic, lifespan=lifespan
        ):
            await self.handle(raw_message, event)

    async def handle(self, raw_message: Any, event: WorkflowEvent) -> WorkflowResult | None:
        """Run one delivery and settle it with the transport.

        The event is acknowledged once its run reached a terminal or waiting
        state. A run left ``running`` by the run timeout is requeued so the
        next delivery resumes it.
        """
        try:
            result = await self._dispatcher.run(event)
        except ValueError as e:
            logger.error(f"Discarding event {event.event_id} ({event.type}): {e}")
            await self._transport.ack(raw_message)
            return None

        if result.timed_out:
            await self._transport.nack(raw_message, requeue=True)
        else:
            await self._transport.ack(raw_message)
        self.results.append(result)
        logger.info(f"Event {event.event_id} handled: run {result.run_key} is {result.status.value}")
        return result
