"""In-memory transport for tests and the embedded worker."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Deque, Dict, Optional, Tuple

from ..contracts import WorkflowEvent
from .base import BaseTransport

InMemoryRaw = Tuple[str, WorkflowEvent]


class InMemoryTransport(BaseTransport[InMemoryRaw]):
    """Simple in-process queue.

    Events are serialised on publish so consumers never share an object with
    the producer, mirroring what a broker would hand out.
    """

    def __init__(self, poll_interval: float = 0.05) -> None:
        self._queues: Dict[str, Deque[str]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._poll_interval = poll_interval
        self.acked: list[str] = []

    async def publish(self, topic: str, event: WorkflowEvent) -> None:
        """Publish event to in-memory queue."""
        async with self._lock:
            self._queues[topic].append(event.to_json())

    def pending(self, topic: str) -> int:
        """Number of events waiting on ``topic``."""
        return len(self._queues[topic])

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[InMemoryRaw, WorkflowEvent]]:
        """Subscribe to events from topic.

        Args:
            topic: The topic to subscribe to
            lifespan: Maximum time in seconds to keep listening. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break

            raw = None
            async with self._lock:
                if self._queues[topic]:
                    raw = self._queues[topic].popleft()
            if raw is not None:
                event = WorkflowEvent.from_json(raw)
                yield (topic, event), event
                continue

            await asyncio.sleep(self._poll_interval)

    async def ack(self, raw_message: InMemoryRaw) -> None:
        """Record the acknowledgment; the event is already dequeued."""
        self.acked.append(raw_message[1].event_id)

    async def nack(self, raw_message: InMemoryRaw, requeue: bool = True) -> None:
        """Put the event back at the tail of its queue."""
        if not requeue:
            return
        topic, event = raw_message
        await self.publish(topic, event)
