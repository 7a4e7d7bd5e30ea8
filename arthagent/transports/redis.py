"""Redis transport for cross-process event delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Tuple

from pydantic import ValidationError

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from ..contracts import WorkflowEvent
from .base import BaseTransport

logger = logging.getLogger(__name__)

RedisRaw = Tuple[str, str]


class RedisTransport(BaseTransport[RedisRaw]):
    """Redis list used as a work queue (LPUSH / BRPOP)."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "arthagent",
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisTransport")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self._redis: Optional[Any] = None

    def _queue_name(self, topic: str) -> str:
        return f"{self.prefix}:{topic}"

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, event: WorkflowEvent) -> None:
        """Push event onto the Redis list for ``topic``."""
        if not self._redis:
            await self.connect()
        await self._redis.lpush(self._queue_name(topic), event.to_json())

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RedisRaw, WorkflowEvent]]:
        """Subscribe to events from the Redis queue."""
        if not self._redis:
            await self.connect()

        queue_name = self._queue_name(topic)
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break

            result = await self._redis.brpop(queue_name, timeout=1)
            if result:
                _, event_json = result
                try:
                    event = WorkflowEvent.from_json(event_json)
                except ValidationError as e:
                    logger.error(f"Dropping malformed event on {queue_name}: {e}")
                    continue
                yield (queue_name, event_json), event

            await asyncio.sleep(0.01)

    async def ack(self, raw_message: RedisRaw) -> None:
        """No-op acknowledgment (the event was already popped)."""
        pass

    async def nack(self, raw_message: RedisRaw, requeue: bool = True) -> None:
        """Push the event back so another delivery picks it up."""
        if not requeue:
            return
        if not self._redis:
            await self.connect()
        queue_name, event_json = raw_message
        await self._redis.lpush(queue_name, event_json)
