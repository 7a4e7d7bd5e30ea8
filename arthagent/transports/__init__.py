"""Transport factory and initialization."""

from __future__ import annotations

from typing import Optional

from ..config import TransportConfig
from .base import BaseTransport
from .inmemory import InMemoryTransport


def get_transport(config: Optional[TransportConfig] = None) -> BaseTransport:
    """Factory function to get the configured transport."""

    config = config or TransportConfig()
    backend = config.backend.lower()

    if backend == "inmemory":
        return InMemoryTransport()
    elif backend == "redis":
        from .redis import RedisTransport

        redis_conf = config.redis
        return RedisTransport(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
        )
    else:
        raise ValueError(f"Unsupported transport backend: {backend}")


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport"]
