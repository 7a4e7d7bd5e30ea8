"""Document store for profiles, transactions and conversations."""

from __future__ import annotations

from typing import Optional

from .inmemory import InMemoryDocumentStore
from .repository import DocumentStore


def get_store(store_url: Optional[str] = None) -> DocumentStore:
    """Build a document store for ``store_url``.

    Any SQLAlchemy async URL (``sqlite+aiosqlite://``,
    ``postgresql+asyncpg://``) selects the SQL store; no URL gives an
    in-memory store.
    """

    if not store_url:
        return InMemoryDocumentStore()
    if store_url.startswith("sqlite+aiosqlite://") or store_url.startswith(
        "postgresql+asyncpg://"
    ):
        from ..db import SQLDocumentStore

        return SQLDocumentStore(store_url)
    raise ValueError(f"Unsupported store backend: {store_url}")


__all__ = ["DocumentStore", "InMemoryDocumentStore", "get_store"]
