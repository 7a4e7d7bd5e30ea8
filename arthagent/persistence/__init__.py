"""Persistence layer for arthagent workflow runs."""

from __future__ import annotations

from typing import Optional

from .inmemory import InMemoryWorkflowRepository
from .models import StepRecord, WorkflowRun
from .repository import WorkflowRepository
from .sqlite import SQLiteWorkflowRepository


def get_repository(database_url: Optional[str] = None) -> WorkflowRepository:
    """Build a workflow repository for ``database_url``.

    ``sqlite://<path>`` selects SQLite, ``postgres://`` or ``postgresql://``
    selects PostgreSQL. When no database is configured, an in-memory
    repository is returned. Callers own the returned instance.
    """

    if not database_url:
        return InMemoryWorkflowRepository()

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        return SQLiteWorkflowRepository(path)
    if database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        from .postgres import PostgresWorkflowRepository

        return PostgresWorkflowRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


__all__ = [
    "StepRecord",
    "WorkflowRun",
    "WorkflowRepository",
    "SQLiteWorkflowRepository",
    "InMemoryWorkflowRepository",
    "get_repository",
]
