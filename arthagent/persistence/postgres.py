"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import asyncpg

from ..contracts import RunStatus
from .models import StepRecord, WorkflowRun
from .repository import WorkflowRepository


def _loads(value: Any) -> Any:
    if value is None:
        return None
    return json.loads(value) if isinstance(value, str) else value


def _affected(status: str) -> int:
    """Row count from an asyncpg command tag such as ``UPDATE 1``."""
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_runs (
                run_key TEXT PRIMARY KEY,
                event_type TEXT NOT NULL,
                event JSONB NOT NULL,
                status TEXT NOT NULL,
                result JSONB,
                error TEXT,
                deliveries INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMPTZ,
                updated_at TIMESTAMPTZ
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_history (
                id SERIAL PRIMARY KEY,
                run_key TEXT NOT NULL,
                step_name TEXT NOT NULL,
                status TEXT NOT NULL,
                completed BOOLEAN NOT NULL DEFAULT FALSE,
                output JSONB,
                attempts INTEGER NOT NULL DEFAULT 0,
                error TEXT,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                UNIQUE (run_key, step_name)
            )
            """
        )

    @staticmethod
    def _step_from_row(r: asyncpg.Record) -> StepRecord:
        return StepRecord(
            id=r["id"],
            run_key=r["run_key"],
            step_name=r["step_name"],
            status=r["status"],
            completed=r["completed"],
            output=_loads(r["output"]),
            attempts=r["attempts"],
            error=r["error"],
            started_at=r["started_at"],
            completed_at=r["completed_at"],
        )

    @staticmethod
    def _run_from_row(row: asyncpg.Record, steps: list[StepRecord]) -> WorkflowRun:
        return WorkflowRun(
            run_key=row["run_key"],
            event_type=row["event_type"],
            event=_loads(row["event"]),
            status=row["status"],
            result=_loads(row["result"]),
            error=row["error"],
            deliveries=row["deliveries"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            steps=steps,
        )

    # ------------------------------------------------------------------
    async def create_run(self, run_key: str, event_type: str, event: dict) -> bool:
        now = datetime.now(timezone.utc)
        conn = await self._connect()
        try:
            status = await conn.execute(
                """
                INSERT INTO workflow_runs (run_key, event_type, event, status, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $5)
                ON CONFLICT (run_key) DO NOTHING
                """,
                run_key,
                event_type,
                json.dumps(event),
                RunStatus.RUNNING.value,
                now,
            )
            if _affected(status):
                return True
            await conn.execute(
                "UPDATE workflow_runs SET deliveries = deliveries + 1, updated_at = $1 WHERE run_key = $2",
                now,
                run_key,
            )
            return False
        finally:
            await conn.close()

    async def mark_run_status(
        self,
        run_key: str,
        status: RunStatus,
        result: dict | None = None,
        error: str | None = None,
    ) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                UPDATE workflow_runs SET status = $1, result = $2, error = $3, updated_at = $4
                WHERE run_key = $5
                """,
                RunStatus(status).value,
                json.dumps(result) if result is not None else None,
                error,
                datetime.now(timezone.utc),
                run_key,
            )
        finally:
            await conn.close()

    async def mark_step_started(self, run_key: str, step_name: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO step_history (run_key, step_name, status, completed, started_at)
                VALUES ($1, $2, 'running', FALSE, $3)
                ON CONFLICT (run_key, step_name) DO UPDATE
                SET status = 'running', started_at = EXCLUDED.started_at
                WHERE step_history.completed = FALSE
                """,
                run_key,
                step_name,
                datetime.now(timezone.utc),
            )
        finally:
            await conn.close()

    async def mark_step_completed(
        self,
        run_key: str,
        step_name: str,
        status: str,
        output: Any = None,
        completed: bool = True,
        attempts: int = 1,
        error: str | None = None,
    ) -> bool:
        now = datetime.now(timezone.utc)
        conn = await self._connect()
        try:
            result = await conn.execute(
                """
                INSERT INTO step_history
                    (run_key, step_name, status, completed, output, attempts, error, started_at, completed_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $8)
                ON CONFLICT (run_key, step_name) DO UPDATE
                SET status = EXCLUDED.status,
                    completed = EXCLUDED.completed,
                    output = EXCLUDED.output,
                    attempts = EXCLUDED.attempts,
                    error = EXCLUDED.error,
                    completed_at = EXCLUDED.completed_at
                WHERE step_history.completed = FALSE
                """,
                run_key,
                step_name,
                status,
                completed,
                json.dumps(output),
                attempts,
                error,
                now,
            )
        finally:
            await conn.close()
        return _affected(result) > 0

    async def get_step(self, run_key: str, step_name: str) -> StepRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM step_history WHERE run_key = $1 AND step_name = $2",
                run_key,
                step_name,
            )
        finally:
            await conn.close()
        return self._step_from_row(row) if row else None

    async def get_run(self, run_key: str) -> WorkflowRun | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT * FROM workflow_runs WHERE run_key = $1",
                run_key,
            )
            if not row:
                return None
            steps_rows = await conn.fetch(
                "SELECT * FROM step_history WHERE run_key = $1 ORDER BY id",
                run_key,
            )
        finally:
            await conn.close()
        return self._run_from_row(row, [self._step_from_row(r) for r in steps_rows])

    async def list_runs(self) -> list[WorkflowRun]:
        conn = await self._connect()
        try:
            rows = await conn.fetch("SELECT * FROM workflow_runs ORDER BY created_at")
        finally:
            await conn.close()
        return [self._run_from_row(r, []) for r in rows]
