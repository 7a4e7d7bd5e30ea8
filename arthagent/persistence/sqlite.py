"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..contracts import RunStatus
from .models import StepRecord, WorkflowRun
from .repository import WorkflowRepository


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_runs (
                run_key TEXT PRIMARY KEY,
                event_type TEXT NOT NULL,
                event TEXT NOT NULL,
                status TEXT NOT NULL,
                result TEXT,
                error TEXT,
                deliveries INTEGER NOT NULL DEFAULT 1,
                created_at TEXT,
                updated_at TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_key TEXT NOT NULL,
                step_name TEXT NOT NULL,
                status TEXT NOT NULL,
                completed INTEGER NOT NULL DEFAULT 0,
                output TEXT,
                attempts INTEGER NOT NULL DEFAULT 0,
                error TEXT,
                started_at TEXT,
                completed_at TEXT,
                UNIQUE (run_key, step_name)
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _step_from_row(r: sqlite3.Row) -> StepRecord:
        return StepRecord(
            id=r["id"],
            run_key=r["run_key"],
            step_name=r["step_name"],
            status=r["status"],
            completed=bool(r["completed"]),
            output=json.loads(r["output"]) if r["output"] is not None else None,
            attempts=r["attempts"],
            error=r["error"],
            started_at=_parse_ts(r["started_at"]),
            completed_at=_parse_ts(r["completed_at"]),
        )

    @staticmethod
    def _run_from_row(row: sqlite3.Row, steps: list[StepRecord]) -> WorkflowRun:
        return WorkflowRun(
            run_key=row["run_key"],
            event_type=row["event_type"],
            event=json.loads(row["event"]),
            status=row["status"],
            result=json.loads(row["result"]) if row["result"] else None,
            error=row["error"],
            deliveries=row["deliveries"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
            steps=steps,
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_run(self, run_key: str, event_type: str, event: dict) -> bool:
        now = _now()
        inserted = await asyncio.to_thread(
            self._execute,
            """
            INSERT OR IGNORE INTO workflow_runs
                (run_key, event_type, event, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            run_key,
            event_type,
            json.dumps(event),
            RunStatus.RUNNING.value,
            now,
            now,
        )
        if inserted:
            return True
        await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_runs SET deliveries = deliveries + 1, updated_at = ? WHERE run_key = ?",
            now,
            run_key,
        )
        return False

    async def mark_run_status(
        self,
        run_key: str,
        status: RunStatus,
        result: dict | None = None,
        error: str | None = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_runs SET status = ?, result = ?, error = ?, updated_at = ? WHERE run_key = ?",
            RunStatus(status).value,
            json.dumps(result) if result is not None else None,
            error,
            _now(),
            run_key,
        )

    async def mark_step_started(self, run_key: str, step_name: str) -> None:
        now = _now()
        inserted = await asyncio.to_thread(
            self._execute,
            """
            INSERT OR IGNORE INTO step_history (run_key, step_name, status, completed, started_at)
            VALUES (?, ?, 'running', 0, ?)
            """,
            run_key,
            step_name,
            now,
        )
        if not inserted:
            await asyncio.to_thread(
                self._execute,
                """
                UPDATE step_history SET status = 'running', started_at = ?
                WHERE run_key = ? AND step_name = ? AND completed = 0
                """,
                now,
                run_key,
                step_name,
            )

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
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR IGNORE INTO step_history (run_key, step_name, status, completed, started_at)
            VALUES (?, ?, 'running', 0, ?)
            """,
            run_key,
            step_name,
            _now(),
        )
        updated = await asyncio.to_thread(
            self._execute,
            """
            UPDATE step_history
            SET status = ?, completed = ?, output = ?, attempts = ?, error = ?, completed_at = ?
            WHERE run_key = ? AND step_name = ? AND completed = 0
            """,
            status,
            1 if completed else 0,
            json.dumps(output),
            attempts,
            error,
            _now(),
            run_key,
            step_name,
        )
        return updated > 0

    async def get_step(self, run_key: str, step_name: str) -> StepRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM step_history WHERE run_key = ? AND step_name = ?",
            run_key,
            step_name,
        )
        return self._step_from_row(row) if row else None

    async def get_run(self, run_key: str) -> WorkflowRun | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM workflow_runs WHERE run_key = ?",
            run_key,
        )
        if not row:
            return None
        steps_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM step_history WHERE run_key = ? ORDER BY id",
            run_key,
        )
        return self._run_from_row(row, [self._step_from_row(r) for r in steps_rows])

    async def list_runs(self) -> list[WorkflowRun]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM workflow_runs ORDER BY created_at",
        )
        return [self._run_from_row(row, []) for row in rows]
