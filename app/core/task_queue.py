"""Durable job queue for CEAC runs: retries, dead-letter, TTL and idempotency.

Several worker loops share one SQLite table. A task is claimed under the
queue lock, so each task runs in exactly one loop at a time; tasks found in
``running`` at startup belonged to a dead process and are queued again.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from threading import Lock
from typing import Any, Awaitable, Callable, Iterator

from app.core.migrations import apply_migrations

LOGGER = logging.getLogger(__name__)

TaskHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class TaskStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


DUE_TASK_STATUSES = (TaskStatus.QUEUED, TaskStatus.RETRYING)
TERMINAL_TASK_STATUSES = (
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
    TaskStatus.DEAD_LETTER,
)


class NonRetryableTaskError(Exception):
    """Raised by a handler when retrying the task cannot help."""


@dataclass(frozen=True)
class QueueSettings:
    """Queue runtime settings."""

    database_path: Path
    default_ttl_seconds: int = 24 * 60 * 60
    default_max_retries: int = 0
    default_retry_delay_seconds: int = 5
    worker_poll_interval_seconds: float = 0.5
    worker_concurrency: int = 1


@dataclass(frozen=True)
class _ClaimedTask:
    task_id: str
    task_type: str
    payload: dict[str, Any] | None


def _decode_object(raw: Any) -> dict[str, Any] | None:
    """JSON object stored in a column, ``None`` when absent or malformed."""
    if not raw:
        return None
    try:
        decoded = json.loads(str(raw))
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, dict) else None


def _task_state(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "task_id": str(row["task_id"]),
        "task_type": str(row["task_type"]),
        "status": str(row["status"]),
        "attempts": int(row["attempts"]),
        "max_retries": int(row["max_retries"]),
        "created_at": int(row["created_at"]),
        "updated_at": int(row["updated_at"]),
        "expires_at": int(row["expires_at"]),
        "result": _decode_object(row["result_json"]),
        "error": str(row["last_error"] or ""),
        "dead_letter_reason": str(row["dead_letter_reason"] or ""),
    }


class TaskQueue:
    """SQLite-backed queue whose tasks survive process restarts."""

    def __init__(self, settings: QueueSettings) -> None:
        self._settings = settings
        apply_migrations(settings.database_path)
        self._connection = sqlite3.connect(
            str(settings.database_path),
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = Lock()
        self._handlers: dict[str, TaskHandler] = {}
        self._workers: list[asyncio.Task[None]] = []
        self._stop_event = asyncio.Event()
        self._requeue_interrupted()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                yield cursor
            except Exception:
                self._connection.rollback()
                raise
            self._connection.commit()

    def register_handler(self, task_type: str, handler: TaskHandler) -> None:
        """Register the async handler for ``task_type``."""
        normalized_type = task_type.strip().lower()
        if not normalized_type:
            raise ValueError("task_type is required")
        self._handlers[normalized_type] = handler

    @property
    def running_workers(self) -> int:
        return sum(1 for worker in self._workers if not worker.done())

    async def start(self) -> None:
        """Start ``worker_concurrency`` worker loops unless already running."""
        if self.running_workers:
            return
        self._stop_event.clear()
        concurrency = max(1, self._settings.worker_concurrency)
        self._workers = [
            asyncio.create_task(self._worker_loop(index), name=f"task-worker-{index}")
            for index in range(concurrency)
        ]
        LOGGER.info("Task queue started with %s workers", concurrency)

    async def stop(self) -> None:
        """Stop worker loops after their current task finishes."""
        self._stop_event.set()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
            self._workers = []

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def submit(
        self,
        *,
        task_type: str,
        payload: dict[str, Any],
        idempotency_key: str = "",
        ttl_seconds: int | None = None,
        max_retries: int | None = None,
        retry_delay_seconds: int | None = None,
    ) -> str:
        """Enqueue a task and return its id; a repeated idempotency key returns the first id."""
        task_kind = task_type.strip().lower()
        if not task_kind:
            raise ValueError("task_type is required")
        settings = self._settings
        retries = settings.default_max_retries if max_retries is None else max_retries
        ttl = int(ttl_seconds or settings.default_ttl_seconds)
        retry_delay = max(1, int(retry_delay_seconds or settings.default_retry_delay_seconds))
        dedupe_key = idempotency_key.strip() or None
        now = int(time.time())

        with self._transaction() as cursor:
            self._purge_expired_tasks(cursor, now)
            if dedupe_key:
                existing = self._find_by_key(cursor, dedupe_key)
                if existing is not None:
                    return str(existing["task_id"])
            task_id = uuid.uuid4().hex
            cursor.execute(
                """
                INSERT INTO task_queue(
                  task_id, task_type, payload_json, status, max_retries,
                  retry_delay_seconds, available_at, created_at, updated_at,
                  expires_at, idempotency_key
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task_id,
                    task_kind,
                    json.dumps(payload, ensure_ascii=False),
                    str(TaskStatus.QUEUED),
                    max(0, int(retries)),
                    retry_delay,
                    now,
                    now,
                    now,
                    now + ttl,
                    dedupe_key,
                ),
            )
        LOGGER.info("Task queued", extra={"task_id": task_id})
        return task_id

    @staticmethod
    def _find_by_key(cursor: sqlite3.Cursor, dedupe_key: str) -> sqlite3.Row | None:
        return cursor.execute(
            """
            SELECT task_id, payload_json
            FROM task_queue
            WHERE idempotency_key = ?
            ORDER BY created_at DESC
            LIMIT 1
            """,
            (dedupe_key,),
        ).fetchone()

    def find_by_idempotency_key(self, idempotency_key: str) -> dict[str, Any] | None:
        """Return id and payload of the task submitted under ``idempotency_key``."""
        dedupe_key = idempotency_key.strip()
        if not dedupe_key:
            return None
        with self._transaction() as cursor:
            row = self._find_by_key(cursor, dedupe_key)
        if row is None:
            return None
        return {
            "task_id": str(row["task_id"]),
            "payload": _decode_object(row["payload_json"]) or {},
        }

    def get(self, task_id: str) -> dict[str, Any] | None:
        """Serialized task state, ``None`` once purged or never submitted."""
        with self._transaction() as cursor:
            self._purge_expired_tasks(cursor, int(time.time()))
            row = cursor.execute(
                "SELECT * FROM task_queue WHERE task_id = ?",
                (task_id,),
            ).fetchone()
        return _task_state(row) if row is not None else None

    async def _worker_loop(self, index: int) -> None:
        while not self._stop_event.is_set():
            if await self.process_next_due_task():
                continue
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._settings.worker_poll_interval_seconds,
                )
            except asyncio.TimeoutError:
                pass
        LOGGER.debug("Task worker %s stopped", index)

    def _claim_next(self) -> _ClaimedTask | None:
        now = int(time.time())
        with self._transaction() as cursor:
            row = cursor.execute(
                """
                SELECT task_id, task_type, payload_json
                FROM task_queue
                WHERE status IN (?, ?)
                  AND available_at <= ?
                ORDER BY available_at ASC, created_at ASC
                LIMIT 1
                """,
                (*map(str, DUE_TASK_STATUSES), now),
            ).fetchone()
            if row is None:
                return None
            cursor.execute(
                """
                UPDATE task_queue
                SET status = ?, attempts = attempts + 1, updated_at = ?
                WHERE task_id = ?
                """,
                (str(TaskStatus.RUNNING), now, str(row["task_id"])),
            )
        return _ClaimedTask(
            task_id=str(row["task_id"]),
            task_type=str(row["task_type"]),
            payload=_decode_object(row["payload_json"]),
        )

    async def process_next_due_task(self) -> bool:
        """Claim and run one due task; ``False`` when nothing was due."""
        claimed = self._claim_next()
        if claimed is None:
            return False

        task_id = claimed.task_id
        handler = self._handlers.get(claimed.task_type)
        if handler is None:
            self._finish(
                task_id,
                TaskStatus.DEAD_LETTER,
                error=f"No handler registered for task_type={claimed.task_type}",
                dead_letter_reason="handler_not_found",
            )
            return True
        if claimed.payload is None:
            self._finish(
                task_id,
                TaskStatus.DEAD_LETTER,
                error="Invalid payload JSON",
                dead_letter_reason="payload_decode_error",
            )
            return True

        payload = dict(claimed.payload)
        payload.setdefault("task_id", task_id)
        try:
            result = await handler(payload)
        except NonRetryableTaskError as exc:
            LOGGER.warning("Task failed: %s", exc, extra={"task_id": task_id})
            self._finish(task_id, TaskStatus.FAILED, error=str(exc) or exc.__class__.__name__)
            return True
        except Exception as exc:
            LOGGER.exception("Task handler raised", extra={"task_id": task_id})
            self._retry_or_dead_letter(task_id, str(exc) or exc.__class__.__name__)
            return True

        self._finish(task_id, TaskStatus.COMPLETED, result=result)
        return True

    def _requeue_interrupted(self) -> None:
        now = int(time.time())
        with self._transaction() as cursor:
            cursor.execute(
                """
                UPDATE task_queue
                SET status = ?, available_at = ?, updated_at = ?
                WHERE status = ?
                """,
                (str(TaskStatus.RETRYING), now, now, str(TaskStatus.RUNNING)),
            )
            requeued = cursor.rowcount
        if requeued:
            LOGGER.warning("Requeued %s interrupted tasks", requeued)

    def _finish(
        self,
        task_id: str,
        status: TaskStatus,
        *,
        error: str = "",
        dead_letter_reason: str = "",
        result: dict[str, Any] | None = None,
    ) -> None:
        result_json = (
            json.dumps(result, ensure_ascii=False, default=str)
            if result is not None
            else None
        )
        with self._transaction() as cursor:
            cursor.execute(
                """
                UPDATE task_queue
                SET status = ?,
                    updated_at = ?,
                    last_error = ?,
                    dead_letter_reason = ?,
                    result_json = COALESCE(?, result_json)
                WHERE task_id = ?
                """,
                (
                    str(status),
                    int(time.time()),
                    error,
                    dead_letter_reason,
                    result_json,
                    task_id,
                ),
            )

    def _retry_or_dead_letter(self, task_id: str, error: str) -> None:
        now = int(time.time())
        with self._transaction() as cursor:
            row = cursor.execute(
                "SELECT attempts, max_retries, retry_delay_seconds FROM task_queue WHERE task_id = ?",
                (task_id,),
            ).fetchone()
            if row is None:
                return
            attempts = int(row["attempts"])
            if attempts > int(row["max_retries"]):
                cursor.execute(
                    """
                    UPDATE task_queue
                    SET status = ?, updated_at = ?, last_error = ?,
                        dead_letter_reason = 'max_retries_exceeded'
                    WHERE task_id = ?
                    """,
                    (str(TaskStatus.DEAD_LETTER), now, error, task_id),
                )
                return
            # Linear backoff: the n-th retry waits n * retry_delay_seconds.
            cursor.execute(
                """
                UPDATE task_queue
                SET status = ?, available_at = ?, updated_at = ?, last_error = ?,
                    dead_letter_reason = ''
                WHERE task_id = ?
                """,
                (
                    str(TaskStatus.RETRYING),
                    now + int(row["retry_delay_seconds"]) * attempts,
                    now,
                    error,
                    task_id,
                ),
            )

    @staticmethod
    def _purge_expired_tasks(cursor: sqlite3.Cursor, now: int) -> None:
        cursor.execute(
            """
            DELETE FROM task_queue
            WHERE expires_at <= ?
              AND status IN (?, ?, ?)
            """,
            (now, *map(str, TERMINAL_TASK_STATUSES)),
        )
