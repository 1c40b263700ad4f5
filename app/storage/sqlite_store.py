"""SQLite persistence for CEAC jobs, progress updates and CAPTCHA challenges."""

from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterator, Mapping

from app.ceac.captcha import REFRESH_REQUEST_STEP
from app.ceac.errors import InvalidStatusTransition, StoreUnavailable
from app.ceac.models import (
    CaptchaChallenge,
    Job,
    JobStatus,
    ProgressStatus,
    ProgressUpdate,
    can_transition,
)
from app.core.migrations import apply_migrations

LOGGER = logging.getLogger(__name__)


class JobNotFound(LookupError):
    pass


class ChallengeNotFound(LookupError):
    pass


class StaleChallenge(ValueError):
    """The challenge was superseded, already solved or has expired."""


def _challenge_from_row(row: sqlite3.Row) -> CaptchaChallenge:
    return CaptchaChallenge(
        challenge_id=str(row["challenge_id"]),
        job_id=str(row["job_id"]),
        image_url=str(row["image_url"]),
        created_at=int(row["created_at"]),
        expires_at=int(row["expires_at"]),
        solved=bool(row["solved"]),
        solution=row["solution"],
        superseded=bool(row["superseded"]),
    )


def _update_from_row(row: sqlite3.Row) -> ProgressUpdate:
    try:
        metadata = json.loads(str(row["metadata_json"] or "{}"))
    except json.JSONDecodeError:
        metadata = {}
    return ProgressUpdate(
        job_id=str(row["job_id"]),
        step_name=str(row["step_name"]),
        status=str(row["status"]),
        message=str(row["message"] or ""),
        percentage=int(row["percentage"]),
        step_number=row["step_number"],
        captcha_image=row["captcha_image"],
        needs_captcha=bool(row["needs_captcha"]),
        metadata=metadata if isinstance(metadata, dict) else {},
        created_at=int(row["created_at"]),
        update_id=int(row["update_id"]),
    )


class CeacStateStore:
    """Job table, append-only progress log and challenge records on one database.

    Implements both ``ProgressStore`` and ``JobStatusSink``; the API and the
    CLI use the job and solution methods on top.
    """

    def __init__(
        self,
        database_path: Path,
        *,
        captcha_ttl_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ) -> None:
        apply_migrations(database_path)
        self._connection = sqlite3.connect(str(database_path), check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = Lock()
        self._captcha_ttl_seconds = captcha_ttl_seconds
        self._clock = clock

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                cursor = self._connection.cursor()
                yield cursor
                self._connection.commit()
            except sqlite3.Error as exc:
                self._connection.rollback()
                raise StoreUnavailable(f"SQLite error: {exc}") from exc

    def _now(self) -> int:
        return int(self._clock())

    # jobs

    def create_job(
        self,
        *,
        user_id: str,
        embassy: str,
        form_data: Mapping[str, Any],
        job_id: str | None = None,
    ) -> Job:
        now = self._now()
        job = Job(
            job_id=job_id or uuid.uuid4().hex,
            user_id=user_id,
            embassy=embassy,
            form_data=dict(form_data),
            status=JobStatus.PENDING,
            created_at=now,
        )
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO ceac_jobs(
                  job_id, user_id, embassy, form_data_json, status, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job.job_id,
                    user_id,
                    embassy,
                    json.dumps(dict(form_data), ensure_ascii=False, default=str),
                    str(JobStatus.PENDING),
                    now,
                    now,
                ),
            )
        LOGGER.info("Job created", extra={"job_id": job.job_id})
        return job

    def attach_task(self, job_id: str, task_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE ceac_jobs SET task_id = ? WHERE job_id = ?", (task_id, job_id)
            )

    def get_job(self, job_id: str) -> Job | None:
        with self._cursor() as cursor:
            row = cursor.execute(
                "SELECT * FROM ceac_jobs WHERE job_id = ?", (job_id,)
            ).fetchone()
        if row is None:
            return None
        return Job(
            job_id=str(row["job_id"]),
            user_id=str(row["user_id"]),
            embassy=str(row["embassy"]),
            form_data=json.loads(str(row["form_data_json"])),
            status=JobStatus(str(row["status"])),
            created_at=int(row["created_at"]),
        )

    def job_record(self, job_id: str) -> dict[str, Any] | None:
        """Job row plus its terminal result and recorded application, for the API."""
        with self._cursor() as cursor:
            row = cursor.execute(
                "SELECT * FROM ceac_jobs WHERE job_id = ?", (job_id,)
            ).fetchone()
            application = cursor.execute(
                "SELECT * FROM ceac_applications WHERE job_id = ?", (job_id,)
            ).fetchone()
        if row is None:
            return None
        result = json.loads(str(row["result_json"])) if row["result_json"] else None
        return {
            "job_id": str(row["job_id"]),
            "user_id": str(row["user_id"]),
            "embassy": str(row["embassy"]),
            "status": str(row["status"]),
            "failure_reason": str(row["failure_reason"] or ""),
            "result": result,
            "task_id": str(row["task_id"] or ""),
            "created_at": int(row["created_at"]),
            "updated_at": int(row["updated_at"]),
            "application_id": str(application["application_id"]) if application else "",
            "application_date": str(application["application_date"]) if application else "",
        }

    def cancel_job(self, job_id: str) -> Job:
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if job.status != JobStatus.PENDING:
            raise InvalidStatusTransition(job_id, job.status, JobStatus.CANCELLED)
        self._transition(job_id, JobStatus.CANCELLED)
        self.append(
            ProgressUpdate(
                job_id=job_id,
                step_name="job_cancelled",
                status=ProgressStatus.CANCELLED,
                message="Job cancelled before start",
                percentage=0,
                created_at=self._now(),
            )
        )
        return Job(
            job_id=job.job_id,
            user_id=job.user_id,
            embassy=job.embassy,
            form_data=job.form_data,
            status=JobStatus.CANCELLED,
            created_at=job.created_at,
        )

    def _transition(
        self,
        job_id: str,
        target: JobStatus,
        *,
        failure_reason: str | None = None,
        result: dict[str, Any] | None = None,
    ) -> None:
        with self._cursor() as cursor:
            row = cursor.execute(
                "SELECT status FROM ceac_jobs WHERE job_id = ?", (job_id,)
            ).fetchone()
            if row is None:
                raise JobNotFound(job_id)
            current = JobStatus(str(row["status"]))
            if current == target and target not in {JobStatus.COMPLETED, JobStatus.FAILED}:
                return
            if not can_transition(current, target):
                raise InvalidStatusTransition(job_id, current, target)
            cursor.execute(
                """
                UPDATE ceac_jobs
                SET status = ?,
                    failure_reason = COALESCE(?, failure_reason),
                    result_json = COALESCE(?, result_json),
                    updated_at = ?
                WHERE job_id = ?
                """,
                (
                    str(target),
                    failure_reason,
                    json.dumps(result, ensure_ascii=False, default=str) if result else None,
                    self._now(),
                    job_id,
                ),
            )
        LOGGER.info("Job %s -> %s", current, target, extra={"job_id": job_id})

    # JobStatusSink

    def mark_running(self, job_id: str) -> None:
        self._transition(job_id, JobStatus.RUNNING)

    def mark_waiting_for_captcha(self, job_id: str) -> None:
        self._transition(job_id, JobStatus.WAITING_FOR_CAPTCHA)

    def mark_failed(self, job_id: str, reason: str) -> None:
        self._transition(job_id, JobStatus.FAILED, failure_reason=reason)

    def mark_completed(self, job_id: str, result: dict[str, Any]) -> None:
        self._transition(job_id, JobStatus.COMPLETED, result=result)

    def record_application(
        self,
        job_id: str,
        *,
        application_id: str,
        application_date: str,
        security_answer: str,
    ) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO ceac_applications(
                  job_id, application_id, application_date, security_answer, created_at
                )
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(job_id) DO UPDATE SET
                  application_id = excluded.application_id,
                  application_date = excluded.application_date,
                  security_answer = excluded.security_answer
                """,
                (job_id, application_id, application_date, security_answer, self._now()),
            )

    def application(self, job_id: str) -> dict[str, str] | None:
        with self._cursor() as cursor:
            row = cursor.execute(
                "SELECT * FROM ceac_applications WHERE job_id = ?", (job_id,)
            ).fetchone()
        if row is None:
            return None
        return {
            "application_id": str(row["application_id"]),
            "application_date": str(row["application_date"]),
            "security_answer": str(row["security_answer"]),
        }

    # ProgressStore

    def append(self, update: ProgressUpdate) -> ProgressUpdate:
        created_at = update.created_at or self._now()
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO ceac_progress(
                  job_id, step_name, step_number, status, message, percentage,
                  captcha_image, needs_captcha, metadata_json, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    update.job_id,
                    update.step_name,
                    update.step_number,
                    str(update.status),
                    update.message,
                    int(update.percentage),
                    update.captcha_image,
                    int(update.needs_captcha),
                    json.dumps(update.metadata, ensure_ascii=False, default=str),
                    created_at,
                ),
            )
            update_id = cursor.lastrowid
        update.update_id = update_id
        update.created_at = created_at
        return update

    def latest(self, job_id: str) -> ProgressUpdate | None:
        with self._cursor() as cursor:
            row = cursor.execute(
                """
                SELECT * FROM ceac_progress
                WHERE job_id = ?
                ORDER BY update_id DESC
                LIMIT 1
                """,
                (job_id,),
            ).fetchone()
        return _update_from_row(row) if row else None

    def history(self, job_id: str) -> list[ProgressUpdate]:
        with self._cursor() as cursor:
            rows = cursor.execute(
                "SELECT * FROM ceac_progress WHERE job_id = ? ORDER BY update_id ASC",
                (job_id,),
            ).fetchall()
        return [_update_from_row(row) for row in rows]

    def unsolved_challenge(self, job_id: str) -> CaptchaChallenge | None:
        with self._cursor() as cursor:
            row = cursor.execute(
                """
                SELECT * FROM ceac_captcha_challenges
                WHERE job_id = ? AND solved = 0 AND superseded = 0
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (job_id,),
            ).fetchone()
        return _challenge_from_row(row) if row else None

    def solved_challenge(self, job_id: str) -> CaptchaChallenge | None:
        with self._cursor() as cursor:
            row = cursor.execute(
                """
                SELECT * FROM ceac_captcha_challenges
                WHERE job_id = ? AND solved = 1
                ORDER BY solved_at DESC, rowid DESC
                LIMIT 1
                """,
                (job_id,),
            ).fetchone()
        return _challenge_from_row(row) if row else None

    def create_challenge(self, job_id: str, image_url: str) -> CaptchaChallenge:
        """Open a new challenge, superseding any challenge still unsolved."""
        now = self._now()
        challenge = CaptchaChallenge(
            challenge_id=uuid.uuid4().hex,
            job_id=job_id,
            image_url=image_url,
            created_at=now,
            expires_at=now + self._captcha_ttl_seconds,
        )
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE ceac_captcha_challenges
                SET superseded = 1
                WHERE job_id = ? AND solved = 0 AND superseded = 0
                """,
                (job_id,),
            )
            cursor.execute(
                """
                INSERT INTO ceac_captcha_challenges(
                  challenge_id, job_id, image_url, created_at, expires_at
                )
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    challenge.challenge_id,
                    job_id,
                    image_url,
                    challenge.created_at,
                    challenge.expires_at,
                ),
            )
        LOGGER.info(
            "CAPTCHA challenge opened",
            extra={"job_id": job_id, "challenge_id": challenge.challenge_id},
        )
        return challenge

    def update_challenge_image(self, job_id: str, image_url: str) -> None:
        now = self._now()
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE ceac_captcha_challenges
                SET image_url = ?, expires_at = ?
                WHERE job_id = ? AND solved = 0 AND superseded = 0
                """,
                (image_url, now + self._captcha_ttl_seconds, job_id),
            )

    # out-of-band channel

    def solve_challenge(
        self, job_id: str, challenge_id: str, solution: str
    ) -> CaptchaChallenge:
        """Record a human solution for the job's open challenge."""
        now = self._now()
        with self._cursor() as cursor:
            row = cursor.execute(
                "SELECT * FROM ceac_captcha_challenges WHERE challenge_id = ? AND job_id = ?",
                (challenge_id, job_id),
            ).fetchone()
            if row is None:
                raise ChallengeNotFound(challenge_id)
            challenge = _challenge_from_row(row)
            if challenge.solved or challenge.superseded:
                raise StaleChallenge(f"Challenge {challenge_id} is no longer open")
            if challenge.expires_at <= now:
                raise StaleChallenge(f"Challenge {challenge_id} expired")
            cursor.execute(
                """
                UPDATE ceac_captcha_challenges
                SET solved = 1, solution = ?, solved_at = ?
                WHERE challenge_id = ?
                """,
                (solution.strip(), now, challenge_id),
            )
        LOGGER.info(
            "CAPTCHA solution recorded",
            extra={"job_id": job_id, "challenge_id": challenge_id},
        )
        return CaptchaChallenge(
            challenge_id=challenge.challenge_id,
            job_id=job_id,
            image_url=challenge.image_url,
            created_at=challenge.created_at,
            expires_at=challenge.expires_at,
            solved=True,
            solution=solution.strip(),
        )

    def request_refresh(self, job_id: str) -> ProgressUpdate:
        """Ask the running engine for a new CAPTCHA image."""
        challenge = self.unsolved_challenge(job_id)
        if challenge is None:
            raise ChallengeNotFound(job_id)
        latest = self.latest(job_id)
        return self.append(
            ProgressUpdate(
                job_id=job_id,
                step_name=REFRESH_REQUEST_STEP,
                status=ProgressStatus.WAITING_FOR_CAPTCHA,
                message="CAPTCHA refresh requested",
                percentage=latest.percentage if latest else 0,
                step_number=latest.step_number if latest else None,
                needs_captcha=True,
                metadata={"challenge_id": challenge.challenge_id},
                created_at=self._now(),
            )
        )
