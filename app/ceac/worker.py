"""Queue task handler: one CEAC job, one browser session."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Mapping

from app.browser.playwright_driver import open_browser_session
from app.ceac.errors import NavigationTimeout
from app.ceac.models import TERMINAL_JOB_STATUSES, JobStatus, TerminalResult
from app.ceac.orchestrator import build_orchestrator
from app.ceac.polling import Clock, Sleep
from app.ceac.ports import ArtifactStore, BrowserDriver
from app.ceac.progress import ProgressReporter
from app.ceac.step_hooks import StepHooks
from app.core.config import AppConfig, BrowserConfig
from app.core.logging import set_job_context
from app.core.task_queue import NonRetryableTaskError
from app.storage.sqlite_store import CeacStateStore, JobNotFound

LOGGER = logging.getLogger(__name__)

CEAC_JOB_TASK = "ceac_job"

SessionFactory = Callable[[BrowserConfig], AbstractAsyncContextManager[BrowserDriver]]


class CeacJobWorker:
    """Run a stored job end to end in its own browser session."""

    def __init__(
        self,
        *,
        config: AppConfig,
        state_store: CeacStateStore,
        artifact_store: ArtifactStore,
        session_factory: SessionFactory = open_browser_session,
        hooks: Mapping[str, StepHooks] | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._store = state_store
        self._artifacts = artifact_store
        self._session_factory = session_factory
        self._hooks = hooks
        self._clock = clock
        self._sleep = sleep

    async def run(self, job_id: str) -> TerminalResult | None:
        """Return the terminal result, or ``None`` when the job is not runnable."""
        job = self._store.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if job.status in TERMINAL_JOB_STATUSES:
            LOGGER.info("Skipping job in status %s", job.status, extra={"job_id": job_id})
            return None

        set_job_context(job_id)
        async with self._session_factory(self._config.browser) as driver:
            try:
                await driver.navigate(self._config.browser.base_url)
            except NavigationTimeout as exc:
                return self._fail_before_start(job_id, exc)

            orchestrator = build_orchestrator(
                self._config.engine,
                driver=driver,
                progress_store=self._store,
                artifact_store=self._artifacts,
                job_sink=self._store,
                hooks=self._hooks,
                clock=self._clock,
                sleep=self._sleep,
            )
            return await orchestrator.run(job, job.form_data)

    async def handle(self, payload: dict[str, Any]) -> dict[str, Any]:
        """``TaskQueue`` handler for ``ceac_job`` tasks."""
        job_id = str(payload.get("job_id") or "").strip()
        if not job_id:
            raise NonRetryableTaskError("job_id is required")
        try:
            result = await self.run(job_id)
        except JobNotFound as exc:
            raise NonRetryableTaskError(f"Job not found: {exc}") from exc
        except Exception as exc:
            self._fail_if_active(job_id, f"{exc.__class__.__name__}: {exc}")
            raise NonRetryableTaskError(f"{exc.__class__.__name__}: {exc}") from exc
        finally:
            set_job_context("")

        if result is None:
            return {"job_id": job_id, "skipped": True}
        return result.to_dict()

    def _fail_before_start(self, job_id: str, exc: NavigationTimeout) -> TerminalResult:
        ProgressReporter(self._store).step_failed(
            job_id, None, str(exc), error_code=exc.error_code
        )
        self._store.mark_failed(job_id, str(exc))
        LOGGER.error("CEAC site unreachable: %s", exc, extra={"job_id": job_id})
        return TerminalResult(
            job_id=job_id,
            status=JobStatus.FAILED,
            completed_steps=0,
            error_code=exc.error_code,
            message=str(exc),
        )

    def _fail_if_active(self, job_id: str, reason: str) -> None:
        job = self._store.get_job(job_id)
        if job is not None and job.status not in TERMINAL_JOB_STATUSES:
            self._store.mark_failed(job_id, reason)
