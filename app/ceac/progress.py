"""Progress reporting on top of the append-only progress store."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from app.ceac.models import ProgressStatus, ProgressUpdate, StepDefinition
from app.ceac.ports import ProgressStore

LOGGER = logging.getLogger(__name__)


class ProgressReporter:
    def __init__(
        self,
        store: ProgressStore,
        *,
        baseline: int = 40,
        increment: int = 2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self._baseline = baseline
        self._increment = increment
        self._clock = clock

    def percentage_for(self, step: StepDefinition) -> int:
        return max(0, min(99, self._baseline + step.number * self._increment))

    def report(
        self,
        job_id: str,
        step_name: str,
        status: ProgressStatus | str,
        message: str,
        percentage: int,
        *,
        step_number: int | None = None,
        captcha_image: str | None = None,
        needs_captcha: bool = False,
        metadata: dict[str, Any] | None = None,
    ) -> ProgressUpdate:
        update = ProgressUpdate(
            job_id=job_id,
            step_name=step_name,
            status=status,
            message=message,
            percentage=max(0, min(100, int(percentage))),
            step_number=step_number,
            captcha_image=captcha_image,
            needs_captcha=needs_captcha,
            metadata=dict(metadata or {}),
            created_at=int(self._clock()),
        )
        stored = self.store.append(update)
        LOGGER.info(
            "%s: %s",
            step_name,
            message,
            extra={"job_id": job_id, "step": step_name},
        )
        return stored

    def step_started(self, job_id: str, step: StepDefinition) -> ProgressUpdate:
        return self.report(
            job_id,
            step.key,
            ProgressStatus.RUNNING,
            f"Filling step {step.number} - {step.label}",
            self.percentage_for(step),
            step_number=step.number,
        )

    def step_failed(
        self,
        job_id: str,
        step: StepDefinition | None,
        message: str,
        *,
        error_code: str,
        screenshot_url: str = "",
        errors: list[str] | None = None,
    ) -> ProgressUpdate:
        metadata: dict[str, Any] = {"error_code": error_code}
        if screenshot_url:
            metadata["screenshot_url"] = screenshot_url
        if errors:
            metadata["errors"] = list(errors)
        return self.report(
            job_id,
            step.key if step else "job_failed",
            ProgressStatus.FAILED,
            message,
            self.percentage_for(step) if step else 0,
            step_number=step.number if step else None,
            metadata=metadata,
        )
