"""Sequential driver of one CEAC application, step by step."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import ChainMap
from typing import Any, Mapping, Sequence

from app.ceac.captcha import CaptchaResolver
from app.ceac.catalog import ceac_steps
from app.ceac.conditional import ConditionalFieldExpander
from app.ceac.errors import (
    REPORTED_FATAL_FAULTS,
    CaptchaTimeout,
    CeacAutomationError,
    StepFillFailed,
    ValidationRejected,
)
from app.ceac.field_applier import FieldApplier
from app.ceac.field_resolver import FieldResolver, missing_required
from app.ceac.models import (
    FillReport,
    Job,
    JobStatus,
    ProgressStatus,
    StepDefinition,
    TerminalResult,
)
from app.ceac.polling import Clock, Sleep
from app.ceac.ports import ArtifactStore, BrowserDriver, JobStatusSink, ProgressStore
from app.ceac.postback import PostbackSynchronizer
from app.ceac.progress import ProgressReporter
from app.ceac.step_hooks import DEFAULT_STEP_HOOKS, StepContext, StepHooks
from app.ceac.validation_gate import ValidationGate
from app.core.config import EngineConfig

LOGGER = logging.getLogger(__name__)


class StepOrchestrator:
    """Run the step catalog in ascending order against one browser session.

    Every collaborator is injected; the orchestrator itself owns only the
    ordering, the overlay of engine-generated values and the failure policy.
    """

    def __init__(
        self,
        *,
        driver: BrowserDriver,
        progress: ProgressReporter,
        artifacts: ArtifactStore,
        job_sink: JobStatusSink,
        resolver: FieldResolver,
        expander: ConditionalFieldExpander,
        applier: FieldApplier,
        synchronizer: PostbackSynchronizer,
        gate: ValidationGate,
        captcha: CaptchaResolver,
        steps: Sequence[StepDefinition] | None = None,
        hooks: Mapping[str, StepHooks] | None = None,
        abort_when_all_fields_fail: bool = False,
    ) -> None:
        self._driver = driver
        self._progress = progress
        self._artifacts = artifacts
        self._job_sink = job_sink
        self._resolver = resolver
        self._expander = expander
        self._applier = applier
        self._synchronizer = synchronizer
        self._gate = gate
        self._captcha = captcha
        self._steps = tuple(steps) if steps is not None else ceac_steps()
        self._hooks = dict(DEFAULT_STEP_HOOKS if hooks is None else hooks)
        self._abort_when_all_fields_fail = abort_when_all_fields_fail

        self.completed_steps: list[int] = []
        self.reports: dict[int, FillReport] = {}
        self.screenshots: list[str] = []

    async def run(self, job: Job, form_data: Mapping[str, Any]) -> TerminalResult:
        """Drive every step; typed failures come back as a failed result.

        Unknown faults are recorded against the job and re-raised.
        """
        overrides: dict[str, Any] = {}
        data = ChainMap(overrides, dict(form_data))
        application: dict[str, str] = {}
        current: StepDefinition | None = None

        self._job_sink.mark_running(job.job_id)
        missing = missing_required(self._steps, data)
        if missing:
            LOGGER.info(
                "Form data lacks %s required fields: %s",
                len(missing),
                ", ".join(missing),
                extra={"job_id": job.job_id},
            )

        try:
            for step in self._steps:
                current = step
                await self._run_step(job, step, data, overrides, application)
                self.completed_steps.append(step.number)
        except REPORTED_FATAL_FAULTS as exc:
            return await self._fail(job, current, exc, application)
        except Exception as exc:
            await self._fail_unexpected(job, current, exc)
            raise

        result = TerminalResult(
            job_id=job.job_id,
            status=JobStatus.COMPLETED,
            completed_steps=len(self.completed_steps),
            message="All steps completed",
            application_id=application.get("application_id", ""),
        )
        self._job_sink.mark_completed(job.job_id, result.to_dict())
        self._progress.report(
            job.job_id,
            "job_completed",
            ProgressStatus.COMPLETED,
            "DS-160 form filled",
            100,
            metadata={"application_id": result.application_id},
        )
        return result

    async def _run_step(
        self,
        job: Job,
        step: StepDefinition,
        data: ChainMap,
        overrides: dict[str, Any],
        application: dict[str, str],
    ) -> None:
        driver = self._driver
        self._progress.step_started(job.job_id, step)
        hooks = self._hooks.get(step.key, StepHooks())
        ctx = StepContext(
            driver=driver,
            job=job,
            step=step,
            overrides=overrides,
            form_data=data,
            progress=self._progress,
            job_sink=self._job_sink,
            synchronizer=self._synchronizer,
            application=application,
        )
        if hooks.before_fill is not None:
            await hooks.before_fill(ctx)

        report = await self._fill(driver, step, data)
        self.reports[step.number] = report
        if (
            self._abort_when_all_fields_fail
            and report.attempted
            and not report.applied
        ):
            raise StepFillFailed(f"Step {step.number}: no field could be filled")

        if hooks.after_fill is not None:
            await hooks.after_fill(ctx)

        if step.captcha_checkpoint:
            result = await self._captcha.resolve(
                driver,
                job,
                step_number=step.number,
                percentage=self._progress.percentage_for(step),
            )
            if result is None:
                raise CaptchaTimeout(
                    f"CAPTCHA not solved at step {step.number}"
                )
            if result.challenge_id:
                LOGGER.info(
                    "Step %s advanced through CAPTCHA",
                    step.number,
                    extra={"job_id": job.job_id, "challenge_id": result.challenge_id},
                )
                return

        await driver.click(await driver.locate(step.advance_locator))
        await self._synchronizer.await_stable(driver, f"advance from step {step.number}")
        outcome = await self._gate.check_after_advance(driver, step)
        if outcome.accepted:
            return

        # Diagnostics before anything else touches the page.
        screenshot_url = await self._capture(job, step, "validation")
        raise ValidationRejected(
            step.number,
            outcome.errors,
            diagnostics_captured=True,
            screenshot_url=screenshot_url,
        )

    async def _fill(
        self, driver: BrowserDriver, step: StepDefinition, data: ChainMap
    ) -> FillReport:
        report = FillReport()
        plan = self._resolver.resolve_fill(step, data)
        for action in plan:
            await self._applier.apply(driver, [action], report)
            if action.key not in report.applied or not action.mapping.conditionals:
                continue
            revealed = self._expander.expand(action.mapping, action.value, data)
            if revealed.actions:
                await self._applier.apply(driver, revealed, report)
        if report.failed:
            LOGGER.warning(
                "Step %s: %s of %s fields failed",
                step.number,
                len(report.failed),
                report.attempted,
                extra={"step": step.key},
            )
        return report

    async def _capture(self, job: Job, step: StepDefinition | None, kind: str) -> str:
        data = await self._driver.screenshot()
        suffix = f"step{step.number}" if step else "job"
        ref = self._artifacts.store(
            data,
            job_id=job.job_id,
            kind="screenshot",
            filename=f"{kind}_{suffix}_{uuid.uuid4().hex[:12]}.png",
            mime_type="image/png",
        )
        self.screenshots.append(ref.public_url)
        return ref.public_url

    async def _try_capture(self, job: Job, step: StepDefinition | None) -> str:
        """Failure screenshot, or ``""`` when the page cannot be captured."""
        try:
            return await self._capture(job, step, "error")
        except Exception:
            LOGGER.exception(
                "Failure screenshot could not be captured",
                extra={"job_id": job.job_id},
            )
            return ""

    async def _fail(
        self,
        job: Job,
        step: StepDefinition | None,
        exc: CeacAutomationError,
        application: dict[str, str],
    ) -> TerminalResult:
        screenshot_url = ""
        errors: list[str] = []
        if isinstance(exc, ValidationRejected):
            screenshot_url = exc.screenshot_url
            errors = exc.errors
        if not screenshot_url:
            screenshot_url = await self._try_capture(job, step)
        self._progress.step_failed(
            job.job_id,
            step,
            str(exc),
            error_code=exc.error_code,
            screenshot_url=screenshot_url,
            errors=errors,
        )
        self._job_sink.mark_failed(job.job_id, str(exc))
        LOGGER.error(
            "Job failed with %s: %s",
            exc.error_code,
            exc,
            extra={"job_id": job.job_id, "step": step.key if step else None},
        )
        return TerminalResult(
            job_id=job.job_id,
            status=JobStatus.FAILED,
            completed_steps=len(self.completed_steps),
            error_code=exc.error_code,
            message=str(exc),
            application_id=application.get("application_id", ""),
            screenshot_url=screenshot_url,
        )

    async def _fail_unexpected(
        self,
        job: Job,
        step: StepDefinition | None,
        exc: Exception,
    ) -> None:
        screenshot_url = await self._try_capture(job, step)
        error_code = getattr(exc, "error_code", "CEAC_UNEXPECTED_ERROR")
        try:
            self._progress.step_failed(
                job.job_id,
                step,
                f"Unexpected error: {exc}",
                error_code=error_code,
                screenshot_url=screenshot_url,
            )
        finally:
            self._job_sink.mark_failed(job.job_id, f"{exc.__class__.__name__}: {exc}")
        LOGGER.exception(
            "Job aborted by unexpected fault",
            extra={"job_id": job.job_id, "step": step.key if step else None},
        )


def build_orchestrator(
    config: EngineConfig,
    *,
    driver: BrowserDriver,
    progress_store: ProgressStore,
    artifact_store: ArtifactStore,
    job_sink: JobStatusSink,
    steps: Sequence[StepDefinition] | None = None,
    hooks: Mapping[str, StepHooks] | None = None,
    clock: Clock = time.monotonic,
    sleep: Sleep = asyncio.sleep,
) -> StepOrchestrator:
    """Wire a fresh orchestrator for one job."""
    synchronizer = PostbackSynchronizer(
        idle_timeout_ms=config.postback_idle_timeout_ms,
        settle_ms=config.postback_settle_ms,
    )
    progress = ProgressReporter(
        progress_store,
        baseline=config.progress_baseline,
        increment=config.progress_increment,
    )
    resolver = FieldResolver()
    captcha = CaptchaResolver(
        progress=progress,
        artifacts=artifact_store,
        job_sink=job_sink,
        synchronizer=synchronizer,
        timeout_seconds=config.captcha_timeout_seconds,
        poll_interval_seconds=config.captcha_poll_interval_seconds,
        max_rejections=config.captcha_max_rejections,
        clock=clock,
        sleep=sleep,
    )
    return StepOrchestrator(
        driver=driver,
        progress=progress,
        artifacts=artifact_store,
        job_sink=job_sink,
        resolver=resolver,
        expander=ConditionalFieldExpander(resolver),
        applier=FieldApplier(
            synchronizer,
            field_timeout_ms=config.field_timeout_ms,
            reveal_timeout_ms=config.reveal_timeout_ms,
        ),
        synchronizer=synchronizer,
        gate=ValidationGate(),
        captcha=captcha,
        steps=steps,
        hooks=hooks,
        abort_when_all_fields_fail=config.abort_when_all_fields_fail,
    )
