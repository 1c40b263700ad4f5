"""Human-in-the-loop CAPTCHA resolution for the CEAC landing page."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from enum import StrEnum

from app.ceac.errors import CaptchaRejectedRepeatedly
from app.ceac.models import CaptchaChallenge, CaptchaResult, Job, ProgressStatus
from app.ceac.polling import Clock, DeadlinePoller, Sleep
from app.ceac.ports import ArtifactStore, BrowserDriver, JobStatusSink
from app.ceac.postback import PostbackSynchronizer
from app.ceac.progress import ProgressReporter

LOGGER = logging.getLogger(__name__)

REFRESH_REQUEST_STEP = "captcha_refresh_requested"


@dataclass(frozen=True)
class CaptchaLocators:
    image: str = (
        "#c_default_ctl00_sitecontentplaceholder_uclocation_identifycaptcha1"
        "_defaultcaptcha_CaptchaImage"
    )
    input: str = "#ctl00_SiteContentPlaceHolder_ucLocation_IdentifyCaptcha1_txtCodeTextBox"
    refresh: str = (
        "#c_default_ctl00_sitecontentplaceholder_uclocation_identifycaptcha1"
        "_defaultcaptcha_RefreshButton"
    )
    submit: str = "#ctl00_SiteContentPlaceHolder_lnkNew"
    errors: tuple[str, ...] = (
        "#ctl00_SiteContentPlaceHolder_ucLocation_IdentifyCaptcha1_ValidationSummary",
        "#ctl00_SiteContentPlaceHolder_ucLocation_IdentifyCaptcha1_csvCaptChaCodeTextBox",
    )
    accepted_url_hint: str = "ConfirmApplicationID.aspx"


class CaptchaState(StrEnum):
    NO_CHALLENGE = "no_challenge"
    CHALLENGE_DETECTED = "challenge_detected"
    AWAITING_SOLUTION = "awaiting_solution"
    VALIDATING = "validating"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"


class CaptchaResolver:
    """Drive one CAPTCHA checkpoint through detection, solution and validation.

    The solution arrives out of band: a human writes it to the progress store
    and the resolver observes it by polling. One instance serves one job.
    """

    def __init__(
        self,
        *,
        progress: ProgressReporter,
        artifacts: ArtifactStore,
        job_sink: JobStatusSink,
        synchronizer: PostbackSynchronizer,
        locators: CaptchaLocators | None = None,
        timeout_seconds: float = 300.0,
        poll_interval_seconds: float = 2.0,
        max_rejections: int = 5,
        detect_timeout_ms: int = 5_000,
        refresh_settle_ms: int = 3_000,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._progress = progress
        self._store = progress.store
        self._artifacts = artifacts
        self._job_sink = job_sink
        self._synchronizer = synchronizer
        self._locators = locators or CaptchaLocators()
        self._timeout_seconds = timeout_seconds
        self._poll_interval_seconds = poll_interval_seconds
        self._max_rejections = max(1, max_rejections)
        self._detect_timeout_ms = detect_timeout_ms
        self._refresh_settle_ms = refresh_settle_ms
        self._clock = clock
        self._sleep = sleep

        self.state = CaptchaState.NO_CHALLENGE
        self.transitions: list[CaptchaState] = []
        self.challenge_ids: list[str] = []
        self.rejections = 0
        self._current: CaptchaChallenge | None = None
        self._handled_refresh_id = 0
        self._ignored_solutions: set[str] = set()
        self._step_number: int | None = None
        self._percentage = 0
        self.poller: DeadlinePoller[CaptchaResult] | None = None

    async def detect(self, driver: BrowserDriver) -> bool:
        image = await driver.locate(self._locators.image)
        return await driver.is_visible(image, self._detect_timeout_ms)

    async def resolve(
        self,
        driver: BrowserDriver,
        job: Job,
        *,
        step_number: int | None = None,
        percentage: int = 0,
    ) -> CaptchaResult | None:
        """Return the accepted result, or ``None`` when the window elapses.

        When no challenge is shown the result has an empty ``challenge_id``
        and the caller advances the page itself.
        """
        self._reset_run(step_number, percentage)
        if not await self.detect(driver):
            LOGGER.info("No CAPTCHA challenge on page", extra={"job_id": job.job_id})
            return CaptchaResult(challenge_id="", solution="")

        await self._issue_challenge(driver, job, reason="detected")
        # Refresh requests older than this challenge are not for it.
        latest = self._store.latest(job.job_id)
        self._handled_refresh_id = (latest.update_id or 0) if latest else 0
        self._job_sink.mark_waiting_for_captcha(job.job_id)

        poller: DeadlinePoller[CaptchaResult] = DeadlinePoller(
            timeout_seconds=self._timeout_seconds,
            interval_seconds=self._poll_interval_seconds,
            clock=self._clock,
            sleep=self._sleep,
            name="captcha",
        )
        self.poller = poller
        self._enter(CaptchaState.AWAITING_SOLUTION)

        async def check(active: DeadlinePoller[CaptchaResult]) -> CaptchaResult | None:
            return await self._poll_once(driver, job, active)

        result = await poller.run(check)
        if result is None:
            self._enter(CaptchaState.TIMED_OUT)
            LOGGER.warning(
                "CAPTCHA not solved within %ss",
                self._timeout_seconds,
                extra={"job_id": job.job_id},
            )
            return None

        self._job_sink.mark_running(job.job_id)
        return result

    async def _poll_once(
        self,
        driver: BrowserDriver,
        job: Job,
        poller: DeadlinePoller[CaptchaResult],
    ) -> CaptchaResult | None:
        job_id = job.job_id
        current = self._current
        if current is None:
            raise RuntimeError(f"No open CAPTCHA challenge for job {job_id}")

        requested = self._pending_refresh_requests(job_id)
        if requested:
            self._handled_refresh_id = max(requested)
            await self._refresh_image(driver, job)
            poller.reset("refresh requested")
            return None

        solved = self._store.solved_challenge(job_id)
        if solved is not None and (solved.solution or "").strip():
            if solved.challenge_id == current.challenge_id:
                return await self._submit(driver, job, solved, poller)
            if solved.challenge_id not in self._ignored_solutions:
                self._ignored_solutions.add(solved.challenge_id)
                LOGGER.info(
                    "Ignoring solution for superseded challenge",
                    extra={"job_id": job_id, "challenge_id": solved.challenge_id},
                )

        unsolved = self._store.unsolved_challenge(job_id)
        if unsolved is not None and unsolved.challenge_id != current.challenge_id:
            self._current = unsolved
            self.challenge_ids.append(unsolved.challenge_id)
            poller.reset(f"challenge changed at poll {poller.polls}")
        return None

    def _pending_refresh_requests(self, job_id: str) -> list[int]:
        """Ids of refresh requests newer than the last one handled."""
        return [
            update.update_id
            for update in self._store.history(job_id)
            if update.step_name == REFRESH_REQUEST_STEP
            and update.update_id is not None
            and update.update_id > self._handled_refresh_id
        ]

    async def _submit(
        self,
        driver: BrowserDriver,
        job: Job,
        challenge: CaptchaChallenge,
        poller: DeadlinePoller[CaptchaResult],
    ) -> CaptchaResult | None:
        solution = (challenge.solution or "").strip()
        self._enter(CaptchaState.VALIDATING)
        if await self._validate(driver, solution):
            self._enter(CaptchaState.ACCEPTED)
            self._progress.report(
                job.job_id,
                "captcha_solved",
                ProgressStatus.CAPTCHA_SOLVED,
                "CAPTCHA accepted",
                self._percentage,
                step_number=self._step_number,
                metadata={"challenge_id": challenge.challenge_id},
            )
            return CaptchaResult(
                challenge_id=challenge.challenge_id,
                solution=solution,
                rejections=self.rejections,
                timer_resets=poller.resets,
            )

        self.rejections += 1
        self._enter(CaptchaState.REJECTED)
        LOGGER.warning(
            "CAPTCHA solution rejected (%s/%s)",
            self.rejections,
            self._max_rejections,
            extra={"job_id": job.job_id, "challenge_id": challenge.challenge_id},
        )
        if self.rejections >= self._max_rejections:
            raise CaptchaRejectedRepeatedly(self.rejections)
        await self._issue_challenge(driver, job, reason="rejected")
        poller.reset("solution rejected")
        self._enter(CaptchaState.AWAITING_SOLUTION)
        return None

    async def _validate(self, driver: BrowserDriver, solution: str) -> bool:
        locators = self._locators
        await driver.fill(await driver.locate(locators.input), solution)
        await driver.click(await driver.locate(locators.submit))
        await self._synchronizer.await_stable(driver, "captcha submission")

        current_url = await driver.current_url()
        if locators.accepted_url_hint.lower() in current_url.lower():
            return True
        for locator in locators.errors:
            if await driver.is_visible(await driver.locate(locator), 0):
                return False
        # Ambiguous: accepted only once the input is gone.
        return not await driver.is_visible(await driver.locate(locators.input), 0)

    async def _capture(self, driver: BrowserDriver, job: Job, reason: str) -> str:
        image = await driver.locate(self._locators.image)
        data = await driver.screenshot(image)
        ref = self._artifacts.store(
            data,
            job_id=job.job_id,
            kind="captcha",
            filename=f"captcha_{reason}_{uuid.uuid4().hex[:12]}.png",
            mime_type="image/png",
        )
        return ref.public_url

    async def _issue_challenge(self, driver: BrowserDriver, job: Job, *, reason: str) -> None:
        self._enter(CaptchaState.CHALLENGE_DETECTED)
        image_url = await self._capture(driver, job, reason)
        challenge = self._store.create_challenge(job.job_id, image_url)
        self._current = challenge
        self.challenge_ids.append(challenge.challenge_id)
        message = (
            "CAPTCHA rejected, a new challenge needs solving"
            if reason == "rejected"
            else "CAPTCHA detected, waiting for a solution"
        )
        self._progress.report(
            job.job_id,
            "captcha_detected",
            ProgressStatus.WAITING_FOR_CAPTCHA,
            message,
            self._percentage,
            step_number=self._step_number,
            captcha_image=image_url,
            needs_captcha=True,
            metadata={"challenge_id": challenge.challenge_id, "reason": reason},
        )

    async def _refresh_image(self, driver: BrowserDriver, job: Job) -> None:
        refresh = await driver.locate(self._locators.refresh)
        if await driver.is_visible(refresh, 0):
            await driver.click(refresh)
            await driver.sleep(self._refresh_settle_ms)
        image_url = await self._capture(driver, job, "refresh")
        self._store.update_challenge_image(job.job_id, image_url)
        current = self._current
        challenge_id = current.challenge_id if current else ""
        self._progress.report(
            job.job_id,
            "captcha_refreshed",
            ProgressStatus.WAITING_FOR_CAPTCHA,
            "CAPTCHA image refreshed",
            self._percentage,
            step_number=self._step_number,
            captcha_image=image_url,
            needs_captcha=True,
            metadata={"challenge_id": challenge_id},
        )

    def _reset_run(self, step_number: int | None, percentage: int) -> None:
        self.state = CaptchaState.NO_CHALLENGE
        self.transitions = [CaptchaState.NO_CHALLENGE]
        self.challenge_ids = []
        self.rejections = 0
        self._current = None
        self._handled_refresh_id = 0
        self._ignored_solutions = set()
        self._step_number = step_number
        self._percentage = percentage

    def _enter(self, state: CaptchaState) -> None:
        self.state = state
        self.transitions.append(state)
        LOGGER.debug("CAPTCHA state -> %s", state)
