from __future__ import annotations

import uuid
from typing import Any, Callable

from app.ceac.captcha import REFRESH_REQUEST_STEP, CaptchaLocators
from app.ceac.catalog import (
    APPLICATION_DATE_LABEL,
    APPLICATION_ID_LABEL,
    CONTINUE_BUTTON,
    LOCATION_SELECT,
    START_APPLICATION_LINK,
    ceac_steps,
)
from app.ceac.errors import DriverTimeout, InvalidStatusTransition
from app.ceac.models import (
    ArtifactRef,
    CaptchaChallenge,
    JobStatus,
    ProgressUpdate,
    can_transition,
)
from app.ceac.validation_gate import VALIDATION_SUMMARY_LOCATORS


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instead of waiting.

    ``on_sleep`` callbacks run after every sleep with the number of sleeps so
    far; scenarios use them to play the human solving a CAPTCHA.
    """

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []
        self.on_sleep: list[Callable[[int], None]] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds
        self.sleeps.append(seconds)
        for callback in list(self.on_sleep):
            callback(len(self.sleeps))


class FakeDriver:
    """``BrowserDriver`` double; handles are the selector strings themselves.

    Every selector is visible unless listed in ``hidden``; ``visible`` wins
    over ``hidden``. ``on_click`` lets a test react to a click (e.g. move to
    another URL).
    """

    def __init__(self, url: str = "https://ceac.state.gov/GenNIV/General/complete/complete.aspx") -> None:
        self.url = url
        self.hidden: set[str] = set()
        self.visible: set[str] = set()
        self.texts: dict[str, list[str]] = {}
        self.failures: dict[str, Exception] = {}
        self.on_click: dict[str, Callable[["FakeDriver"], None]] = {}
        self.actions: list[tuple[str, str, Any]] = []
        self.slept_ms: list[int] = []
        self.screenshots = 0
        self.idle_timeouts = 0
        self.load_state_waits = 0

    def hide(self, *selectors: str) -> None:
        self.hidden.update(selectors)

    def show(self, *selectors: str) -> None:
        self.visible.update(selectors)
        self.hidden.difference_update(selectors)

    def calls(self, verb: str) -> list[tuple[str, Any]]:
        return [(selector, value) for kind, selector, value in self.actions if kind == verb]

    def _record(self, verb: str, selector: str, value: Any = None) -> None:
        failure = self.failures.get(selector)
        if failure is not None:
            raise failure
        self.actions.append((verb, selector, value))

    async def navigate(self, url: str) -> None:
        self.actions.append(("navigate", url, None))
        self.url = url

    async def locate(self, selector: str) -> str:
        return selector

    async def fill(self, handle: str, text: str) -> None:
        self._record("fill", handle, text)

    async def select_option(self, handle: str, value: str) -> None:
        self._record("select", handle, value)

    async def check(self, handle: str) -> None:
        self._record("check", handle, True)

    async def uncheck(self, handle: str) -> None:
        self._record("uncheck", handle, False)

    async def click(self, handle: str) -> None:
        self._record("click", handle)
        callback = self.on_click.get(handle)
        if callback is not None:
            callback(self)

    async def is_visible(self, handle: str, timeout_ms: int = 0) -> bool:
        if handle in self.visible:
            return True
        return handle not in self.hidden

    async def wait_for_load_state(self, kind: str, timeout_ms: int) -> None:
        self.load_state_waits += 1
        if self.idle_timeouts > 0:
            self.idle_timeouts -= 1
            raise DriverTimeout(f"{kind} not reached in {timeout_ms}ms")

    async def screenshot(self, handle: str | None = None) -> bytes:
        self.screenshots += 1
        return b"\x89PNG fake"

    async def current_url(self) -> str:
        return self.url

    async def text_contents(self, selector: str) -> list[str]:
        return list(self.texts.get(selector, []))

    async def sleep(self, milliseconds: int) -> None:
        self.slept_ms.append(milliseconds)


class InMemoryProgressStore:
    def __init__(self, clock: Callable[[], float] | None = None, ttl_seconds: int = 300) -> None:
        self._clock = clock or (lambda: 0.0)
        self._ttl_seconds = ttl_seconds
        self.updates: list[ProgressUpdate] = []
        self.challenges: list[CaptchaChallenge] = []
        self._solved_order: list[str] = []

    def append(self, update: ProgressUpdate) -> ProgressUpdate:
        update.update_id = len(self.updates) + 1
        self.updates.append(update)
        return update

    def latest(self, job_id: str) -> ProgressUpdate | None:
        matching = [update for update in self.updates if update.job_id == job_id]
        return matching[-1] if matching else None

    def history(self, job_id: str) -> list[ProgressUpdate]:
        return [update for update in self.updates if update.job_id == job_id]

    def unsolved_challenge(self, job_id: str) -> CaptchaChallenge | None:
        open_ = [
            c
            for c in self.challenges
            if c.job_id == job_id and not c.solved and not c.superseded
        ]
        return open_[-1] if open_ else None

    def solved_challenge(self, job_id: str) -> CaptchaChallenge | None:
        for challenge_id in reversed(self._solved_order):
            challenge = self._find(challenge_id)
            if challenge.job_id == job_id:
                return challenge
        return None

    def create_challenge(self, job_id: str, image_url: str) -> CaptchaChallenge:
        self.challenges = [
            _replace(c, superseded=True)
            if c.job_id == job_id and not c.solved and not c.superseded
            else c
            for c in self.challenges
        ]
        now = int(self._clock())
        challenge = CaptchaChallenge(
            challenge_id=uuid.uuid4().hex,
            job_id=job_id,
            image_url=image_url,
            created_at=now,
            expires_at=now + self._ttl_seconds,
        )
        self.challenges.append(challenge)
        return challenge

    def update_challenge_image(self, job_id: str, image_url: str) -> None:
        current = self.unsolved_challenge(job_id)
        if current is not None:
            self._swap(current, _replace(current, image_url=image_url))

    def open_challenges(self, job_id: str) -> list[CaptchaChallenge]:
        return [
            c
            for c in self.challenges
            if c.job_id == job_id and not c.solved and not c.superseded
        ]

    def solve(self, challenge_id: str, solution: str) -> None:
        """Play the human: attach ``solution`` to a challenge, stale or not."""
        challenge = self._find(challenge_id)
        self._swap(challenge, _replace(challenge, solved=True, solution=solution))
        self._solved_order.append(challenge_id)

    def request_refresh(self, job_id: str) -> ProgressUpdate:
        return self.append(
            ProgressUpdate(
                job_id=job_id,
                step_name=REFRESH_REQUEST_STEP,
                status="waiting_for_captcha",
                message="refresh",
                percentage=0,
            )
        )

    def _find(self, challenge_id: str) -> CaptchaChallenge:
        return next(c for c in self.challenges if c.challenge_id == challenge_id)

    def _swap(self, old: CaptchaChallenge, new: CaptchaChallenge) -> None:
        self.challenges[self.challenges.index(old)] = new


def _replace(challenge: CaptchaChallenge, **changes: Any) -> CaptchaChallenge:
    values = {
        "challenge_id": challenge.challenge_id,
        "job_id": challenge.job_id,
        "image_url": challenge.image_url,
        "created_at": challenge.created_at,
        "expires_at": challenge.expires_at,
        "solved": challenge.solved,
        "solution": challenge.solution,
        "superseded": challenge.superseded,
    }
    values.update(changes)
    return CaptchaChallenge(**values)


class InMemoryJobSink:
    def __init__(self, initial: JobStatus = JobStatus.PENDING) -> None:
        self.status: dict[str, JobStatus] = {}
        self.history: list[tuple[str, JobStatus]] = []
        self.failure_reasons: dict[str, str] = {}
        self.results: dict[str, dict[str, Any]] = {}
        self.applications: dict[str, dict[str, str]] = {}
        self._initial = initial

    def _move(self, job_id: str, target: JobStatus) -> None:
        current = self.status.get(job_id, self._initial)
        if current == target and target == JobStatus.RUNNING:
            return
        if not can_transition(current, target):
            raise InvalidStatusTransition(job_id, current, target)
        self.status[job_id] = target
        self.history.append((job_id, target))

    def mark_running(self, job_id: str) -> None:
        self._move(job_id, JobStatus.RUNNING)

    def mark_waiting_for_captcha(self, job_id: str) -> None:
        self._move(job_id, JobStatus.WAITING_FOR_CAPTCHA)

    def mark_failed(self, job_id: str, reason: str) -> None:
        self._move(job_id, JobStatus.FAILED)
        self.failure_reasons[job_id] = reason

    def mark_completed(self, job_id: str, result: dict[str, Any]) -> None:
        self._move(job_id, JobStatus.COMPLETED)
        self.results[job_id] = result

    def record_application(
        self,
        job_id: str,
        *,
        application_id: str,
        application_date: str,
        security_answer: str,
    ) -> None:
        self.applications[job_id] = {
            "application_id": application_id,
            "application_date": application_date,
            "security_answer": security_answer,
        }


class InMemoryArtifactStore:
    def __init__(self) -> None:
        self.stored: list[dict[str, Any]] = []

    def store(
        self,
        data: bytes,
        *,
        job_id: str,
        kind: str,
        filename: str,
        mime_type: str,
    ) -> ArtifactRef:
        artifact_id = f"{job_id}/{kind}/{filename}"
        self.stored.append(
            {"artifact_id": artifact_id, "kind": kind, "mime_type": mime_type, "size": len(data)}
        )
        return ArtifactRef(artifact_id=artifact_id, public_url=f"/artifacts/{artifact_id}")

    def kinds(self) -> list[str]:
        return [entry["kind"] for entry in self.stored]


LANDING_URL = "https://ceac.state.gov/GenNIV/Default.aspx"
CONFIRM_URL = "https://ceac.state.gov/GenNIV/General/ConfirmApplicationID.aspx"
FORM_URL = "https://ceac.state.gov/GenNIV/General/complete/complete.aspx"


def scripted_ceac_driver(*, captcha: bool = False) -> FakeDriver:
    """A ``FakeDriver`` that walks the landing and confirmation pages like the site.

    No validation messages are shown; the CAPTCHA image is present only when
    ``captcha`` is set.
    """
    locators = CaptchaLocators()
    driver = FakeDriver(url=LANDING_URL)
    driver.hide(*VALIDATION_SUMMARY_LOCATORS, *locators.errors)
    for step in ceac_steps():
        driver.hide(*(known.locator for known in step.known_errors))
    if not captcha:
        driver.hide(locators.image)
    driver.texts[APPLICATION_ID_LABEL] = ["  AA00ABCDE1 "]
    driver.texts[APPLICATION_DATE_LABEL] = ["17-OCT-2026"]

    def leave_landing_page(active: FakeDriver) -> None:
        active.hide(LOCATION_SELECT)
        active.url = CONFIRM_URL

    def leave_confirmation_page(active: FakeDriver) -> None:
        active.hide(APPLICATION_ID_LABEL)
        active.url = FORM_URL

    driver.on_click[START_APPLICATION_LINK] = leave_landing_page
    driver.on_click[CONTINUE_BUTTON] = leave_confirmation_page
    return driver
