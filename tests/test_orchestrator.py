from __future__ import annotations

import asyncio
from typing import Any

import pytest

from app.ceac.captcha import CaptchaLocators
from app.ceac.catalog import (
    LOCATION_SELECT,
    SECURITY_ANSWER_INPUT,
    SECURITY_QUESTION_SELECT,
    START_APPLICATION_LINK,
    radio,
    text,
)
from app.ceac.models import (
    DEFAULT_ADVANCE_LOCATOR,
    FieldMapping,
    FieldType,
    Job,
    JobStatus,
    StepDefinition,
)
from app.ceac.orchestrator import build_orchestrator
from app.ceac.step_hooks import DEFAULT_STEP_HOOKS, SECURITY_QUESTION, StepHooks
from app.ceac.validation_gate import VALIDATION_SUMMARY_LOCATORS
from app.core.config import EngineConfig
from tests.fakes import (
    FakeClock,
    FakeDriver,
    InMemoryArtifactStore,
    InMemoryJobSink,
    InMemoryProgressStore,
    scripted_ceac_driver,
)
from tests.mock_applicant import mock_form_data

CAPTCHA = CaptchaLocators()
SUMMARY = VALIDATION_SUMMARY_LOCATORS[0]


def _config(**overrides: Any) -> EngineConfig:
    values: dict[str, Any] = {
        "postback_idle_timeout_ms": 10,
        "postback_settle_ms": 5,
        "field_timeout_ms": 10,
        "reveal_timeout_ms": 10,
        "captcha_timeout_seconds": 10,
        "captcha_poll_interval_seconds": 2,
    }
    values.update(overrides)
    return EngineConfig(**values)


class _Scenario:
    """One job against a scripted CEAC site."""

    def __init__(
        self,
        *,
        captcha: bool = False,
        steps: tuple[StepDefinition, ...] | None = None,
        hooks: dict[str, StepHooks] | None = None,
        config: EngineConfig | None = None,
        form_data: dict[str, Any] | None = None,
    ) -> None:
        self.clock = FakeClock()
        self.store = InMemoryProgressStore(clock=self.clock)
        self.artifacts = InMemoryArtifactStore()
        self.sink = InMemoryJobSink()
        self.driver = scripted_ceac_driver(captcha=captcha)
        self.job = Job(
            job_id="job-1",
            user_id="user-1",
            embassy="ISL",
            form_data=mock_form_data() if form_data is None else form_data,
        )
        self.orchestrator = build_orchestrator(
            config or _config(),
            driver=self.driver,
            progress_store=self.store,
            artifact_store=self.artifacts,
            job_sink=self.sink,
            steps=steps,
            hooks=hooks,
            clock=self.clock,
            sleep=self.clock.sleep,
        )

    def run(self):
        return asyncio.run(self.orchestrator.run(self.job, self.job.form_data))

    def statuses(self) -> list[JobStatus]:
        return [status for _, status in self.sink.history]

    def step_names(self) -> list[str]:
        return [update.step_name for update in self.store.updates]


def test_full_application_completes_every_step() -> None:
    scenario = _Scenario()

    result = scenario.run()

    assert result.status == JobStatus.COMPLETED
    assert result.completed_steps == 19
    assert result.application_id == "AA00ABCDE1"
    assert scenario.orchestrator.completed_steps == list(range(1, 20))
    assert scenario.statuses() == [JobStatus.RUNNING, JobStatus.COMPLETED]
    assert scenario.sink.results["job-1"]["application_id"] == "AA00ABCDE1"
    assert scenario.driver.screenshots == 0

    started = [
        update.step_number
        for update in scenario.store.updates
        if update.step_number is not None and update.status == "running"
        and update.step_name != "application_id_extracted"
    ]
    assert started == list(range(1, 20))
    last = scenario.store.updates[-1]
    assert last.step_name == "job_completed"
    assert last.percentage == 100
    assert "application_id_extracted" in scenario.step_names()


def test_engine_values_reach_the_page() -> None:
    scenario = _Scenario()

    scenario.run()

    selects = dict(scenario.driver.calls("select"))
    fills = dict(scenario.driver.calls("fill"))
    application = scenario.sink.applications["job-1"]
    assert selects[LOCATION_SELECT] == "ISL"
    assert selects[SECURITY_QUESTION_SELECT] == SECURITY_QUESTION
    assert fills[SECURITY_ANSWER_INPUT] == application["security_answer"]
    assert len(application["security_answer"]) == 6
    assert application["application_date"] == "17-OCT-2026"
    assert fills["#ctl00_SiteContentPlaceHolder_FormView1_tbxAPP_SSN1"] == "123"
    assert fills["#ctl00_SiteContentPlaceHolder_FormView1_tbxAPP_SSN2"] == "45"
    assert fills["#ctl00_SiteContentPlaceHolder_FormView1_tbxAPP_SSN3"] == "6789"


def test_captcha_solved_mid_run_advances_without_second_click() -> None:
    scenario = _Scenario(captcha=True)

    def human(count: int) -> None:
        challenge = scenario.store.unsolved_challenge("job-1")
        if count == 1 and challenge is not None:
            scenario.store.solve(challenge.challenge_id, "K7PQ2")

    scenario.clock.on_sleep.append(human)

    result = scenario.run()

    assert result.status == JobStatus.COMPLETED
    assert scenario.statuses() == [
        JobStatus.RUNNING,
        JobStatus.WAITING_FOR_CAPTCHA,
        JobStatus.RUNNING,
        JobStatus.COMPLETED,
    ]
    clicks = [selector for selector, _ in scenario.driver.calls("click")]
    assert clicks.count(START_APPLICATION_LINK) == 1
    assert (CAPTCHA.input, "K7PQ2") in scenario.driver.calls("fill")
    assert scenario.artifacts.kinds() == ["captcha"]
    assert {"captcha_detected", "captcha_solved"} <= set(scenario.step_names())


def test_validation_rejection_fails_with_one_screenshot() -> None:
    scenario = _Scenario()

    def reject_first_form_page(driver: FakeDriver) -> None:
        driver.show(SUMMARY)
        driver.texts[f"{SUMMARY} ul li"] = ["Surnames has invalid characters."]

    scenario.driver.on_click[DEFAULT_ADVANCE_LOCATOR] = reject_first_form_page

    result = scenario.run()

    assert result.status == JobStatus.FAILED
    assert result.error_code == "VALIDATION_REJECTED"
    assert result.completed_steps == 2
    assert result.application_id == "AA00ABCDE1"
    assert "Surnames has invalid characters." in result.message
    assert scenario.driver.screenshots == 1
    assert scenario.artifacts.kinds() == ["screenshot"]
    assert result.screenshot_url == scenario.orchestrator.screenshots[0]
    assert scenario.statuses()[-1] == JobStatus.FAILED

    failed = scenario.store.updates[-1]
    assert failed.step_name == "personal_1"
    assert failed.status == "failed"
    assert failed.metadata["errors"] == ["Surnames has invalid characters."]
    assert failed.metadata["screenshot_url"] == result.screenshot_url


def test_captcha_timeout_fails_the_job() -> None:
    scenario = _Scenario(captcha=True)

    result = scenario.run()

    assert result.status == JobStatus.FAILED
    assert result.error_code == "CAPTCHA_TIMEOUT"
    assert result.completed_steps == 0
    assert scenario.statuses() == [
        JobStatus.RUNNING,
        JobStatus.WAITING_FOR_CAPTCHA,
        JobStatus.FAILED,
    ]
    assert scenario.clock.now == pytest.approx(1_010.0)
    failed = scenario.store.updates[-1]
    assert failed.metadata["error_code"] == "CAPTCHA_TIMEOUT"
    assert scenario.artifacts.kinds() == ["captcha", "screenshot"]
    assert result.screenshot_url == scenario.orchestrator.screenshots[0]
    assert failed.metadata["screenshot_url"] == result.screenshot_url
    assert START_APPLICATION_LINK not in [s for s, _ in scenario.driver.calls("click")]


def test_unexpected_fault_is_recorded_and_reraised() -> None:
    async def crash(ctx) -> None:
        raise RuntimeError("renderer crashed")

    hooks = dict(DEFAULT_STEP_HOOKS)
    hooks["personal_1"] = StepHooks(after_fill=crash)
    scenario = _Scenario(hooks=hooks)

    with pytest.raises(RuntimeError, match="renderer crashed"):
        scenario.run()

    assert scenario.orchestrator.completed_steps == [1, 2]
    assert scenario.artifacts.kinds() == ["screenshot"]
    assert scenario.statuses()[-1] == JobStatus.FAILED
    assert scenario.sink.failure_reasons["job-1"] == "RuntimeError: renderer crashed"
    failed = scenario.store.updates[-1]
    assert failed.step_name == "personal_1"
    assert failed.metadata["error_code"] == "CEAC_UNEXPECTED_ERROR"


def test_after_fill_hook_runs_before_advance() -> None:
    seen: list[tuple[int, int]] = []

    async def record(ctx) -> None:
        advance_clicks = [
            s for s, _ in ctx.driver.calls("click") if s == DEFAULT_ADVANCE_LOCATOR
        ]
        seen.append((ctx.step.number, len(advance_clicks)))

    hooks = dict(DEFAULT_STEP_HOOKS)
    hooks["personal_1"] = StepHooks(after_fill=record)
    scenario = _Scenario(hooks=hooks)

    result = scenario.run()

    assert result.status == JobStatus.COMPLETED
    assert seen == [(3, 0)]


def _single_step(*fields: FieldMapping) -> tuple[StepDefinition, ...]:
    return (StepDefinition(number=1, key="only", label="Only", fields=fields),)


def test_abort_when_every_field_of_a_step_fails() -> None:
    steps = _single_step(FieldMapping(key="a.b", locator="#gone", field_type=FieldType.TEXT))
    scenario = _Scenario(
        steps=steps,
        hooks={},
        config=_config(abort_when_all_fields_fail=True),
        form_data={"a.b": "x"},
    )
    scenario.driver.hide("#gone")

    result = scenario.run()

    assert result.status == JobStatus.FAILED
    assert result.error_code == "STEP_FILL_FAILED"
    assert result.completed_steps == 0
    assert scenario.artifacts.kinds() == ["screenshot"]
    assert result.screenshot_url


def test_failed_fields_do_not_stop_the_step_by_default() -> None:
    steps = _single_step(FieldMapping(key="a.b", locator="#gone", field_type=FieldType.TEXT))
    scenario = _Scenario(steps=steps, hooks={}, form_data={"a.b": "x"})
    scenario.driver.hide("#gone")

    result = scenario.run()

    assert result.status == JobStatus.COMPLETED
    assert list(scenario.orchestrator.reports[1].failed) == ["a.b"]


def test_revealed_fields_are_filled_after_their_trigger() -> None:
    steps = _single_step(
        radio("q.flag", "rblFlag", yes=(text("q.flag_explain", "tbxFlag"),)),
    )
    scenario = _Scenario(
        steps=steps,
        hooks={},
        form_data={"q.flag": "Yes", "q.flag_explain": "Details"},
    )

    result = scenario.run()

    assert result.status == JobStatus.COMPLETED
    verbs = [(verb, selector) for verb, selector, _ in scenario.driver.actions]
    trigger = verbs.index(
        ("check", '#ctl00_SiteContentPlaceHolder_FormView1_rblFlag input[type="radio"][value="Y"]')
    )
    revealed = verbs.index(("fill", "#ctl00_SiteContentPlaceHolder_FormView1_tbxFlag"))
    assert trigger < revealed
