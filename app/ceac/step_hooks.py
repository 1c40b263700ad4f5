"""Per-step behaviour that does not fit the declarative field catalog.

Hooks are looked up by step key. ``before_fill`` runs before the fill plan
is resolved and may extend the overlay; ``after_fill`` runs once every field
of the step has been applied.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
from collections import ChainMap
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

from app.ceac.catalog import (
    APPLICATION_DATE_LABEL,
    APPLICATION_ID_LABEL,
    PRIVACY_CHECKBOX,
)
from app.ceac.errors import ElementNotFound
from app.ceac.models import Job, ProgressStatus, StepDefinition
from app.ceac.ports import BrowserDriver, JobStatusSink
from app.ceac.postback import PostbackSynchronizer
from app.ceac.progress import ProgressReporter

LOGGER = logging.getLogger(__name__)

SECURITY_QUESTION = "What is the given name of your mother's mother?"
SECURITY_ANSWER_LENGTH = 6
_ANSWER_ALPHABET = string.ascii_uppercase + string.digits
_SSN_DIGITS_RE = re.compile(r"\D")


@dataclass
class StepContext:
    """Everything a hook may touch for the step being run."""

    driver: BrowserDriver
    job: Job
    step: StepDefinition
    overrides: dict[str, Any]
    form_data: ChainMap
    progress: ProgressReporter
    job_sink: JobStatusSink
    synchronizer: PostbackSynchronizer
    application: dict[str, str] = field(default_factory=dict)


Hook = Callable[[StepContext], Awaitable[None]]


@dataclass(frozen=True)
class StepHooks:
    before_fill: Hook | None = None
    after_fill: Hook | None = None


def generate_security_answer(length: int = SECURITY_ANSWER_LENGTH) -> str:
    return "".join(secrets.choice(_ANSWER_ALPHABET) for _ in range(length))


def split_ssn(value: Any) -> tuple[str, str, str] | None:
    """Split a nine digit SSN into its 3-2-4 boxes, ``None`` if malformed."""
    digits = _SSN_DIGITS_RE.sub("", str(value or ""))
    if len(digits) != 9:
        return None
    return digits[:3], digits[3:5], digits[5:]


async def _seed_embassy(ctx: StepContext) -> None:
    if ctx.job.embassy:
        ctx.overrides["location.embassy"] = ctx.job.embassy


async def _read_label(driver: BrowserDriver, locator: str) -> str:
    texts = await driver.text_contents(locator)
    return next((text.strip() for text in texts if text and text.strip()), "")


async def _confirm_application_id(ctx: StepContext) -> None:
    driver = ctx.driver
    application_id = await _read_label(driver, APPLICATION_ID_LABEL)
    if not application_id:
        raise ElementNotFound(APPLICATION_ID_LABEL, "Application ID label is empty")
    application_date = await _read_label(driver, APPLICATION_DATE_LABEL)

    privacy = await driver.locate(PRIVACY_CHECKBOX)
    if await driver.is_visible(privacy, 0):
        await driver.check(privacy)
        await ctx.synchronizer.await_stable(driver, "privacy acknowledgement")

    answer = generate_security_answer()
    ctx.overrides["application.security_question"] = SECURITY_QUESTION
    ctx.overrides["application.security_answer"] = answer
    ctx.application.update(
        application_id=application_id, application_date=application_date
    )
    ctx.job_sink.record_application(
        ctx.job.job_id,
        application_id=application_id,
        application_date=application_date,
        security_answer=answer,
    )
    ctx.progress.report(
        ctx.job.job_id,
        "application_id_extracted",
        ProgressStatus.RUNNING,
        f"Application ID: {application_id}",
        ctx.progress.percentage_for(ctx.step),
        step_number=ctx.step.number,
        metadata={"application_id": application_id, "application_date": application_date},
    )


async def _split_social_security_number(ctx: StepContext) -> None:
    raw = ctx.form_data.get("personal_info.us_social_security_number")
    if raw in (None, ""):
        return
    parts = split_ssn(raw)
    if parts is None:
        LOGGER.warning(
            "Ignoring malformed social security number",
            extra={"job_id": ctx.job.job_id, "step": ctx.step.key},
        )
        return
    for index, part in enumerate(parts, start=1):
        ctx.overrides[f"personal_info.us_social_security_number_{index}"] = part


DEFAULT_STEP_HOOKS: Mapping[str, StepHooks] = {
    "location": StepHooks(before_fill=_seed_embassy),
    # The answer fields are only planned once the hook has produced them.
    "application_id": StepHooks(before_fill=_confirm_application_id),
    "personal_2": StepHooks(before_fill=_split_social_security_number),
}
