"""Decide whether the page reached after an advance accepted the step."""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, urlsplit

from app.ceac.models import StepDefinition, ValidationOutcome, ValidationVerdict
from app.ceac.ports import BrowserDriver

LOGGER = logging.getLogger(__name__)

VALIDATION_SUMMARY_LOCATORS = (
    "#ctl00_SiteContentPlaceHolder_FormView1_ValidationSummary",
    "#ctl00_SiteContentPlaceHolder_ValidationSummary1",
)


def url_matches_page_hint(url: str, page_hint: str) -> bool:
    """Exact match of a page hint against a URL.

    ``key=value`` hints compare one query parameter, anything else compares
    the last path segment. Both ignore case.
    """
    parts = urlsplit(url)
    if "=" in page_hint:
        key, _, expected = page_hint.partition("=")
        query = {
            name.lower(): values
            for name, values in parse_qs(parts.query, keep_blank_values=True).items()
        }
        return any(value.lower() == expected.lower() for value in query.get(key.lower(), []))
    segment = parts.path.rstrip("/").rsplit("/", 1)[-1]
    return segment.lower() == page_hint.lower()


def _clean(texts: list[str]) -> tuple[str, ...]:
    return tuple(text.strip() for text in texts if text and text.strip())


class ValidationGate:
    """Inspect-only checks, first positive match wins.

    1. step-specific known error elements,
    2. the generic validation summary and its ``ul li`` entries,
    3. the step's own marker or URL still being shown.

    The gate never captures diagnostics itself; the caller must do so
    before touching the page again.
    """

    def __init__(
        self,
        summary_locators: tuple[str, ...] = VALIDATION_SUMMARY_LOCATORS,
    ) -> None:
        self._summary_locators = summary_locators

    async def check_after_advance(
        self, driver: BrowserDriver, step: StepDefinition
    ) -> ValidationOutcome:
        for known in step.known_errors:
            if await driver.is_visible(await driver.locate(known.locator), 0):
                errors = _clean(await driver.text_contents(known.locator))
                return self._log(
                    step,
                    ValidationOutcome(
                        ValidationVerdict.REJECTED,
                        errors or (known.message,),
                        source="known_error",
                    ),
                )

        for locator in self._summary_locators:
            if not await driver.is_visible(await driver.locate(locator), 0):
                continue
            errors = _clean(await driver.text_contents(f"{locator} ul li"))
            if not errors:
                errors = _clean(await driver.text_contents(locator))
            return self._log(
                step,
                ValidationOutcome(
                    ValidationVerdict.REJECTED, errors, source="validation_summary"
                ),
            )

        if step.marker and await driver.is_visible(await driver.locate(step.marker), 0):
            return self._log(
                step, ValidationOutcome(ValidationVerdict.SAME_STEP, source="marker")
            )
        if step.page_hint:
            current_url = await driver.current_url()
            if url_matches_page_hint(current_url, step.page_hint):
                return self._log(
                    step, ValidationOutcome(ValidationVerdict.SAME_STEP, source="url")
                )

        return ValidationOutcome(ValidationVerdict.ACCEPTED)

    @staticmethod
    def _log(step: StepDefinition, outcome: ValidationOutcome) -> ValidationOutcome:
        LOGGER.warning(
            "Step %s not accepted (%s): %s",
            step.number,
            outcome.source,
            "; ".join(outcome.errors) or "no error text",
            extra={"step": step.key},
        )
        return outcome
