"""Apply fill actions to the page with per-field fault isolation."""

from __future__ import annotations

import logging
from typing import Iterable

from app.ceac.errors import ElementNotFound, FaultScope, classify_fault
from app.ceac.models import FieldType, FillAction, FillReport
from app.ceac.ports import BrowserDriver
from app.ceac.postback import PostbackSynchronizer

LOGGER = logging.getLogger(__name__)


class FieldApplier:
    def __init__(
        self,
        synchronizer: PostbackSynchronizer,
        *,
        field_timeout_ms: int = 5_000,
        reveal_timeout_ms: int = 3_000,
    ) -> None:
        self._synchronizer = synchronizer
        self._field_timeout_ms = field_timeout_ms
        self._reveal_timeout_ms = reveal_timeout_ms

    async def apply_action(self, driver: BrowserDriver, action: FillAction) -> None:
        """Drive one control; revealed controls get a bounded wait to appear."""
        handle = await driver.locate(action.locator)
        timeout_ms = self._reveal_timeout_ms if action.revealed else self._field_timeout_ms
        if not await driver.is_visible(handle, timeout_ms):
            raise ElementNotFound(action.locator)

        if action.field_type == FieldType.SELECT:
            await driver.select_option(handle, str(action.value))
        elif action.field_type == FieldType.RADIO:
            await driver.check(handle)
        elif action.field_type == FieldType.CHECKBOX:
            if action.value:
                await driver.check(handle)
            else:
                await driver.uncheck(handle)
        else:
            await driver.fill(handle, str(action.value))

        if action.mapping.triggers_postback:
            await self._synchronizer.await_stable(driver, f"postback after {action.key}")

    async def apply(
        self,
        driver: BrowserDriver,
        actions: Iterable[FillAction],
        report: FillReport | None = None,
    ) -> FillReport:
        """Apply ``actions`` in order.

        Field-local faults are recorded in the report and the walk continues;
        descendants of a failed or skipped field are skipped. Any other fault
        propagates.
        """
        report = report if report is not None else FillReport()
        for action in actions:
            parent = action.parent_key
            if parent and (parent in report.failed or parent in report.skipped_descendants):
                report.skipped_descendants.append(action.key)
                continue
            try:
                await self.apply_action(driver, action)
            except Exception as exc:
                if classify_fault(exc) != FaultScope.FIELD_LOCAL:
                    raise
                report.failed[action.key] = str(exc)
                LOGGER.warning(
                    "Field %s not filled: %s",
                    action.key,
                    exc,
                    extra={"reason": exc.__class__.__name__},
                )
                continue
            if action.key not in report.applied:
                report.applied.append(action.key)
        return report
