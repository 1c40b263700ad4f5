"""Wait for the page to settle after a server round-trip."""

from __future__ import annotations

import logging

from app.ceac.errors import DriverTimeout, NavigationTimeout, PostbackAmbiguous
from app.ceac.ports import BrowserDriver

LOGGER = logging.getLogger(__name__)


class PostbackSynchronizer:
    """Best-effort stabilization: network quiescence first, fixed settle second.

    CEAC never signals readiness reliably, so a timeout on the primary
    signal is logged and absorbed here and never reaches the caller.
    """

    def __init__(self, *, idle_timeout_ms: int = 10_000, settle_ms: int = 2_000) -> None:
        self._idle_timeout_ms = idle_timeout_ms
        self._settle_ms = settle_ms
        self.ambiguous_waits = 0

    async def await_stable(self, driver: BrowserDriver, reason: str) -> None:
        try:
            await driver.wait_for_load_state("networkidle", self._idle_timeout_ms)
            return
        except (DriverTimeout, NavigationTimeout) as exc:
            fault = PostbackAmbiguous(f"{reason}: {exc}")
        self.ambiguous_waits += 1
        LOGGER.warning(
            "Postback did not reach network idle, settling for %sms",
            self._settle_ms,
            extra={"reason": str(fault)},
        )
        await driver.sleep(self._settle_ms)
