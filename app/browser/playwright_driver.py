from __future__ import annotations

import logging
import os
import shutil
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from playwright.async_api import (
    Browser,
    BrowserContext,
    Dialog,
    Error as PlaywrightError,
    Locator,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from app.ceac.errors import DriverTimeout, ElementNotFound, NavigationTimeout
from app.core.config import BrowserConfig

LOGGER = logging.getLogger(__name__)

DEFAULT_CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/123.0.0.0 Safari/537.36"
)


def _chromium_executable_path() -> str | None:
    explicit = os.getenv("PLAYWRIGHT_CHROMIUM_EXECUTABLE_PATH", "").strip()
    if explicit:
        return explicit
    for candidate in ["chromium", "chromium-browser", "google-chrome", "google-chrome-stable"]:
        found = shutil.which(candidate)
        if found:
            return found
    return None


async def _launch_chromium(p: Playwright, *, headless: bool, slow_mo: int) -> Browser:
    launch_kwargs: dict[str, Any] = {"headless": headless, "slow_mo": slow_mo}
    executable_path = _chromium_executable_path()
    if executable_path:
        launch_kwargs["executable_path"] = executable_path
    return await p.chromium.launch(**launch_kwargs)


async def _accept_dialog(dialog: Dialog) -> None:
    LOGGER.info("Accepting page dialog: %s", dialog.message)
    await dialog.accept()


class PlaywrightDriver:
    """``BrowserDriver`` over one Playwright page.

    Playwright timeouts are translated into the engine's fault types so that
    callers never see library exceptions.
    """

    def __init__(
        self,
        page: Page,
        *,
        action_timeout_ms: int = 10_000,
        navigation_timeout_ms: int = 30_000,
    ) -> None:
        self.page = page
        self._action_timeout_ms = action_timeout_ms
        self._navigation_timeout_ms = navigation_timeout_ms

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(
                url, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(f"Timed out loading {url}") from exc
        except PlaywrightError as exc:
            raise NavigationTimeout(f"Failed to load {url}: {exc}") from exc

    async def locate(self, selector: str) -> Locator:
        return self.page.locator(selector).first

    async def fill(self, handle: Locator, text: str) -> None:
        async def action() -> None:
            await handle.fill(text, timeout=self._action_timeout_ms)

        await self._interact(handle, "fill", action)

    async def select_option(self, handle: Locator, value: str) -> None:
        async def action() -> None:
            await handle.select_option(value=value, timeout=self._action_timeout_ms)

        await self._interact(handle, "select", action)

    async def check(self, handle: Locator) -> None:
        async def action() -> None:
            await handle.check(timeout=self._action_timeout_ms)

        await self._interact(handle, "check", action)

    async def uncheck(self, handle: Locator) -> None:
        async def action() -> None:
            await handle.uncheck(timeout=self._action_timeout_ms)

        await self._interact(handle, "uncheck", action)

    async def click(self, handle: Locator) -> None:
        async def action() -> None:
            await handle.click(timeout=self._action_timeout_ms)

        await self._interact(handle, "click", action)

    async def is_visible(self, handle: Locator, timeout_ms: int = 0) -> bool:
        if timeout_ms <= 0:
            try:
                return await handle.is_visible()
            except PlaywrightError:
                return False
        try:
            await handle.wait_for(state="visible", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            return False
        return True

    async def wait_for_load_state(self, kind: str, timeout_ms: int) -> None:
        try:
            await self.page.wait_for_load_state(kind, timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise DriverTimeout(f"Load state {kind} not reached in {timeout_ms}ms") from exc

    async def screenshot(self, handle: Locator | None = None) -> bytes:
        try:
            if handle is not None:
                return await handle.screenshot(timeout=self._action_timeout_ms)
            return await self.page.screenshot(full_page=True)
        except PlaywrightTimeoutError as exc:
            raise DriverTimeout("Screenshot timed out") from exc

    async def current_url(self) -> str:
        return self.page.url

    async def text_contents(self, selector: str) -> list[str]:
        return await self.page.locator(selector).all_text_contents()

    async def sleep(self, milliseconds: int) -> None:
        await self.page.wait_for_timeout(milliseconds)

    async def _interact(self, handle: Locator, verb: str, action) -> None:
        try:
            await action()
        except PlaywrightTimeoutError as exc:
            raise DriverTimeout(f"{verb} timed out on {handle}") from exc
        except PlaywrightError as exc:
            raise ElementNotFound(str(handle), f"{verb} failed on {handle}: {exc}") from exc


@asynccontextmanager
async def open_browser_session(config: BrowserConfig) -> AsyncIterator[PlaywrightDriver]:
    """Launch a private Chromium context for one job and close it afterwards."""
    async with async_playwright() as p:
        browser = await _launch_chromium(
            p, headless=config.headless, slow_mo=config.slow_mo_ms
        )
        context: BrowserContext | None = None
        try:
            context = await browser.new_context(
                user_agent=DEFAULT_CHROME_UA,
                locale="en-US",
                extra_http_headers={"Accept-Language": "en-US,en;q=0.9"},
            )
            page = await context.new_page()
            page.on("dialog", _accept_dialog)
            LOGGER.info("Browser session opened (headless=%s)", config.headless)
            yield PlaywrightDriver(
                page,
                action_timeout_ms=config.action_timeout_ms,
                navigation_timeout_ms=config.navigation_timeout_ms,
            )
        finally:
            if context is not None:
                await context.close()
            await browser.close()
            LOGGER.info("Browser session closed")
