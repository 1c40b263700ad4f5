"""Collaborator contracts the engine is written against."""

from __future__ import annotations

from typing import Any, Protocol

from app.ceac.models import ArtifactRef, CaptchaChallenge, ProgressUpdate

ElementHandle = Any


class BrowserDriver(Protocol):
    """Async page automation for a single browser session.

    Waits raise ``DriverTimeout``/``NavigationTimeout`` and misses raise
    ``ElementNotFound`` from ``app.ceac.errors``.
    """

    async def navigate(self, url: str) -> None: ...

    async def locate(self, selector: str) -> ElementHandle: ...

    async def fill(self, handle: ElementHandle, text: str) -> None: ...

    async def select_option(self, handle: ElementHandle, value: str) -> None: ...

    async def check(self, handle: ElementHandle) -> None: ...

    async def uncheck(self, handle: ElementHandle) -> None: ...

    async def click(self, handle: ElementHandle) -> None: ...

    async def is_visible(self, handle: ElementHandle, timeout_ms: int = 0) -> bool: ...

    async def wait_for_load_state(self, kind: str, timeout_ms: int) -> None: ...

    async def screenshot(self, handle: ElementHandle | None = None) -> bytes: ...

    async def current_url(self) -> str: ...

    async def text_contents(self, selector: str) -> list[str]: ...

    async def sleep(self, milliseconds: int) -> None: ...


class ProgressStore(Protocol):
    """Append-only progress log plus the CAPTCHA challenge/solution records."""

    def append(self, update: ProgressUpdate) -> ProgressUpdate: ...

    def latest(self, job_id: str) -> ProgressUpdate | None: ...

    def history(self, job_id: str) -> list[ProgressUpdate]: ...

    def unsolved_challenge(self, job_id: str) -> CaptchaChallenge | None: ...

    def solved_challenge(self, job_id: str) -> CaptchaChallenge | None: ...

    def create_challenge(self, job_id: str, image_url: str) -> CaptchaChallenge: ...

    def update_challenge_image(self, job_id: str, image_url: str) -> None: ...


class ArtifactStore(Protocol):
    def store(
        self,
        data: bytes,
        *,
        job_id: str,
        kind: str,
        filename: str,
        mime_type: str,
    ) -> ArtifactRef: ...


class JobStatusSink(Protocol):
    def mark_running(self, job_id: str) -> None: ...

    def mark_waiting_for_captcha(self, job_id: str) -> None: ...

    def mark_failed(self, job_id: str, reason: str) -> None: ...

    def mark_completed(self, job_id: str, result: dict[str, Any]) -> None: ...

    def record_application(
        self,
        job_id: str,
        *,
        application_id: str,
        application_date: str,
        security_answer: str,
    ) -> None: ...
