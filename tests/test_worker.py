from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

from app.ceac.errors import NavigationTimeout
from app.ceac.step_hooks import DEFAULT_STEP_HOOKS, StepHooks
from app.ceac.worker import CeacJobWorker
from app.core.config import (
    AppConfig,
    BrowserConfig,
    EngineConfig,
    LoggingConfig,
    QueueConfig,
    SecurityConfig,
    StorageConfig,
)
from app.core.task_queue import NonRetryableTaskError
from app.storage.sqlite_store import CeacStateStore
from tests.fakes import FakeDriver, InMemoryArtifactStore, scripted_ceac_driver
from tests.mock_applicant import mock_form_data


def _config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        engine=EngineConfig(
            postback_idle_timeout_ms=10,
            postback_settle_ms=5,
            field_timeout_ms=10,
            reveal_timeout_ms=10,
            captcha_timeout_seconds=10,
            captcha_poll_interval_seconds=2,
        ),
        browser=BrowserConfig(),
        queue=QueueConfig(
            sqlite_path=str(tmp_path / "state.db"),
            default_ttl_seconds=60,
            default_max_retries=0,
            default_retry_delay_seconds=1,
        ),
        storage=StorageConfig(
            sqlite_path=str(tmp_path / "state.db"),
            artifacts_dir=str(tmp_path / "artifacts"),
        ),
        logging=LoggingConfig(level="INFO"),
        security=SecurityConfig(cors_allowed_origins=[], request_max_bytes=1024),
    )


class _UnreachableSite(FakeDriver):
    async def navigate(self, url: str) -> None:
        raise NavigationTimeout(f"Timed out loading {url}")


class _Harness:
    def __init__(self, tmp_path: Path, driver: FakeDriver | None = None, hooks=None) -> None:
        self.config = _config(tmp_path)
        self.store = CeacStateStore(tmp_path / "state.db")
        self.artifacts = InMemoryArtifactStore()
        self.driver = driver or scripted_ceac_driver()
        self.sessions: list[BrowserConfig] = []
        self.worker = CeacJobWorker(
            config=self.config,
            state_store=self.store,
            artifact_store=self.artifacts,
            session_factory=self._session,
            hooks=hooks,
        )

    @asynccontextmanager
    async def _session(self, config: BrowserConfig):
        self.sessions.append(config)
        yield self.driver

    def create_job(self) -> str:
        return self.store.create_job(
            user_id="user-1", embassy="ISL", form_data=mock_form_data()
        ).job_id

    def handle(self, payload: dict):
        return asyncio.run(self.worker.handle(payload))


def test_worker_runs_job_to_completion(tmp_path: Path) -> None:
    harness = _Harness(tmp_path)
    job_id = harness.create_job()

    result = harness.handle({"job_id": job_id})

    assert result["status"] == "completed"
    assert result["completed_steps"] == 19
    assert ("navigate", harness.config.browser.base_url, None) in harness.driver.actions
    record = harness.store.job_record(job_id)
    assert record["status"] == "completed"
    assert record["application_id"] == "AA00ABCDE1"
    assert record["result"]["application_id"] == "AA00ABCDE1"
    assert harness.store.latest(job_id).step_name == "job_completed"


def test_worker_skips_terminal_jobs(tmp_path: Path) -> None:
    harness = _Harness(tmp_path)
    job_id = harness.create_job()
    harness.store.cancel_job(job_id)

    result = harness.handle({"job_id": job_id})

    assert result == {"job_id": job_id, "skipped": True}
    assert harness.sessions == []


def test_unreachable_site_fails_job_before_first_step(tmp_path: Path) -> None:
    harness = _Harness(tmp_path, driver=_UnreachableSite())
    job_id = harness.create_job()

    result = harness.handle({"job_id": job_id})

    assert result["status"] == "failed"
    assert result["error_code"] == "NAVIGATION_TIMEOUT"
    assert result["completed_steps"] == 0
    record = harness.store.job_record(job_id)
    assert record["status"] == "failed"
    latest = harness.store.latest(job_id)
    assert latest.step_name == "job_failed"
    assert latest.metadata["error_code"] == "NAVIGATION_TIMEOUT"


def test_worker_rejects_bad_payloads(tmp_path: Path) -> None:
    harness = _Harness(tmp_path)

    with pytest.raises(NonRetryableTaskError):
        harness.handle({})
    with pytest.raises(NonRetryableTaskError):
        harness.handle({"job_id": "missing"})


def test_unexpected_fault_fails_job_without_retry(tmp_path: Path) -> None:
    async def crash(ctx) -> None:
        raise RuntimeError("renderer crashed")

    hooks = dict(DEFAULT_STEP_HOOKS)
    hooks["travel"] = StepHooks(before_fill=crash)
    harness = _Harness(tmp_path, hooks=hooks)
    job_id = harness.create_job()

    with pytest.raises(NonRetryableTaskError, match="renderer crashed"):
        harness.handle({"job_id": job_id})

    record = harness.store.job_record(job_id)
    assert record["status"] == "failed"
    assert "RuntimeError" in record["failure_reason"]
    assert harness.artifacts.kinds() == ["screenshot"]
