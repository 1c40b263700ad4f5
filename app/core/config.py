"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

CEAC_DEFAULT_BASE_URL = "https://ceac.state.gov/GenNIV/Default.aspx"


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class EngineConfig:
    """Timing and policy knobs of the CEAC automation engine."""

    postback_idle_timeout_ms: int = 10_000
    postback_settle_ms: int = 2_000
    field_timeout_ms: int = 5_000
    reveal_timeout_ms: int = 3_000
    captcha_timeout_seconds: float = 300.0
    captcha_poll_interval_seconds: float = 2.0
    captcha_ttl_seconds: int = 300
    captcha_max_rejections: int = 5
    progress_baseline: int = 40
    progress_increment: int = 2
    abort_when_all_fields_fail: bool = False


@dataclass(frozen=True)
class BrowserConfig:
    """Playwright launch settings for per-job browser sessions."""

    base_url: str = CEAC_DEFAULT_BASE_URL
    headless: bool = True
    slow_mo_ms: int = 0
    navigation_timeout_ms: int = 30_000
    action_timeout_ms: int = 10_000


@dataclass(frozen=True)
class QueueConfig:
    """Durable task queue runtime configuration."""

    sqlite_path: str
    default_ttl_seconds: int
    default_max_retries: int
    default_retry_delay_seconds: int
    worker_concurrency: int = 2


@dataclass(frozen=True)
class StorageConfig:
    """Progress database and artifact locations."""

    sqlite_path: str
    artifacts_dir: str
    public_prefix: str = "/runtime/artifacts"


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    engine: EngineConfig
    browser: BrowserConfig
    queue: QueueConfig
    storage: StorageConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        engine = EngineConfig(
            postback_idle_timeout_ms=int(
                os.getenv("CEAC_POSTBACK_IDLE_TIMEOUT_MS", "10000")
            ),
            postback_settle_ms=int(os.getenv("CEAC_POSTBACK_SETTLE_MS", "2000")),
            field_timeout_ms=int(os.getenv("CEAC_FIELD_TIMEOUT_MS", "5000")),
            reveal_timeout_ms=int(os.getenv("CEAC_REVEAL_TIMEOUT_MS", "3000")),
            captcha_timeout_seconds=float(
                os.getenv("CEAC_CAPTCHA_TIMEOUT_SECONDS", "300")
            ),
            captcha_poll_interval_seconds=float(
                os.getenv("CEAC_CAPTCHA_POLL_INTERVAL_SECONDS", "2")
            ),
            captcha_ttl_seconds=int(os.getenv("CEAC_CAPTCHA_TTL_SECONDS", "300")),
            captcha_max_rejections=int(os.getenv("CEAC_CAPTCHA_MAX_REJECTIONS", "5")),
            progress_baseline=int(os.getenv("CEAC_PROGRESS_BASELINE", "40")),
            progress_increment=int(os.getenv("CEAC_PROGRESS_INCREMENT", "2")),
            abort_when_all_fields_fail=_env_flag(
                "CEAC_ABORT_WHEN_ALL_FIELDS_FAIL", "0"
            ),
        )
        browser = BrowserConfig(
            base_url=os.getenv("CEAC_BASE_URL", "").strip() or CEAC_DEFAULT_BASE_URL,
            headless=_env_flag("BROWSER_HEADLESS", "1"),
            slow_mo_ms=int(os.getenv("BROWSER_SLOW_MO_MS", "0")),
            navigation_timeout_ms=int(
                os.getenv("BROWSER_NAVIGATION_TIMEOUT_MS", "30000")
            ),
            action_timeout_ms=int(os.getenv("BROWSER_ACTION_TIMEOUT_MS", "10000")),
        )
        state_db_path = (
            os.getenv("TASK_QUEUE_SQLITE_PATH", "runtime/app_state.db").strip()
            or "runtime/app_state.db"
        )
        queue = QueueConfig(
            sqlite_path=state_db_path,
            default_ttl_seconds=int(os.getenv("TASK_QUEUE_TTL_SECONDS", "86400")),
            default_max_retries=int(os.getenv("TASK_QUEUE_MAX_RETRIES", "0")),
            default_retry_delay_seconds=int(
                os.getenv("TASK_QUEUE_RETRY_DELAY_SECONDS", "5")
            ),
            worker_concurrency=max(1, int(os.getenv("WORKER_CONCURRENCY", "2"))),
        )
        storage = StorageConfig(
            sqlite_path=os.getenv("CEAC_STATE_SQLITE_PATH", "").strip()
            or state_db_path,
            artifacts_dir=os.getenv("ARTIFACTS_DIR", "runtime/artifacts").strip()
            or "runtime/artifacts",
        )
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(2 * 1024 * 1024)))

        return AppConfig(
            engine=engine,
            browser=browser,
            queue=queue,
            storage=storage,
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
            ),
        )
