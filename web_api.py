from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.ceac_routes import CeacRouteDeps, register_ceac_routes
from app.api.http_setup import register_exception_handlers, register_http_middleware
from app.ceac.worker import CeacJobWorker
from app.core.config import AppConfig
from app.core.logging import setup_logging
from app.core.task_queue import QueueSettings, TaskQueue
from app.storage.artifact_store import LocalArtifactStore
from app.storage.sqlite_store import CeacStateStore

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)
LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent
RUNTIME_DIR = APP_ROOT / "runtime"
ARTIFACTS_DIR = (APP_ROOT / APP_CONFIG.storage.artifacts_dir).resolve()

for directory in [RUNTIME_DIR, ARTIFACTS_DIR]:
    directory.mkdir(parents=True, exist_ok=True)


def create_app(config: AppConfig = APP_CONFIG) -> FastAPI:
    app = FastAPI(title="CEAC DS-160 Automation API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Idempotency-Key"],
    )
    app.mount(
        config.storage.public_prefix,
        StaticFiles(directory=str(ARTIFACTS_DIR)),
        name="artifacts",
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    state_store = CeacStateStore(
        (APP_ROOT / config.storage.sqlite_path).resolve(),
        captcha_ttl_seconds=config.engine.captcha_ttl_seconds,
    )
    artifact_store = LocalArtifactStore(
        ARTIFACTS_DIR, public_prefix=config.storage.public_prefix
    )
    task_queue = TaskQueue(
        QueueSettings(
            database_path=(APP_ROOT / config.queue.sqlite_path).resolve(),
            default_ttl_seconds=config.queue.default_ttl_seconds,
            default_max_retries=config.queue.default_max_retries,
            default_retry_delay_seconds=config.queue.default_retry_delay_seconds,
            worker_concurrency=config.queue.worker_concurrency,
        )
    )
    worker = CeacJobWorker(
        config=config,
        state_store=state_store,
        artifact_store=artifact_store,
    )

    async def process_job_task(payload: dict[str, Any]) -> dict[str, Any]:
        return await worker.handle(payload)

    register_ceac_routes(
        app,
        deps=CeacRouteDeps(
            config=config,
            state_store=state_store,
            task_queue=task_queue,
            process_job_task=process_job_task,
            on_shutdown=state_store.close,
        ),
    )

    return app


app = create_app()
