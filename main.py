from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from app.ceac.catalog import ceac_steps
from app.ceac.field_resolver import flatten_form_data, missing_required
from app.ceac.worker import CeacJobWorker
from app.core.config import AppConfig
from app.core.logging import setup_logging
from app.storage.artifact_store import LocalArtifactStore
from app.storage.sqlite_store import CeacStateStore, ChallengeNotFound, StaleChallenge

APP_ROOT = Path(__file__).resolve().parent


def load_form_data(raw: str) -> dict[str, Any]:
    """Read form data from a JSON file path or a raw JSON string."""
    candidate = Path(raw)
    text = candidate.read_text(encoding="utf-8") if candidate.is_file() else raw
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Form data is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise SystemExit("Form data must be a JSON object.")
    return flatten_form_data(payload)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fill the DS-160 application on the CEAC site for one applicant."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Create a job and run it in this process.")
    run.add_argument(
        "--form-data",
        required=True,
        help="Applicant data. Either a JSON file path or a raw JSON string.",
    )
    run.add_argument("--embassy", required=True, help="CEAC location code, e.g. ISL.")
    run.add_argument("--user-id", default="cli")
    run.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window instead of running headless.",
    )

    solve = sub.add_parser("solve", help="Submit a CAPTCHA solution for a running job.")
    solve.add_argument("--job-id", required=True)
    solve.add_argument("--challenge-id", required=True)
    solve.add_argument("--solution", required=True)

    status = sub.add_parser("status", help="Print a job and its progress history.")
    status.add_argument("--job-id", required=True)
    return parser


def _open_store(config: AppConfig) -> CeacStateStore:
    return CeacStateStore(
        (APP_ROOT / config.storage.sqlite_path).resolve(),
        captcha_ttl_seconds=config.engine.captcha_ttl_seconds,
    )


async def run_job(config: AppConfig, args: argparse.Namespace) -> dict[str, Any]:
    form_data = load_form_data(args.form_data)
    missing = missing_required(ceac_steps(), form_data)
    if missing:
        logging.getLogger("main").warning("Missing required fields: %s", ", ".join(missing))

    store = _open_store(config)
    try:
        job = store.create_job(user_id=args.user_id, embassy=args.embassy, form_data=form_data)
        print(json.dumps({"job_id": job.job_id, "status": str(job.status)}), flush=True)
        worker = CeacJobWorker(
            config=config,
            state_store=store,
            artifact_store=LocalArtifactStore(
                (APP_ROOT / config.storage.artifacts_dir).resolve(),
                public_prefix=config.storage.public_prefix,
            ),
        )
        result = await worker.run(job.job_id)
        return result.to_dict() if result else {"job_id": job.job_id, "skipped": True}
    finally:
        store.close()


def main() -> None:
    load_dotenv()
    config = AppConfig.from_env()
    setup_logging(config.logging.level)
    args = build_parser().parse_args()

    if args.command == "run":
        if args.headed:
            config = replace(config, browser=replace(config.browser, headless=False))
        summary = asyncio.run(run_job(config, args))
        print(json.dumps(summary, ensure_ascii=False, indent=2))
        return

    store = _open_store(config)
    try:
        if args.command == "solve":
            try:
                challenge = store.solve_challenge(args.job_id, args.challenge_id, args.solution)
            except (ChallengeNotFound, StaleChallenge) as exc:
                raise SystemExit(f"Solution not accepted: {exc}") from exc
            print(json.dumps({"challenge_id": challenge.challenge_id, "status": "solved"}))
            return

        record = store.job_record(args.job_id)
        if record is None:
            raise SystemExit(f"Job not found: {args.job_id}")
        record["progress"] = [asdict(update) for update in store.history(args.job_id)]
        print(json.dumps(record, ensure_ascii=False, indent=2, default=str))
    finally:
        store.close()


if __name__ == "__main__":
    main()
