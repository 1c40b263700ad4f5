from __future__ import annotations

import asyncio
from pathlib import Path

from app.core.task_queue import NonRetryableTaskError, QueueSettings, TaskQueue


def _build_queue(tmp_path: Path) -> TaskQueue:
    return TaskQueue(
        QueueSettings(
            database_path=tmp_path / "queue.db",
            default_ttl_seconds=60,
            default_max_retries=2,
            default_retry_delay_seconds=1,
            worker_poll_interval_seconds=0.01,
        )
    )


async def _wait_terminal(queue: TaskQueue, task_id: str) -> dict[str, object]:
    for _ in range(300):
        state = queue.get(task_id)
        if state and str(state.get("status")) in {
            "completed",
            "failed",
            "dead_letter",
        }:
            return state
        await asyncio.sleep(0.01)
    raise AssertionError("Task did not reach terminal state in time")


def test_task_queue_executes_registered_handler(tmp_path: Path) -> None:
    async def scenario() -> None:
        queue = _build_queue(tmp_path)

        async def handler(payload: dict[str, object]) -> dict[str, object]:
            return {"value": int(payload.get("value", 0)) + 1}

        queue.register_handler("sample", handler)
        await queue.start()
        task_id = queue.submit(task_type="sample", payload={"value": 41})
        result = await _wait_terminal(queue, task_id)
        await queue.stop()
        queue.close()

        assert result["status"] == "completed"
        assert result["result"] == {"value": 42}

    asyncio.run(scenario())


def test_task_queue_moves_to_dead_letter_after_retries(tmp_path: Path) -> None:
    async def scenario() -> None:
        queue = _build_queue(tmp_path)

        async def handler(payload: dict[str, object]) -> dict[str, object]:
            _ = payload
            raise RuntimeError("boom")

        queue.register_handler("unstable", handler)
        await queue.start()
        task_id = queue.submit(
            task_type="unstable",
            payload={},
            max_retries=1,
            retry_delay_seconds=1,
        )
        result = await _wait_terminal(queue, task_id)
        await queue.stop()
        queue.close()

        assert result["status"] == "dead_letter"
        assert result["dead_letter_reason"] == "max_retries_exceeded"
        assert "boom" in str(result["error"])

    asyncio.run(scenario())


def test_task_queue_respects_idempotency_key(tmp_path: Path) -> None:
    async def scenario() -> None:
        queue = _build_queue(tmp_path)

        async def handler(payload: dict[str, object]) -> dict[str, object]:
            return {"ok": True, "value": payload.get("value")}

        queue.register_handler("idem", handler)
        await queue.start()

        task_id_one = queue.submit(
            task_type="idem",
            payload={"value": 1},
            idempotency_key="job-123",
        )
        task_id_two = queue.submit(
            task_type="idem",
            payload={"value": 2},
            idempotency_key="job-123",
        )

        result = await _wait_terminal(queue, task_id_one)
        await queue.stop()
        queue.close()

        assert task_id_one == task_id_two
        assert result["status"] == "completed"

    asyncio.run(scenario())


def test_task_queue_finds_task_by_idempotency_key(tmp_path: Path) -> None:
    queue = _build_queue(tmp_path)
    task_id = queue.submit(
        task_type="ceac_job",
        payload={"job_id": "job-1"},
        idempotency_key="client-7",
    )

    found = queue.find_by_idempotency_key(" client-7 ")

    assert found == {"task_id": task_id, "payload": {"job_id": "job-1"}}
    assert queue.find_by_idempotency_key("other") is None
    assert queue.find_by_idempotency_key("") is None
    queue.close()


def test_task_queue_fails_non_retryable_errors_immediately(tmp_path: Path) -> None:
    async def scenario() -> None:
        queue = _build_queue(tmp_path)

        async def handler(payload: dict[str, object]) -> dict[str, object]:
            raise NonRetryableTaskError("job_id is required")

        queue.register_handler("ceac_job", handler)
        await queue.start()
        task_id = queue.submit(task_type="ceac_job", payload={}, max_retries=3)
        result = await _wait_terminal(queue, task_id)
        await queue.stop()
        queue.close()

        assert result["status"] == "failed"
        assert result["attempts"] == 1
        assert result["error"] == "job_id is required"
        assert result["dead_letter_reason"] == ""

    asyncio.run(scenario())


def test_task_queue_runs_tasks_concurrently(tmp_path: Path) -> None:
    async def scenario() -> None:
        queue = TaskQueue(
            QueueSettings(
                database_path=tmp_path / "queue.db",
                worker_poll_interval_seconds=0.01,
                worker_concurrency=2,
            )
        )
        gate = asyncio.Event()
        running: list[object] = []

        async def handler(payload: dict[str, object]) -> dict[str, object]:
            running.append(payload.get("job_id"))
            if len(running) == 2:
                gate.set()
            await asyncio.wait_for(gate.wait(), timeout=2)
            return {"job_id": payload.get("job_id")}

        queue.register_handler("ceac_job", handler)
        await queue.start()
        assert queue.running_workers == 2
        first = queue.submit(task_type="ceac_job", payload={"job_id": "a"})
        second = queue.submit(task_type="ceac_job", payload={"job_id": "b"})
        results = [await _wait_terminal(queue, first), await _wait_terminal(queue, second)]
        await queue.stop()
        queue.close()

        assert [result["status"] for result in results] == ["completed", "completed"]
        assert sorted(str(job) for job in running) == ["a", "b"]
        assert queue.running_workers == 0

    asyncio.run(scenario())
