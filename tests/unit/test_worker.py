"""Unit tests for the queue worker."""

import asyncio

import pytest

from email_triage.models import Email, QueueStatus
from email_triage.pipeline import EmailPipeline, QueueWorker


def _email(n: int) -> Email:
    return Email(id=f"email-{n}", from_address=f"c{n}@example.com", subject=f"Question {n}", body="what is the price?")


class _CountingPipeline:
    """Wraps a real pipeline and records peak concurrency."""

    def __init__(self, inner: EmailPipeline, delay: float = 0.02) -> None:
        self.inner = inner
        self.queue = inner.queue
        self.delay = delay
        self.active = 0
        self.peak = 0

    async def process_queue_item(self, item):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            return await self.inner.process_queue_item(item)
        finally:
            self.active -= 1


class _CrashingPipeline:
    def __init__(self, queue) -> None:
        self.queue = queue

    async def process_queue_item(self, item):
        raise RuntimeError("worker crashed mid-item")


@pytest.fixture
def pipeline(db_engine, mock_settings, clock) -> EmailPipeline:
    return EmailPipeline.from_engine(db_engine, settings=mock_settings, clock=clock)


class TestQueueWorker:
    """Test suite for QueueWorker."""

    @pytest.mark.asyncio
    async def test_run_once_drains_a_batch(self, pipeline, mock_settings, tenant_id) -> None:
        ids = [pipeline.queue.add_to_queue(_email(n), tenant_id) for n in range(3)]

        results = await QueueWorker(pipeline, settings=mock_settings).run_once(tenant_id)

        assert sorted(r.queue_id for r in results) == sorted(ids)
        assert all(pipeline.queue.get_queue_item(i).status == QueueStatus.COMPLETED for i in ids)

    @pytest.mark.asyncio
    async def test_empty_queue(self, pipeline, mock_settings, tenant_id) -> None:
        assert await QueueWorker(pipeline, settings=mock_settings).run_once(tenant_id) == []

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, pipeline, mock_settings, tenant_id) -> None:
        for n in range(6):
            pipeline.queue.add_to_queue(_email(n), tenant_id)
        counting = _CountingPipeline(pipeline)
        settings = mock_settings.model_copy(update={"worker_concurrency": 2})

        results = await QueueWorker(counting, settings=settings).run_once(tenant_id)

        assert len(results) == 6
        assert counting.peak == 2

    @pytest.mark.asyncio
    async def test_crash_marks_item_failed_for_retry(self, pipeline, mock_settings, tenant_id) -> None:
        queue_id = pipeline.queue.add_to_queue(_email(1), tenant_id)

        results = await QueueWorker(_CrashingPipeline(pipeline.queue), settings=mock_settings).run_once(tenant_id)

        assert results == []
        item = pipeline.queue.get_queue_item(queue_id)
        assert item.status == QueueStatus.PENDING
        assert item.retry_count == 1
        assert item.failure_reason == "worker crashed mid-item"

    @pytest.mark.asyncio
    async def test_run_forever_stops_on_event(self, pipeline, mock_settings, tenant_id) -> None:
        queue_id = pipeline.queue.add_to_queue(_email(1), tenant_id)
        stop = asyncio.Event()
        worker = QueueWorker(pipeline, settings=mock_settings)

        task = asyncio.create_task(worker.run_forever(tenant_id, stop_event=stop))
        for _ in range(100):
            if pipeline.queue.get_queue_item(queue_id).status == QueueStatus.COMPLETED:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=1)

        assert pipeline.queue.get_queue_item(queue_id).status == QueueStatus.COMPLETED
