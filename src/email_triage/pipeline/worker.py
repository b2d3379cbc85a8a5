"""Queue worker: drains claimed batches through the pipeline with bounded concurrency."""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from email_triage.config import Settings
from email_triage.exceptions import PersistenceError
from email_triage.models.pipeline import PipelineResult
from email_triage.models.queue import QueueItem
from email_triage.pipeline.orchestrator import EmailPipeline
from email_triage.queue import EmailQueue

logger = structlog.get_logger()


class QueueWorker:
    """Process queue items concurrently.

    Each claimed item is handled start to finish by one coroutine, so no two
    coroutines ever touch the same item. Claiming is the queue's atomic
    `pending -> processing` update.
    """

    def __init__(
        self,
        pipeline: EmailPipeline,
        queue: EmailQueue | None = None,
        settings: Optional[Settings] = None,
    ) -> None:
        from email_triage.config import get_settings

        self.pipeline = pipeline
        self.queue = queue or pipeline.queue
        self.settings = settings or get_settings()
        self._semaphore = asyncio.Semaphore(max(1, self.settings.worker_concurrency))

    async def _process(self, item: QueueItem) -> PipelineResult | None:
        async with self._semaphore:
            try:
                return await self.pipeline.process_queue_item(item)
            except Exception as e:  # noqa: BLE001
                logger.error("worker_item_failed", queue_id=item.id, tenant_id=item.tenant_id, error=str(e))
                try:
                    self.queue.mark_as_failed(item.id, str(e), tenant_id=item.tenant_id)
                except PersistenceError as pe:
                    logger.error("worker_mark_failed_failed", queue_id=item.id, error=str(pe))
                return None

    async def run_once(self, tenant_id: str | None = None, limit: int | None = None) -> list[PipelineResult]:
        """Claim one batch and process it. Returns results for the items processed."""

        items = self.queue.claim_next_batch(tenant_id, limit)
        if not items:
            logger.debug("worker_queue_empty", tenant_id=tenant_id)
            return []

        logger.info("worker_batch_claimed", tenant_id=tenant_id, count=len(items))
        results = await asyncio.gather(*(self._process(item) for item in items))
        return [r for r in results if r is not None]

    async def run_forever(
        self,
        tenant_id: str | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        stop_event = stop_event or asyncio.Event()
        logger.info("worker_started", tenant_id=tenant_id, concurrency=self.settings.worker_concurrency)

        while not stop_event.is_set():
            try:
                processed = await self.run_once(tenant_id)
            except PersistenceError as e:
                logger.error("worker_batch_failed", tenant_id=tenant_id, error=str(e))
                processed = []

            if processed:
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.settings.worker_poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("worker_stopped", tenant_id=tenant_id)
