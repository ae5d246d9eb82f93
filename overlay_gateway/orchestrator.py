"""Batch process lifecycle: record creation, background labeling, notification."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Set

import aiofiles.os

from overlay_runner import DispatchError, ImageOutcome, WorkerDispatcher
from overlay_runner.transformer import OUTPUT_PREFIX

from .models import STATUS_COMPLETED, STATUS_FAILED, Process, Webhook, utcnow
from .repository import Repository
from .webhook_notifier import WebhookNotifier

logger = logging.getLogger(__name__)

OUTPUT_URL_PREFIX = "/output"


@dataclass
class BatchJob:
    process_id: int
    images: Sequence[bytes]
    base_url: str = ""


class BatchOrchestrator:
    """
    Owns the job queue and the background workers that drain it.

    ``submit`` returns as soon as the process record exists; callers poll the
    record's status to learn the outcome.
    """

    def __init__(
        self,
        repository: Repository,
        dispatcher: WorkerDispatcher,
        notifier: WebhookNotifier,
        public_dir: Path,
        concurrency: int = 1,
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.notifier = notifier
        self.public_dir = Path(public_dir)
        self.concurrency = max(1, concurrency)
        self.queue: asyncio.Queue[BatchJob] = asyncio.Queue()
        self.workers: List[asyncio.Task] = []
        self._issued_output_urls: Set[str] = set()

    # lifecycle

    async def start(self) -> None:
        if self.workers:
            return
        for _ in range(self.concurrency):
            self.workers.append(asyncio.create_task(self._worker_loop()))

    async def stop(self) -> None:
        for task in self.workers:
            task.cancel()
        for task in self.workers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.workers.clear()

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self.queue.join()

    # submission

    def output_dir_for(self, process: Process) -> Path:
        return self.public_dir / process.output_url.lstrip("/")

    def _allocate_output_url(self) -> str:
        stamp = int(time.time() * 1000)
        while True:
            url = f"{OUTPUT_URL_PREFIX}/process_{stamp}"
            if url not in self._issued_output_urls and not (self.public_dir / url.lstrip("/")).exists():
                self._issued_output_urls.add(url)
                return url
            stamp += 1

    async def submit(self, owner_id: int, images: Sequence[bytes], base_url: str = "") -> Process:
        process = self.repository.create_process(
            created_by_id=owner_id,
            image_amount=len(images),
            output_url=self._allocate_output_url(),
        )
        await self.queue.put(BatchJob(process_id=process.id, images=list(images), base_url=base_url))
        logger.info(f"Queued process {process.id} with {process.image_amount} images for user {owner_id}")
        return process

    # execution

    async def _worker_loop(self) -> None:
        while True:
            try:
                job = await self.queue.get()
            except asyncio.CancelledError:
                break
            try:
                await self.run_job(job)
            except Exception:  # noqa: BLE001
                logger.exception(f"Unhandled error finishing process {job.process_id}")
            finally:
                self.queue.task_done()

    async def run_job(self, job: BatchJob) -> Process:
        webhooks: Sequence[Webhook] = ()
        process: Optional[Process] = None
        notified = False
        try:
            process = self.repository.get_process(job.process_id)
            webhooks = self.repository.list_webhooks(process.created_by_id)

            output_dir = self.output_dir_for(process)
            await aiofiles.os.makedirs(output_dir, exist_ok=True)

            outcomes = await asyncio.to_thread(self.dispatcher.run, job.images, output_dir)
            image_urls = self._image_urls(process, outcomes)
            await self._check_output_integrity(output_dir, outcomes)

            succeeded = sum(1 for outcome in outcomes if outcome.success)
            if outcomes and not succeeded:
                status = STATUS_FAILED
                error: Optional[str] = f"all {len(outcomes)} images failed to process"
            else:
                status, error = STATUS_COMPLETED, None

            finished_at = utcnow()
            # _fail must not deliver again, even after a partial delivery.
            notified = True
            await self.notifier.notify(
                process, webhooks, self._absolute_urls(job.base_url, image_urls), status, finished_at, error
            )
            updated = self.repository.update_process(
                process.id,
                status=status,
                finished_processing_at=finished_at,
                image_urls=image_urls,
                error=error,
            )
            logger.info(
                f"Process {process.id} {status}: {succeeded}/{process.image_amount} images labeled"
            )
            return updated
        except DispatchError as exc:
            logger.error(f"Process {job.process_id} aborted: {exc}")
            return await self._fail(job, process, webhooks, str(exc), notified)
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"Process {job.process_id} failed")
            return await self._fail(job, process, webhooks, str(exc) or type(exc).__name__, notified)

    async def _fail(
        self,
        job: BatchJob,
        process: Optional[Process],
        webhooks: Sequence[Webhook],
        error: str,
        notified: bool = False,
    ) -> Process:
        finished_at = utcnow()
        if process is not None and webhooks and not notified:
            try:
                await self.notifier.notify(process, webhooks, [], STATUS_FAILED, finished_at, error)
            except Exception:  # noqa: BLE001
                logger.exception(f"Could not notify webhooks about failed process {job.process_id}")
        return self.repository.update_process(
            job.process_id,
            status=STATUS_FAILED,
            finished_processing_at=finished_at,
            error=error,
        )

    def _image_urls(self, process: Process, outcomes: Sequence[ImageOutcome]) -> List[str]:
        return [f"{process.output_url}/{outcome.filename}" for outcome in outcomes if outcome.success]

    @staticmethod
    def _absolute_urls(base_url: str, image_urls: Sequence[str]) -> List[str]:
        prefix = base_url.rstrip("/")
        return [f"{prefix}{url}" for url in image_urls]

    async def _check_output_integrity(self, output_dir: Path, outcomes: Sequence[ImageOutcome]) -> None:
        """Compare the outcome list against what actually landed on disk."""
        on_disk = {name for name in await aiofiles.os.listdir(output_dir) if name.startswith(OUTPUT_PREFIX)}
        expected = {outcome.filename for outcome in outcomes if outcome.success}
        missing = sorted(expected - on_disk)
        unexpected = sorted(on_disk - expected)
        if missing:
            logger.warning(f"{output_dir.name}: successful images missing on disk: {missing}")
        if unexpected:
            logger.warning(f"{output_dir.name}: files without a successful outcome: {unexpected}")
