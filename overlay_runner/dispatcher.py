"""Bounded worker pool that labels every image of a batch."""
from __future__ import annotations

import logging
import os
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .transformer import TransformError, output_filename, transform_image

logger = logging.getLogger(__name__)

TransformFn = Callable[[bytes, Path, int], object]

_STOP = object()


class DispatchError(Exception):
    """No work could be started for the batch."""
    pass


@dataclass
class ImageOutcome:
    image_number: int
    success: bool
    error: Optional[str] = None

    @property
    def filename(self) -> str:
        return output_filename(self.image_number)

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"imageNumber": self.image_number, "success": self.success}
        if self.error is not None:
            data["error"] = self.error
        return data


def default_worker_count() -> int:
    """Leave one core for the event loop, never fewer than one worker."""
    return max(1, (os.cpu_count() or 1) - 1)


class WorkerDispatcher:
    """
    Run the label transform over a batch with at most ``workers`` in flight.

    Workers are long-lived threads pulling ``(number, blob)`` items off a
    bounded queue, so a slow image only holds up its own worker.
    """

    def __init__(
        self,
        workers: Optional[int] = None,
        transform: Optional[TransformFn] = None,
        queue_size: Optional[int] = None,
    ):
        self.workers = max(1, workers or default_worker_count())
        self.transform: TransformFn = transform or transform_image
        self.queue_size = queue_size or self.workers * 2

    def run(self, images: Sequence[bytes], output_dir: Path) -> List[ImageOutcome]:
        """
        Label ``images`` into ``output_dir`` as ``image_<n>.png``.

        Returns one outcome per image in submission order. Individual failures
        are recorded, never raised.

        Raises:
            DispatchError: output directory unusable or no worker started
        """
        output_dir = Path(output_dir)
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DispatchError(f"cannot create output directory {output_dir}: {exc}") from exc

        if not images:
            return []

        work: "queue.Queue[object]" = queue.Queue(maxsize=self.queue_size)
        outcomes: Dict[int, ImageOutcome] = {}
        lock = threading.Lock()

        def record(outcome: ImageOutcome) -> None:
            with lock:
                outcomes[outcome.image_number] = outcome

        def worker_loop() -> None:
            while True:
                item = work.get()
                try:
                    if item is _STOP:
                        return
                    number, blob = item
                    record(self._process_one(blob, output_dir, number))
                finally:
                    work.task_done()

        threads: List[threading.Thread] = []
        for index in range(min(self.workers, len(images))):
            thread = threading.Thread(
                target=worker_loop,
                name=f"overlay-worker-{index + 1}",
                daemon=True,
            )
            try:
                thread.start()
            except RuntimeError as exc:
                logger.error(f"Could not start worker thread {index + 1}: {exc}")
                break
            threads.append(thread)

        if not threads:
            raise DispatchError("no worker thread could be started")

        for number, blob in enumerate(images, start=1):
            work.put((number, blob))
        for _ in threads:
            work.put(_STOP)
        for thread in threads:
            thread.join()

        results = [
            outcomes.get(number) or ImageOutcome(number, False, "image was never processed")
            for number in range(1, len(images) + 1)
        ]
        failed = [outcome for outcome in results if not outcome.success]
        if failed:
            logger.warning(
                f"{len(failed)}/{len(results)} images failed in {output_dir.name}: "
                f"{[outcome.to_dict() for outcome in failed]}"
            )
        return results

    def _process_one(self, blob: bytes, output_dir: Path, number: int) -> ImageOutcome:
        try:
            self.transform(blob, output_dir / output_filename(number), number)
        except TransformError as exc:
            return ImageOutcome(number, False, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"Unexpected error labeling image {number}")
            return ImageOutcome(number, False, f"unexpected error: {exc}")
        return ImageOutcome(number, True)
