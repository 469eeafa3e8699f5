"""Bounded wave scheduler.

Splits a batch into consecutive waves of ``concurrency_limit`` items. Each
wave runs on a fresh thread pool (one worker per item) and is followed by
exactly one progress flush, so wave k's progress is always visible before
wave k+1 starts.

Deadlines:
- per item: an item still running ``item_timeout`` seconds after its wave
  started is recorded as Failure("timeout"), its cancel token is set and its
  worker is abandoned — the thread keeps running until the collaborator
  returns or next checks the token, and its result is discarded.
- per batch: checked before each wave. Once exceeded, no further wave
  starts and the run ends failed; items that never started are absent from
  the results. A wave already in flight is allowed to finish.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from prdigest_core.cancel import CancelToken
from prdigest_core.models import BatchStatus, Failure, ItemResult, PullRequestRef
from prdigest_core.pipeline import TIMEOUT_REASON

if TYPE_CHECKING:
    from prdigest_core.pipeline import ItemPipeline
    from prdigest_store.base import BaseProgressStore

logger = logging.getLogger(__name__)

BATCH_TIMEOUT_REASON = "Batch processing timeout exceeded"

WaveCallback = Callable[[int, int, list], None]


@dataclass
class ScheduleOutcome:
    results: list[ItemResult] = field(default_factory=list)
    status: BatchStatus = BatchStatus.COMPLETED
    error_message: str | None = None


def partition(refs: list[PullRequestRef], size: int) -> list[list[PullRequestRef]]:
    """Split refs into consecutive waves of ``size``; the last may be smaller."""
    return [refs[i : i + size] for i in range(0, len(refs), size)]


class BoundedScheduler:
    def __init__(
        self,
        pipeline: ItemPipeline,
        progress: BaseProgressStore,
        concurrency_limit: int = 2,
        item_timeout: float = 60.0,
        batch_timeout: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be at least 1, got {concurrency_limit}")
        self._pipeline = pipeline
        self._progress = progress
        self.concurrency_limit = concurrency_limit
        self.item_timeout = item_timeout
        self.batch_timeout = batch_timeout
        self._clock = clock

    def run(
        self,
        token: str,
        refs: list[PullRequestRef],
        on_wave: WaveCallback | None = None,
    ) -> ScheduleOutcome:
        """Process every ref wave by wave and flush progress after each wave.

        ``on_wave(index, wave_count, results)`` is called after each flush.
        """
        waves = partition(refs, self.concurrency_limit)
        results: list[ItemResult] = []
        started = self._clock()

        for index, wave in enumerate(waves, 1):
            elapsed = self._clock() - started
            if elapsed > self.batch_timeout:
                logger.warning(
                    "Batch %s: deadline of %ss exceeded after %.1fs; %d item(s) not started",
                    token,
                    self.batch_timeout,
                    elapsed,
                    len(refs) - len(results),
                )
                return ScheduleOutcome(results=results, status=BatchStatus.FAILED, error_message=BATCH_TIMEOUT_REASON)

            logger.info("Batch %s: wave %d/%d (%d item(s))", token, index, len(waves), len(wave))
            results.extend(self._run_wave(wave))
            self._progress.update_batch_progress(token, list(results))
            if on_wave is not None:
                on_wave(index, len(waves), list(results))

        return ScheduleOutcome(results=results, status=BatchStatus.COMPLETED)

    def _run_wave(self, wave: list[PullRequestRef]) -> list[ItemResult]:
        tokens = [CancelToken(self.item_timeout) for _ in wave]
        # Not a context manager: leaving the with-block would join abandoned workers.
        executor = ThreadPoolExecutor(max_workers=len(wave), thread_name_prefix="prdigest-item")
        try:
            futures = [executor.submit(self._pipeline.process, ref, cancel) for ref, cancel in zip(wave, tokens)]
            done, _ = wait(futures, timeout=self.item_timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        # Submission order keeps the result list deterministic for a given set of outcomes.
        outcomes: list[ItemResult] = []
        for ref, future, cancel in zip(wave, futures, tokens):
            if future in done:
                outcomes.append(self._collect(ref, future))
                continue
            cancel.cancel()
            logger.warning("%s: no result after %ss; recorded as timeout", ref, self.item_timeout)
            outcomes.append(Failure(ref=ref, reason=TIMEOUT_REASON))
        return outcomes

    @staticmethod
    def _collect(ref: PullRequestRef, future: Future) -> ItemResult:
        try:
            return future.result()
        except Exception as e:
            # The pipeline reports failures as values; reaching this means a
            # collaborator bypassed its step seam. Isolate it like any failure.
            logger.error("%s: pipeline raised %s: %s", ref, type(e).__name__, e)
            return Failure(ref=ref, reason=str(e) or "Unknown error")
