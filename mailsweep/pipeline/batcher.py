from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from mailsweep.exceptions import StoreError
from mailsweep.pipeline.types import Outcome

log = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500


class ResultWriter(Protocol):
    def bulk_upsert(self, pairs: list[tuple[str, dict[str, Any]]]) -> int: ...


class PersistenceBatcher:
    """
    Append-only queue of outcomes plus a watermark of how many have been sent
    to the store.

    Entries below the watermark are never re-sent. The watermark is advanced
    as soon as a batch is handed to the store, before the write is
    confirmed; a failed batch is logged and counted but not retried.
    """

    def __init__(self, writer: ResultWriter, *, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.writer = writer
        self.batch_size = int(batch_size)
        self._queue: list[Outcome] = []
        self._watermark = 0
        self._flushing = False
        self.failed_batches = 0
        self.flushed_sizes: list[int] = []

    @property
    def watermark(self) -> int:
        return self._watermark

    @property
    def total(self) -> int:
        return len(self._queue)

    @property
    def pending(self) -> int:
        return len(self._queue) - self._watermark

    @property
    def flushing(self) -> bool:
        return self._flushing

    def enqueue(self, outcome: Outcome) -> None:
        self._queue.append(outcome)

    def due(self, running: bool) -> bool:
        pending = self.pending
        return pending >= self.batch_size or (pending > 0 and not running)

    def _take_batch(self) -> list[Outcome]:
        start = self._watermark
        return self._queue[start : start + min(self.pending, self.batch_size)]

    async def flush(self) -> int | None:
        """
        Write the next pending slice. Returns the matched count, or None when
        nothing was written (flush already running, nothing pending, or the
        write failed).
        """
        if self._flushing:
            return None
        batch = self._take_batch()
        if not batch:
            return None

        self._flushing = True
        try:
            pairs = [(o.email, o.to_document()) for o in batch]
            self._watermark += len(batch)
            self.flushed_sizes.append(len(batch))
            try:
                matched = await asyncio.to_thread(self.writer.bulk_upsert, pairs)
            except StoreError as exc:
                self.failed_batches += 1
                log.error(
                    "DB ERROR: %s (batch of %d lost, watermark %d/%d)",
                    exc,
                    len(batch),
                    self._watermark,
                    self.total,
                )
                return None
            log.info("SAVED %d[%d/%d] records", matched, self._watermark, self.total)
            return matched
        finally:
            self._flushing = False


__all__ = ["PersistenceBatcher", "ResultWriter", "DEFAULT_BATCH_SIZE"]
