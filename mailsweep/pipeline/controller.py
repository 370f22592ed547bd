from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from mailsweep.pipeline.context import PipelineContext
from mailsweep.pipeline.dispatcher import Dispatcher, Probe
from mailsweep.pipeline.inflight import Reaper
from mailsweep.pipeline.ticker import Ticker
from mailsweep.pipeline.types import Admission, Outcome, PipelineState
from mailsweep.utils import utc_now_iso_z

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunReport:
    state: PipelineState
    forced: bool
    position: int
    stats: dict[str, int]
    watermark: int
    total: int
    failed_batches: int
    skip_entries: tuple[str, ...] = field(default_factory=tuple)

    @property
    def clean(self) -> bool:
        return self.state is PipelineState.STOPPED and not self.forced


class PipelineController:
    """
    Lifecycle NOT_STARTED -> RUNNING -> FINISHING -> STOPPED.

    Two independent tickers drive the run: the progress tick (status line,
    reap, admit) and the persistence tick (flush when due, detect completion).
    """

    def __init__(self, ctx: PipelineContext, probe: Probe) -> None:
        self.ctx = ctx
        self.dispatcher = Dispatcher(ctx, probe, self._on_outcome)
        self.reaper = Reaper(ctx.registry, self._on_outcome)
        self.forced = False
        self.finish_reason: str | None = None
        self._stopped = asyncio.Event()
        self._flush_tasks: set[asyncio.Task[int | None]] = set()
        self._hard_stop: asyncio.TimerHandle | None = None

    @property
    def state(self) -> PipelineState:
        return self.ctx.state

    # ---- transitions ---------------------------------------------------

    def start(self) -> None:
        if self.ctx.state is not PipelineState.NOT_STARTED:
            raise RuntimeError(f"cannot start pipeline in state {self.ctx.state.value}")
        self.ctx.state = PipelineState.RUNNING
        log.info("Starting sweep of %d candidates", len(self.ctx.candidates))

    def finish(self, reason: str) -> None:
        if self.ctx.state is not PipelineState.RUNNING:
            return
        self.ctx.state = PipelineState.FINISHING
        self.finish_reason = reason
        log.info("FINISHING... (%s)", reason)

    def interrupt(self) -> None:
        self.finish("interrupt")

    def hard_interrupt(self) -> None:
        if self.ctx.state is PipelineState.STOPPED:
            return
        grace = self.ctx.config.hard_stop_grace_s
        log.warning("BREAKED. Waiting for %s seconds...", grace)
        self.finish("hard interrupt")
        if self._hard_stop is None:
            self._hard_stop = asyncio.get_running_loop().call_later(grace, self._force_stop)

    def _force_stop(self) -> None:
        if self.ctx.state is PipelineState.STOPPED:
            return
        self.forced = True
        log.warning(
            "Forced stop: %d in flight, %d outcomes not persisted",
            len(self.ctx.registry),
            self.ctx.batcher.pending,
        )
        self._stop()

    def _stop(self) -> None:
        # never jump straight from RUNNING to STOPPED
        self.finish("stop")
        self.ctx.state = PipelineState.STOPPED
        if self._hard_stop is not None:
            self._hard_stop.cancel()
        self._stopped.set()

    def _complete(self) -> None:
        log.info("WORK DONE: %s", utc_now_iso_z())
        stats = self.ctx.stats
        log.info(stats.status_line(self.ctx.position, len(self.ctx.registry)))
        self._stop()

    # ---- admission -----------------------------------------------------

    def _on_outcome(self, outcome: Outcome) -> None:
        self.ctx.emit(outcome)
        self._schedule_advance()

    def _schedule_advance(self) -> None:
        if self.ctx.state is not PipelineState.RUNNING:
            return
        loop = asyncio.get_running_loop()
        delay = self.ctx.config.record_delay_ms / 1000.0
        if delay > 0:
            loop.call_later(delay, self.advance)
        else:
            loop.call_soon(self.advance)

    def advance(self) -> Admission:
        admission = self.dispatcher.tick()
        if admission.terminal:
            self.finish(admission.value)
        elif admission in (Admission.MALFORMED, Admission.DUPLICATE):
            # nothing was emitted, so nothing else will schedule the next step
            self._schedule_advance()
        return admission

    # ---- ticks ---------------------------------------------------------

    def progress_tick(self, now: float | None = None) -> None:
        ctx = self.ctx
        if ctx.state is PipelineState.RUNNING:
            log.info(ctx.stats.status_line(ctx.position, len(ctx.registry)))
            self.reaper.reap(now)
            self.advance()
        elif ctx.state is PipelineState.FINISHING:
            self.reaper.reap(now)
            if len(ctx.registry):
                log.info("WAITING for %d records...", len(ctx.registry))

    def persistence_tick(self) -> None:
        ctx = self.ctx
        if ctx.state is PipelineState.STOPPED:
            return
        batcher = ctx.batcher
        if not batcher.flushing and batcher.due(ctx.state is PipelineState.RUNNING):
            task = asyncio.get_running_loop().create_task(batcher.flush(), name="flush")
            self._flush_tasks.add(task)
            task.add_done_callback(self._flush_tasks.discard)
            return
        if (
            ctx.state is PipelineState.FINISHING
            and not len(ctx.registry)
            and batcher.pending == 0
            and not batcher.flushing
            and not self._flush_tasks
        ):
            self._complete()

    # ---- run -----------------------------------------------------------

    async def run(self) -> RunReport:
        if self.ctx.state is PipelineState.NOT_STARTED:
            self.start()

        cfg = self.ctx.config
        progress = Ticker(cfg.progress_interval_s, self.progress_tick, name="progress-tick")
        persistence = Ticker(cfg.save_interval_s, self.persistence_tick, name="persistence-tick")
        waiter = asyncio.get_running_loop().create_task(self._stopped.wait(), name="stopped")
        tickers = {progress.start(), persistence.start()}
        try:
            done, _pending = await asyncio.wait(
                {waiter, *tickers}, return_when=asyncio.FIRST_COMPLETED
            )
            for t in done:
                if t is not waiter:
                    t.result()  # a ticker only finishes by raising
        finally:
            waiter.cancel()
            await progress.stop()
            await persistence.stop()
            # whatever is still running was reaped (or abandoned by a forced stop)
            orphans = self.dispatcher.cancel_pending()
            if orphans:
                log.debug("cancelled %d orphaned probe tasks", orphans)

        return self.report()

    def report(self) -> RunReport:
        ctx = self.ctx
        return RunReport(
            state=ctx.state,
            forced=self.forced,
            position=ctx.position,
            stats=ctx.stats.as_dict(),
            watermark=ctx.batcher.watermark,
            total=ctx.batcher.total,
            failed_batches=ctx.batcher.failed_batches,
            skip_entries=ctx.skiplist.entries,
        )


__all__ = ["PipelineController", "RunReport"]
