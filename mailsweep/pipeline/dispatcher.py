from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

from mailsweep.exceptions import MalformedCandidate, ProbeRefused
from mailsweep.pipeline.context import PipelineContext
from mailsweep.pipeline.types import Admission, Outcome, PipelineState, Reason

log = logging.getLogger(__name__)


class Probe(Protocol):
    async def verify(self, email: str, timeout_ms: int) -> bool:
        """True = deliverable, False = rejected. Raises ProbeRefused / ProbeError."""
        ...


def parse_candidate(email: str | None) -> str:
    """
    Validate a candidate email without rewriting it; the raw value is the
    key the result is written back under.
    """
    if email is None or not str(email).strip():
        raise MalformedCandidate("empty email")
    s = str(email)
    if any(ch.isspace() for ch in s):
        raise MalformedCandidate(f"whitespace in {s!r}")
    if s.count("@") != 1:
        raise MalformedCandidate(f"expected one '@' in {s!r}")
    local, domain = s.split("@", 1)
    if not local or not domain:
        raise MalformedCandidate(f"empty local or domain part in {s!r}")
    return s


class Dispatcher:
    """
    Admission gate + dispatch. Each tick admits at most one candidate.
    """

    def __init__(
        self,
        ctx: PipelineContext,
        probe: Probe,
        emit: Callable[[Outcome], None],
    ) -> None:
        self.ctx = ctx
        self.probe = probe
        self._emit = emit
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def _gate(self) -> Admission | None:
        ctx = self.ctx
        cfg = ctx.config
        if ctx.state is not PipelineState.RUNNING:
            return Admission.IDLE
        if ctx.stats.timeout > cfg.break_after_timeouts:
            log.warning("Too much TIMEOUTS [%d]", ctx.stats.timeout)
            return Admission.BREAKER_TRIPPED
        if ctx.cursor >= len(ctx.candidates) - 1:
            return Admission.EXHAUSTED
        if cfg.break_counter > 0 and ctx.position >= cfg.break_counter:
            return Admission.LIMIT_REACHED
        if len(ctx.registry) >= cfg.max_in_flight:
            return Admission.SATURATED
        return None

    def tick(self) -> Admission:
        denied = self._gate()
        if denied is not None:
            return denied

        ctx = self.ctx
        ctx.cursor += 1
        candidate = ctx.candidates[ctx.cursor]

        try:
            email = parse_candidate(candidate.email)
        except MalformedCandidate as exc:
            ctx.stats.record_error()
            log.warning("MALFORMED candidate #%d: %s", candidate.position, exc)
            return Admission.MALFORMED

        if ctx.skiplist.matches(email):
            self._emit(Outcome.failed(email, Reason.SKIP))
            return Admission.SKIPPED

        if email in ctx.registry:
            ctx.stats.record_error()
            log.warning("DUPLICATE candidate #%d: %s already in flight", candidate.position, email)
            return Admission.DUPLICATE

        ctx.registry.register(email)
        task = asyncio.get_running_loop().create_task(
            self._run_probe(email), name=f"probe:{email}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return Admission.DISPATCHED

    async def _run_probe(self, email: str) -> None:
        try:
            deliverable = await self.probe.verify(email, self.ctx.config.probe_timeout_ms)
            outcome = Outcome.from_probe(email, deliverable)
        except ProbeRefused as exc:
            outcome = Outcome.failed(email, Reason.REFUSED, str(exc) or None)
        except Exception as exc:  # noqa: BLE001
            log.warning("ERROR: %s - %s", email, exc)
            outcome = Outcome.failed(email, Reason.ERROR, str(exc) or type(exc).__name__)

        # The reaper may already have resolved this email as a timeout.
        if not self.ctx.registry.resolve(email):
            log.debug("late result for %s dropped (already reaped)", email)
            return
        self._emit(outcome)

    def cancel_pending(self) -> int:
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        return len(tasks)


__all__ = ["Dispatcher", "Probe", "parse_candidate"]
