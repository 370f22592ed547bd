from __future__ import annotations

import logging
import time
from collections.abc import Callable

from mailsweep.pipeline.types import InFlightProbe, Outcome, Reason

log = logging.getLogger(__name__)


class InFlightRegistry:
    """
    Probes that have been dispatched but not yet resolved, keyed by email.

    Two things remove entries: the probe callback (resolve) and the timeout
    reaper (reap). Whichever gets there first wins; the loser finds the entry
    gone, which is the normal case rather than an error.
    """

    def __init__(self, time_limit_s: float) -> None:
        self.time_limit_s = float(time_limit_s)
        self._probes: dict[str, InFlightProbe] = {}

    def __len__(self) -> int:
        return len(self._probes)

    def __contains__(self, email: object) -> bool:
        return email in self._probes

    def register(self, email: str, now: float | None = None) -> InFlightProbe:
        if email in self._probes:
            raise ValueError(f"probe already in flight for {email!r}")
        probe = InFlightProbe(email=email, started_at=time.monotonic() if now is None else now)
        self._probes[email] = probe
        return probe

    def resolve(self, email: str) -> bool:
        """Remove the probe for `email` if present. Returns whether one was removed."""
        return self._probes.pop(email, None) is not None

    def reap(self, now: float | None = None) -> list[InFlightProbe]:
        """Remove and return every probe older than the time limit."""
        if now is None:
            now = time.monotonic()
        overdue = [p for p in self._probes.values() if p.age(now) > self.time_limit_s]
        for p in overdue:
            del self._probes[p.email]
        return overdue

    def oldest_age(self, now: float | None = None) -> float:
        if not self._probes:
            return 0.0
        if now is None:
            now = time.monotonic()
        return max(p.age(now) for p in self._probes.values())


class Reaper:
    """
    Turns overdue in-flight probes into TIMEOUT outcomes.
    """

    def __init__(self, registry: InFlightRegistry, emit: Callable[[Outcome], None]) -> None:
        self.registry = registry
        self._emit = emit

    def reap(self, now: float | None = None) -> list[Outcome]:
        outcomes: list[Outcome] = []
        for probe in self.registry.reap(now):
            log.info("TIMEOUT %s", probe.email)
            outcome = Outcome.failed(probe.email, Reason.TIMEOUT)
            outcomes.append(outcome)
            self._emit(outcome)
        return outcomes


__all__ = ["InFlightRegistry", "Reaper"]
