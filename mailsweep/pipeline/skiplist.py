from __future__ import annotations

import logging
from collections.abc import Iterable

from mailsweep.pipeline.types import DomainStat, Outcome, Reason
from mailsweep.utils import email_domain

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_THRESHOLD = 10


class SkipList:
    """
    Run-scoped adaptive blacklist of domain substrings.

    Seeded from static config; grows when a domain keeps timing out
    (more than `timeout_threshold` TIMEOUT outcomes). Entries are never
    removed during a run.
    """

    def __init__(
        self,
        seed: Iterable[str] = (),
        *,
        timeout_threshold: int = DEFAULT_TIMEOUT_THRESHOLD,
    ) -> None:
        self._entries: list[str] = []
        self._members: set[str] = set()
        self._stats: dict[str, DomainStat] = {}
        self.timeout_threshold = int(timeout_threshold)
        for item in seed:
            self._add(item)

    def _add(self, entry: str) -> bool:
        entry = (entry or "").strip()
        if not entry or entry in self._members:
            return False
        self._entries.append(entry)
        self._members.add(entry)
        return True

    @property
    def entries(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def __contains__(self, entry: object) -> bool:
        return entry in self._members

    def __len__(self) -> int:
        return len(self._entries)

    def matches(self, email: str) -> bool:
        return any(entry in email for entry in self._entries)

    def stats(self, domain: str) -> DomainStat | None:
        return self._stats.get(domain)

    def domain_stats(self) -> list[DomainStat]:
        return list(self._stats.values())

    def observe(self, outcome: Outcome) -> None:
        domain = email_domain(outcome.email)
        if domain is None:
            return

        stat = self._stats.get(domain)
        if stat is None:
            stat = self._stats[domain] = DomainStat(domain=domain)

        if outcome.reason is Reason.SKIP:
            stat.skip_count += 1
            self._add(domain)
        elif outcome.reason is Reason.TIMEOUT:
            stat.timeout_count += 1
            if stat.timeout_count > self.timeout_threshold and self._add(domain):
                log.info(
                    "SKIP-LIST + %s after %d timeouts", domain, stat.timeout_count
                )


__all__ = ["SkipList", "DEFAULT_TIMEOUT_THRESHOLD"]
