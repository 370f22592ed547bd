from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from mailsweep.config import PipelineConfig
from mailsweep.pipeline.batcher import PersistenceBatcher, ResultWriter
from mailsweep.pipeline.inflight import InFlightRegistry
from mailsweep.pipeline.skiplist import SkipList
from mailsweep.pipeline.stats import Statistics
from mailsweep.pipeline.types import Candidate, Outcome, PipelineState


@dataclass
class PipelineContext:
    """
    All mutable state of one sweep. Owned by the controller and handed to
    each component; nothing here is module-global.
    """

    config: PipelineConfig
    candidates: list[Candidate]
    stats: Statistics
    skiplist: SkipList
    registry: InFlightRegistry
    batcher: PersistenceBatcher
    state: PipelineState = PipelineState.NOT_STARTED
    cursor: int = -1  # index of the last admitted candidate

    @classmethod
    def create(
        cls,
        config: PipelineConfig,
        emails: Iterable[str],
        writer: ResultWriter,
    ) -> PipelineContext:
        return cls(
            config=config,
            candidates=[Candidate(email=e, position=i) for i, e in enumerate(emails)],
            stats=Statistics(),
            skiplist=SkipList(
                config.skip_domains, timeout_threshold=config.skip_after_timeouts
            ),
            registry=InFlightRegistry(config.probe_time_limit_ms / 1000.0),
            batcher=PersistenceBatcher(writer, batch_size=config.save_batch_size),
        )

    @property
    def position(self) -> int:
        """Number of candidates admitted so far."""
        return self.cursor + 1

    def emit(self, outcome: Outcome) -> None:
        self.stats.record(outcome)
        self.skiplist.observe(outcome)
        self.batcher.enqueue(outcome)


__all__ = ["PipelineContext"]
