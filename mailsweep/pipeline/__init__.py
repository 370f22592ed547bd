"""
Bounded-concurrency verification pipeline.

    candidates -> Dispatcher (gate, skip-list, probe) -> outcomes
               -> Statistics + SkipList + PersistenceBatcher -> store

PipelineController owns the lifecycle and the two tickers that drive it.
"""

from __future__ import annotations

from .batcher import PersistenceBatcher
from .context import PipelineContext
from .controller import PipelineController, RunReport
from .dispatcher import Dispatcher, Probe, parse_candidate
from .inflight import InFlightRegistry, Reaper
from .skiplist import SkipList
from .stats import Statistics
from .types import (
    Admission,
    Candidate,
    DomainStat,
    InFlightProbe,
    Outcome,
    PipelineState,
    Reason,
    Result,
)

__all__ = [
    "Admission",
    "Candidate",
    "Dispatcher",
    "DomainStat",
    "InFlightProbe",
    "InFlightRegistry",
    "Outcome",
    "PersistenceBatcher",
    "PipelineContext",
    "PipelineController",
    "PipelineState",
    "Probe",
    "Reaper",
    "Reason",
    "Result",
    "RunReport",
    "SkipList",
    "Statistics",
    "parse_candidate",
]
