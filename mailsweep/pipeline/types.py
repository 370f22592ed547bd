from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from mailsweep.utils import utc_now, utc_now_iso_z


class Result(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    UNKNOWN = "unknown"


class Reason(str, Enum):
    NONE = "none"
    SKIP = "skip"
    TIMEOUT = "timeout"
    REFUSED = "refused"
    ERROR = "error"


class PipelineState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    FINISHING = "finishing"
    STOPPED = "stopped"


class Admission(str, Enum):
    """What a single dispatcher tick did."""

    DISPATCHED = "dispatched"
    SKIPPED = "skipped"
    MALFORMED = "malformed"
    DUPLICATE = "duplicate"
    SATURATED = "saturated"
    EXHAUSTED = "exhausted"
    LIMIT_REACHED = "limit_reached"
    BREAKER_TRIPPED = "breaker_tripped"
    IDLE = "idle"

    @property
    def advanced(self) -> bool:
        return self in _ADVANCING

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


_ADVANCING = frozenset(
    {Admission.DISPATCHED, Admission.SKIPPED, Admission.MALFORMED, Admission.DUPLICATE}
)
_TERMINAL = frozenset(
    {Admission.EXHAUSTED, Admission.LIMIT_REACHED, Admission.BREAKER_TRIPPED}
)


@dataclass(frozen=True)
class Candidate:
    email: str
    position: int


@dataclass(frozen=True)
class InFlightProbe:
    email: str
    started_at: float  # time.monotonic()

    def age(self, now: float) -> float:
        return now - self.started_at


@dataclass(frozen=True)
class Outcome:
    email: str
    result: Result
    reason: Reason = Reason.NONE
    observed_at: datetime = field(default_factory=utc_now)
    detail: str | None = None

    @classmethod
    def from_probe(cls, email: str, deliverable: bool) -> Outcome:
        return cls(email=email, result=Result.PASS if deliverable else Result.FAIL)

    @classmethod
    def failed(cls, email: str, reason: Reason, detail: str | None = None) -> Outcome:
        return cls(email=email, result=Result.FAIL, reason=reason, detail=detail)

    def to_document(self) -> dict[str, Any]:
        """
        The "latest result" document stored against the candidate row.

        result is True/False for PASS/FAIL and None for UNKNOWN; reason is
        None for a normal probe answer.
        """
        if self.result is Result.UNKNOWN:
            result: bool | None = None
        else:
            result = self.result is Result.PASS
        return {
            "result": result,
            "lastCheck": utc_now_iso_z(self.observed_at),
            "email": self.email,
            "reason": None if self.reason is Reason.NONE else self.reason.value.upper(),
            "detail": self.detail,
        }


@dataclass
class DomainStat:
    domain: str
    skip_count: int = 0
    timeout_count: int = 0


__all__ = [
    "Result",
    "Reason",
    "PipelineState",
    "Admission",
    "Candidate",
    "InFlightProbe",
    "Outcome",
    "DomainStat",
]
