from __future__ import annotations

from dataclasses import asdict, dataclass

from mailsweep.pipeline.types import Outcome, Reason, Result


@dataclass
class Statistics:
    """
    Per-run outcome counters. Only ever incremented.
    """

    good: int = 0
    bad: int = 0
    skip: int = 0
    refused: int = 0
    timeout: int = 0
    error: int = 0

    def record(self, outcome: Outcome) -> None:
        reason = outcome.reason
        if reason is Reason.SKIP:
            self.skip += 1
        elif reason is Reason.TIMEOUT:
            self.timeout += 1
        elif reason is Reason.REFUSED:
            self.refused += 1
        elif reason is Reason.ERROR:
            self.error += 1
        elif outcome.result is Result.PASS:
            self.good += 1
        else:
            self.bad += 1

    def record_error(self) -> None:
        """Count a candidate that was rejected before dispatch (no Outcome)."""
        self.error += 1

    @property
    def total(self) -> int:
        return self.good + self.bad + self.skip + self.refused + self.timeout + self.error

    def as_dict(self) -> dict[str, int]:
        d = asdict(self)
        d["total"] = self.total
        return d

    def status_line(self, position: int, in_flight: int) -> str:
        return (
            f"Check#: {position} [THREADS:{in_flight}]"
            f" GOOD:{self.good} BAD:{self.bad} ERROR:{self.error}"
            f" SKIP:{self.skip} REFUSED:{self.refused} TIMEOUT:{self.timeout}"
            f" TOTAL:{self.total}"
        )


__all__ = ["Statistics"]
