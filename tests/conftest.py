# ruff: noqa: E402
# tests/conftest.py
from __future__ import annotations

import asyncio
import sqlite3
import sys
import threading
import time
from pathlib import Path
from typing import Any

import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mailsweep.config import PipelineConfig
from mailsweep.exceptions import StoreError
from mailsweep.pipeline import PipelineContext


class FakeProbe:
    """
    Scriptable stand-in for SmtpProbe.

    answers: email -> True/False or an exception instance to raise.
    hang: emails whose verify() never returns until `release` is set.
    """

    def __init__(
        self,
        answers: dict[str, Any] | None = None,
        *,
        default: Any = True,
        hang: set[str] | None = None,
        hang_all: bool = False,
    ) -> None:
        self.answers = dict(answers or {})
        self.default = default
        self.hang = set(hang or ())
        self.hang_all = hang_all
        self.release: asyncio.Event | None = None
        self.calls: list[str] = []
        self.registry = None
        self.max_in_flight_seen = 0
        self.closed_with: bool | None = None

    async def verify(self, email: str, timeout_ms: int) -> bool:
        self.calls.append(email)
        if self.registry is not None:
            self.max_in_flight_seen = max(self.max_in_flight_seen, len(self.registry))
        if self.hang_all or email in self.hang:
            if self.release is None:
                self.release = asyncio.Event()
            await self.release.wait()
        answer = self.answers.get(email, self.default)
        if isinstance(answer, BaseException):
            raise answer
        return bool(answer)

    def close(self, *, wait: bool = True) -> None:
        self.closed_with = wait


class FakeWriter:
    """In-memory ResultWriter that records every batch and detects overlapping writes."""

    def __init__(self, *, fail_batches: set[int] | None = None, delay_s: float = 0.0) -> None:
        self.batches: list[list[tuple[str, dict[str, Any]]]] = []
        self.fail_batches = set(fail_batches or ())
        self.delay_s = delay_s
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def bulk_upsert(self, pairs):
        with self._lock:
            call = self.calls
            self.calls += 1
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay_s:
                time.sleep(self.delay_s)
            if call in self.fail_batches:
                raise StoreError("connection reset by peer")
            self.batches.append(list(pairs))
            return len(pairs)
        finally:
            with self._lock:
                self.active -= 1

    @property
    def documents(self) -> list[dict[str, Any]]:
        return [doc for batch in self.batches for _email, doc in batch]


def fast_config(**overrides: Any) -> PipelineConfig:
    """Pipeline config with tick intervals small enough for tests."""
    base: dict[str, Any] = {
        "max_in_flight": 4,
        "probe_time_limit_ms": 5000,
        "probe_timeout_ms": 1000,
        "record_delay_ms": 0,
        "break_after_timeouts": 500,
        "break_counter": 0,
        "save_batch_size": 500,
        "skip_domains": [".gov"],
        "skip_after_timeouts": 10,
        "progress_interval_s": 0.01,
        "save_interval_s": 0.01,
        "hard_stop_grace_s": 0.05,
    }
    base.update(overrides)
    return PipelineConfig(**base)


def make_context(emails, writer=None, **overrides: Any) -> PipelineContext:
    return PipelineContext.create(fast_config(**overrides), emails, writer or FakeWriter())


@pytest.fixture
def fake_writer() -> FakeWriter:
    return FakeWriter()


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    """Fresh sqlite file with an empty contacts table."""
    db_path = tmp_path / "sweep.db"
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(
            """
            CREATE TABLE contacts (
              id INTEGER PRIMARY KEY,
              email TEXT,
              check_email TEXT
            );
            """
        )
        conn.commit()
    finally:
        conn.close()
    return f"sqlite:///{db_path.as_posix()}"
