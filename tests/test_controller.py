# tests/test_controller.py
from __future__ import annotations

import asyncio

import pytest
from conftest import FakeProbe, FakeWriter, make_context

from mailsweep.pipeline import PipelineController, PipelineState
from mailsweep.pipeline.ticker import Ticker


def _run(controller: PipelineController, timeout: float = 5.0):
    return asyncio.run(asyncio.wait_for(controller.run(), timeout))


def test_completes_and_persists_every_outcome():
    emails = [f"user{i}@x.com" for i in range(30)] + ["a@city.gov", "broken"]
    probe = FakeProbe({f"user{i}@x.com": i % 3 != 0 for i in range(30)})
    writer = FakeWriter()
    ctx = make_context(emails, writer, max_in_flight=4, save_batch_size=7)
    probe.registry = ctx.registry
    controller = PipelineController(ctx, probe)

    report = _run(controller)

    assert report.state is PipelineState.STOPPED
    assert report.clean
    assert controller.finish_reason == "exhausted"
    assert report.position == 32
    assert report.stats["good"] == 20
    assert report.stats["bad"] == 10
    assert report.stats["skip"] == 1
    assert report.stats["error"] == 1
    assert report.watermark == report.total == 31
    assert report.failed_batches == 0

    written = [email for batch in writer.batches for email, _doc in batch]
    assert sorted(written) == sorted(emails[:-1])
    assert all(len(batch) <= 7 for batch in writer.batches)
    assert writer.max_active == 1
    assert probe.max_in_flight_seen <= 4
    assert "city.gov" in report.skip_entries


def test_never_resolving_probes_are_reaped_as_timeouts():
    probe = FakeProbe(hang_all=True)
    writer = FakeWriter()
    ctx = make_context(
        ["a@x.com", "b@x.com", "c@x.com"],
        writer,
        max_in_flight=2,
        probe_time_limit_ms=100,
    )
    probe.registry = ctx.registry
    controller = PipelineController(ctx, probe)

    report = _run(controller)

    assert report.state is PipelineState.STOPPED
    assert report.stats["timeout"] == 3
    assert report.stats["total"] == 3
    assert len(ctx.registry) == 0
    assert probe.max_in_flight_seen <= 2
    assert sorted(d["email"] for d in writer.documents) == ["a@x.com", "b@x.com", "c@x.com"]
    assert {d["reason"] for d in writer.documents} == {"TIMEOUT"}


def test_interrupt_drains_in_flight_and_flushes_pending():
    skipped = [f"s{i}@agency.gov" for i in range(10)]
    probed = [f"p{i}@x.com" for i in range(5)]
    untouched = [f"later{i}@x.com" for i in range(5)]
    probe = FakeProbe(hang=set(probed))
    writer = FakeWriter()
    ctx = make_context(
        skipped + probed + untouched,
        writer,
        max_in_flight=5,
        skip_domains=[".gov"],
        probe_time_limit_ms=60000,
    )
    controller = PipelineController(ctx, probe)
    states: list[PipelineState] = []

    async def _scenario():
        task = asyncio.create_task(controller.run())
        for _ in range(500):
            if len(ctx.registry) == 5 and ctx.batcher.pending == 10:
                break
            await asyncio.sleep(0.005)
        assert len(ctx.registry) == 5
        assert ctx.batcher.pending == 10

        controller.interrupt()
        states.append(controller.state)
        await asyncio.sleep(0.05)
        states.append(controller.state)
        probe.release.set()
        return await asyncio.wait_for(task, 5.0)

    report = asyncio.run(_scenario())

    assert states == [PipelineState.FINISHING, PipelineState.FINISHING]
    assert report.state is PipelineState.STOPPED
    assert report.clean
    assert report.position == 15
    assert sorted(probe.calls) == sorted(probed)
    assert report.watermark == report.total == 15
    written = {d["email"] for d in writer.documents}
    assert written == set(skipped) | set(probed)


def test_hard_interrupt_forces_stop_after_grace():
    probe = FakeProbe(hang_all=True)
    writer = FakeWriter()
    ctx = make_context(
        [f"u{i}@x.com" for i in range(3)],
        writer,
        max_in_flight=3,
        probe_time_limit_ms=60000,
        hard_stop_grace_s=0.05,
    )
    controller = PipelineController(ctx, probe)

    async def _scenario():
        task = asyncio.create_task(controller.run())
        for _ in range(500):
            if len(ctx.registry) == 3:
                break
            await asyncio.sleep(0.005)
        controller.hard_interrupt()
        controller.hard_interrupt()
        return await asyncio.wait_for(task, 5.0)

    report = asyncio.run(_scenario())

    assert report.state is PipelineState.STOPPED
    assert report.forced
    assert not report.clean
    assert writer.documents == []


def test_break_counter_stops_admission():
    emails = [f"u{i}@x.com" for i in range(10)]
    writer = FakeWriter()
    ctx = make_context(emails, writer, break_counter=4)
    controller = PipelineController(ctx, FakeProbe())

    report = _run(controller)

    assert controller.finish_reason == "limit_reached"
    assert report.position == 4
    assert report.total == 4


def test_timeout_breaker_finishes_run():
    emails = [f"u{i}@x{i}.com" for i in range(10)]
    ctx = make_context(emails, FakeWriter(), break_after_timeouts=1)
    controller = PipelineController(ctx, FakeProbe())
    ctx.stats.timeout = 2

    report = _run(controller)

    assert controller.finish_reason == "breaker_tripped"
    assert report.position == 0


def test_state_only_moves_forward():
    ctx = make_context(["a@x.com"], FakeWriter())
    controller = PipelineController(ctx, FakeProbe())
    seen: list[PipelineState] = [controller.state]

    async def _scenario():
        task = asyncio.create_task(controller.run())
        while not task.done():
            if controller.state is not seen[-1]:
                seen.append(controller.state)
            await asyncio.sleep(0)
        seen.append(controller.state)
        return await task

    asyncio.run(asyncio.wait_for(_scenario(), 5.0))

    order = [
        PipelineState.NOT_STARTED,
        PipelineState.RUNNING,
        PipelineState.FINISHING,
        PipelineState.STOPPED,
    ]
    dedup = [s for i, s in enumerate(seen) if i == 0 or s is not seen[i - 1]]
    assert [order.index(s) for s in dedup] == sorted(order.index(s) for s in dedup)
    assert dedup[0] is PipelineState.NOT_STARTED
    assert dedup[-1] is PipelineState.STOPPED


def test_start_twice_is_rejected():
    controller = PipelineController(make_context([], FakeWriter()), FakeProbe())
    controller.start()
    with pytest.raises(RuntimeError):
        controller.start()


def test_empty_candidate_list_stops_immediately():
    controller = PipelineController(make_context([], FakeWriter()), FakeProbe())
    report = _run(controller)
    assert report.state is PipelineState.STOPPED
    assert report.total == 0
    assert controller.finish_reason == "exhausted"


def test_failed_flush_does_not_block_completion():
    writer = FakeWriter(fail_batches={0})
    ctx = make_context([f"u{i}@x.com" for i in range(6)], writer, save_batch_size=3)
    controller = PipelineController(ctx, FakeProbe())

    report = _run(controller)

    assert report.state is PipelineState.STOPPED
    assert report.failed_batches == 1
    assert report.watermark == report.total == 6
    assert len(writer.documents) == 3


def test_each_candidate_yields_exactly_one_outcome():
    emails = [f"u{i}@d{i % 5}.com" for i in range(40)]
    answers = {e: (i % 4 != 0) for i, e in enumerate(emails)}
    slow = {emails[3], emails[17]}
    probe = FakeProbe(answers, hang=slow)
    writer = FakeWriter()
    ctx = make_context(emails, writer, max_in_flight=6, probe_time_limit_ms=80, save_batch_size=9)
    controller = PipelineController(ctx, probe)

    report = _run(controller)

    written = [d["email"] for d in writer.documents]
    assert sorted(written) == sorted(emails)
    timeouts = {d["email"] for d in writer.documents if d["reason"] == "TIMEOUT"}
    assert timeouts == slow
    assert report.stats["total"] == 40


def test_ticker_error_surfaces_from_run(monkeypatch):
    ctx = make_context([f"u{i}@x.com" for i in range(3)], FakeWriter())
    controller = PipelineController(ctx, FakeProbe())

    def _broken() -> None:
        raise RuntimeError("tick failed")

    monkeypatch.setattr(controller, "persistence_tick", _broken)

    with pytest.raises(RuntimeError, match="tick failed"):
        _run(controller)


def test_ticker_stop_is_idempotent():
    calls: list[int] = []

    async def _go():
        ticker = Ticker(0.001, lambda: calls.append(1), name="t")
        ticker.start()
        await asyncio.sleep(0.02)
        await ticker.stop()
        await ticker.stop()
        return ticker.task

    task = asyncio.run(_go())
    assert task.cancelled()
    assert calls


def test_hard_stop_timer_cancelled_when_drain_finishes_first():
    ctx = make_context(
        [f"u{i}@x.com" for i in range(3)],
        FakeWriter(),
        probe_time_limit_ms=60000,
        hard_stop_grace_s=30.0,
    )
    probe = FakeProbe(hang={"u0@x.com"})
    controller = PipelineController(ctx, probe)

    async def _scenario():
        task = asyncio.create_task(controller.run())
        for _ in range(500):
            if "u0@x.com" in ctx.registry:
                break
            await asyncio.sleep(0.005)
        controller.hard_interrupt()
        probe.release.set()
        return await asyncio.wait_for(task, 5.0)

    report = asyncio.run(_scenario())

    assert report.clean
    assert not report.forced
    assert controller._hard_stop is not None
    assert controller._hard_stop.cancelled()
