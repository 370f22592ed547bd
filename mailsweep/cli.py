# mailsweep/cli.py
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import os
import signal
import sys
from collections.abc import Sequence

from mailsweep.config import AppConfig, PipelineConfig, load_settings
from mailsweep.exceptions import StoreConnectFailure, StoreError
from mailsweep.pipeline import PipelineContext, PipelineController, RunReport
from mailsweep.store import open_store
from mailsweep.verify import SmtpProbe

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STORE_FAILURE = 2
EXIT_FORCED = 130


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="mailsweep",
        description=(
            "Verify every unchecked email in the candidate table via SMTP RCPT "
            "probes and write the results back in batches. Ctrl+C once to drain "
            "and finish, twice to force exit."
        ),
    )
    p.add_argument(
        "db",
        nargs="?",
        default=None,
        help="Database URL or SQLite path (overrides DATABASE_URL).",
    )
    p.add_argument("--table", default=None, help="Candidate table (default: SWEEP_TABLE).")
    p.add_argument(
        "--filter",
        dest="email_filter",
        default=None,
        help="GLOB on lower(email), e.g. '[c-j]*' (default: SWEEP_EMAIL_FILTER).",
    )
    p.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Max records to load from the store (default: SWEEP_LIMIT_RECORDS).",
    )
    p.add_argument(
        "--max-in-flight",
        type=int,
        default=None,
        help="Concurrent probe ceiling (default: SWEEP_MAX_IN_FLIGHT).",
    )
    p.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: LOG_LEVEL or INFO).",
    )
    return p.parse_args(argv)


def _pipeline_config(cfg: AppConfig, args: argparse.Namespace) -> PipelineConfig:
    pcfg = cfg.pipeline
    if args.max_in_flight is not None:
        if args.max_in_flight < 1:
            raise SystemExit("--max-in-flight must be at least 1")
        pcfg = dataclasses.replace(pcfg, max_in_flight=args.max_in_flight)
    return pcfg


def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop, controller: PipelineController
) -> None:
    hits = 0

    def _on_signal() -> None:
        nonlocal hits
        hits += 1
        if hits == 1:
            log.warning("Interrupt received; draining. Press Ctrl+C again to force exit.")
            controller.interrupt()
        else:
            controller.hard_interrupt()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(_on_signal))


def _log_summary(report: RunReport) -> None:
    log.info(
        "Saved %d/%d outcomes (%d failed batches); skip-list now %d entries",
        report.watermark,
        report.total,
        report.failed_batches,
        len(report.skip_entries),
    )


def _hard_exit(code: int) -> None:
    """
    Terminate now. Probe workers blocked in DNS or SMTP calls and a pending
    store write would otherwise be joined at interpreter shutdown.
    """
    for handler in logging.getLogger().handlers:
        handler.flush()
    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(code)


async def _sweep(controller: PipelineController, probe: SmtpProbe) -> RunReport:
    _install_signal_handlers(asyncio.get_running_loop(), controller)
    report = await controller.run()
    if report.forced:
        # exit before asyncio.run joins the default executor
        _log_summary(report)
        probe.close(wait=False)
        _hard_exit(EXIT_FORCED)
    return report


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=str(args.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stdout,
    )

    cfg = load_settings()
    url = args.db or cfg.store.url
    table = args.table or cfg.store.table
    limit = args.limit if args.limit is not None else cfg.store.limit_records
    pattern = args.email_filter if args.email_filter is not None else cfg.store.email_filter
    pcfg = _pipeline_config(cfg, args)

    try:
        store = open_store(url, table=table)
        emails = store.fetch_candidates(limit, pattern)
    except StoreConnectFailure as exc:
        log.error("Can not connect to DB: %s", exc)
        return EXIT_STORE_FAILURE
    except StoreError as exc:
        log.error("DB ERROR: %s", exc)
        return EXIT_STORE_FAILURE
    except KeyboardInterrupt:
        log.warning("Interrupted while loading candidates; nothing was checked.")
        return EXIT_FORCED

    if not emails:
        log.info("Nothing to do. DONE")
        return EXIT_OK
    log.info("Copying %d records to the memory... DONE", len(emails))

    ctx = PipelineContext.create(pcfg, emails, store)
    # reaped probes keep their worker until the socket timeout, so leave headroom
    probe = SmtpProbe(cfg.smtp_identity, max_workers=pcfg.max_in_flight * 2)
    report: RunReport | None = None
    try:
        report = asyncio.run(_sweep(PipelineController(ctx, probe), probe))
    finally:
        probe.close(wait=report is not None and not report.forced)

    _log_summary(report)
    return EXIT_OK if report.clean else EXIT_FORCED


__all__ = ["main"]
