# scripts/probe_smtp.py
from __future__ import annotations

r"""
Single-address SMTP RCPT probe, using the same adapter the sweep uses.

Usage examples:
  # Resolve MX via DNS and probe
  #   python scripts/probe_smtp.py --email "someone@example.com"
  #
  # Probe a specific MX host (skips DNS):
  #   python scripts/probe_smtp.py --email "user@example.com" --mx-host "aspmx.l.google.com"
  #
  # Also show the last stored result for the address:
  #   python scripts/probe_smtp.py --email "user@example.com" --show-stored

Behavior:
  - Reads identity from mailsweep.config (SMTP_HELO_DOMAIN, SMTP_MAIL_FROM).
  - Prints the raw probe_rcpt() dict, then how the sweep would classify it
    (PASS / FAIL / REFUSED / ERROR).
"""

import argparse
import json
import sys
from pathlib import Path

# --- make "mailsweep" importable when run from scripts/ ---
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mailsweep.config import load_settings  # noqa: E402
from mailsweep.exceptions import ProbeError, ProbeRefused  # noqa: E402
from mailsweep.store import CandidateStore  # noqa: E402
from mailsweep.verify import interpret, probe_rcpt  # noqa: E402
from mailsweep.verify.mx import lookup_mx  # noqa: E402


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="probe_smtp.py",
        description="Probe one email via RCPT TO and show how the sweep would classify it.",
    )
    p.add_argument(
        "--email",
        required=True,
        help="Target email address to probe (e.g., someone@example.com).",
    )
    p.add_argument(
        "--mx-host",
        default=None,
        help="Optional MX host (e.g., aspmx.l.google.com). If omitted, resolve via DNS.",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="SMTP socket timeout in seconds (default: SWEEP_PROBE_TIMEOUT_MS / 1000).",
    )
    p.add_argument(
        "--show-stored",
        action="store_true",
        help="Also print the stored result document for this email, if any.",
    )
    return p.parse_args()


def _classify(result: dict) -> str:
    try:
        return "PASS" if interpret(result) else "FAIL"
    except ProbeRefused:
        return "REFUSED"
    except ProbeError:
        return "ERROR"


def main() -> None:
    args = _parse_args()
    cfg = load_settings()

    try:
        domain = args.email.split("@", 1)[1].strip().lower()
    except IndexError as err:
        print("Error: --email must contain a single '@' with a domain part.")
        raise SystemExit(2) from err

    if args.mx_host:
        mx_host = args.mx_host.strip()
    else:
        try:
            mx_host = lookup_mx(domain)
        except ProbeError as exc:
            print(f"MX lookup failed: {exc}")
            raise SystemExit(1) from exc

    timeout = args.timeout if args.timeout is not None else cfg.pipeline.probe_timeout_ms / 1000.0
    result = probe_rcpt(
        args.email,
        mx_host,
        helo_domain=cfg.smtp_identity.helo_domain,
        mail_from=cfg.smtp_identity.mail_from,
        timeout=timeout,
    )

    print(json.dumps(result, indent=2, sort_keys=True))
    print(f"sweep outcome: {_classify(result)}")

    if args.show_stored:
        store = CandidateStore(cfg.store.url, table=cfg.store.table)
        doc = store.load_result(args.email)
        print("stored:", json.dumps(doc, indent=2) if doc else "(none)")


if __name__ == "__main__":
    main()
