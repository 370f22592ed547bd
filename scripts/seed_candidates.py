# scripts/seed_candidates.py
from __future__ import annotations

"""
Load candidate emails into the sweep table.

- Accepts one or more files: plain text (one email per line) or CSV with an
  'email' column (detected from the header)
- Skips blank lines and exact duplicates within the input
- Creates the table if missing

Usage:
  python scripts/seed_candidates.py contacts.csv more.txt
  python scripts/seed_candidates.py --db sqlite:///data/dev.db contacts.csv
"""

import argparse
import csv
import sys
from collections.abc import Iterator
from pathlib import Path

# --- make "mailsweep" importable when run from scripts/ ---
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mailsweep.config import load_settings  # noqa: E402
from mailsweep.exceptions import StoreError  # noqa: E402
from mailsweep.store import open_store  # noqa: E402


def _read_emails(path: Path) -> Iterator[str]:
    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        first = fh.readline()
        fh.seek(0)
        if "," in first and "email" in first.lower():
            reader = csv.DictReader(fh)
            key = next((k for k in reader.fieldnames or [] if k.strip().lower() == "email"), None)
            if key is None:
                raise SystemExit(f"CSV header has no 'email' column: {path}")
            for row in reader:
                value = (row.get(key) or "").strip()
                if value:
                    yield value
        else:
            for line in fh:
                value = line.strip()
                if value and not value.startswith("#"):
                    yield value


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed the candidate table from files.")
    p.add_argument("paths", nargs="+", type=Path, help="Input files (.txt or .csv).")
    p.add_argument("--db", default=None, help="Database URL (default: DATABASE_URL).")
    p.add_argument("--table", default=None, help="Table name (default: SWEEP_TABLE).")
    return p.parse_args()


def main() -> int:
    args = _parse_args()
    cfg = load_settings()

    seen: set[str] = set()
    emails: list[str] = []
    for p in args.paths:
        if not p.exists():
            raise SystemExit(f"File not found: {p}")
        for e in _read_emails(p):
            if e not in seen:
                seen.add(e)
                emails.append(e)

    try:
        store = open_store(args.db or cfg.store.url, table=args.table or cfg.store.table)
        n = store.add_candidates(emails)
    except StoreError as exc:
        print(f"DB ERROR: {exc}")
        return 2

    print(f"Inserted {n} candidates into {store.table} ({store.path})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
