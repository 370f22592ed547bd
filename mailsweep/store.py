# mailsweep/store.py
from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from mailsweep.exceptions import StoreConnectFailure, StoreError
from mailsweep.utils import is_sqlite_url

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# -------------------- basics --------------------


def db_path_from_url(url: str) -> str:
    """
    'sqlite:///data/dev.db' -> 'data/dev.db'; a bare path is returned as-is.
    """
    u = (url or "").strip()
    if not u:
        raise StoreConnectFailure("empty database url")
    if is_sqlite_url(u):
        return u[len("sqlite:///") :]
    if "://" in u:
        raise StoreConnectFailure(f"Only sqlite is supported; got {u}")
    return u


def _check_ident(name: str) -> str:
    if not _IDENT_RE.match(name or ""):
        raise ValueError(f"invalid table name {name!r}")
    return name


class CandidateStore:
    """
    Candidate table access: bulk read of unchecked emails, bulk write of the
    latest check result per email.

    Table shape (created on demand):

        <table>(id INTEGER PRIMARY KEY, email TEXT, check_email TEXT)

    `check_email` holds the JSON result document; NULL means not yet checked.
    A connection is opened per call so the store is safe to use from worker
    threads.
    """

    def __init__(self, url: str, *, table: str = "contacts", timeout_s: float = 30.0) -> None:
        self.url = url
        self.path = db_path_from_url(url)
        self.table = _check_ident(table)
        self.timeout_s = timeout_s

    def connect(self) -> sqlite3.Connection:
        if self.path != ":memory:" and not Path(self.path).parent.exists():
            raise StoreConnectFailure(f"directory for {self.path} does not exist")
        try:
            con = sqlite3.connect(self.path, timeout=self.timeout_s)
            con.execute("SELECT 1").fetchone()
        except sqlite3.Error as exc:
            raise StoreConnectFailure(f"{self.path}: {exc}") from exc
        return con

    def ensure_schema(self) -> None:
        t = self.table
        con = self.connect()
        try:
            con.executescript(
                f"""
                CREATE TABLE IF NOT EXISTS {t} (
                    id INTEGER PRIMARY KEY,
                    email TEXT,
                    check_email TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_{t}_email ON {t}(email);
                """
            )
            con.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"ensure_schema failed: {exc}") from exc
        finally:
            con.close()

    def fetch_candidates(self, limit: int, pattern: str | None = None) -> list[str]:
        """
        Distinct, non-empty, not-yet-checked emails ordered by email, at most
        `limit` of them. `pattern` is a GLOB matched against lower(email),
        e.g. '[c-j]*'.
        """
        sql = (
            f"SELECT DISTINCT email FROM {self.table}"
            " WHERE email IS NOT NULL AND email <> '' AND check_email IS NULL"
        )
        params: list[Any] = []
        if pattern:
            sql += " AND lower(email) GLOB ?"
            params.append(pattern.lower())
        sql += " ORDER BY email LIMIT ?"
        params.append(int(limit))

        con = self.connect()
        try:
            rows = con.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"fetch_candidates failed: {exc}") from exc
        finally:
            con.close()
        return [r[0] for r in rows]

    def bulk_upsert(self, pairs: list[tuple[str, dict[str, Any]]]) -> int:
        """
        Set the latest result document on every row matching each email, in
        order, as one transaction. Returns the number of rows matched.
        """
        if not pairs:
            return 0
        sql = f"UPDATE {self.table} SET check_email = ? WHERE email = ?"
        params = [(json.dumps(doc, ensure_ascii=False), email) for email, doc in pairs]

        con = self.connect()
        try:
            with con:
                cur = con.executemany(sql, params)
                return int(cur.rowcount)
        except sqlite3.Error as exc:
            raise StoreError(f"bulk write of {len(pairs)} records failed: {exc}") from exc
        finally:
            con.close()

    def add_candidates(self, emails: Iterable[str]) -> int:
        rows = [(e,) for e in emails]
        con = self.connect()
        try:
            with con:
                con.executemany(f"INSERT INTO {self.table}(email) VALUES (?)", rows)
        except sqlite3.Error as exc:
            raise StoreError(f"insert failed: {exc}") from exc
        finally:
            con.close()
        return len(rows)

    def load_result(self, email: str) -> dict[str, Any] | None:
        con = self.connect()
        try:
            row = con.execute(
                f"SELECT check_email FROM {self.table} WHERE email = ? LIMIT 1", (email,)
            ).fetchone()
        finally:
            con.close()
        if not row or row[0] is None:
            return None
        return json.loads(row[0])


def open_store(url: str, *, table: str = "contacts") -> CandidateStore:
    """
    Open the store and make sure the candidate table exists.
    Raises StoreConnectFailure if the database cannot be reached.
    """
    store = CandidateStore(url, table=table)
    store.ensure_schema()
    return store


__all__ = ["CandidateStore", "open_store", "db_path_from_url"]
