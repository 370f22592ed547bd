# mailsweep/utils.py
"""
Shared utility functions used across the codebase.
"""
from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_now_iso_z(dt: datetime | None = None) -> str:
    """
    Return a UTC ISO 8601 string with 'Z' suffix.

    If dt is provided, converts it to UTC first.
    If dt is None, uses current UTC time.

    Example: "2025-01-15T14:30:00Z"
    """
    d = dt or datetime.now(UTC)
    if d.tzinfo is None:
        d = d.replace(tzinfo=UTC)
    else:
        d = d.astimezone(UTC)
    return d.strftime("%Y-%m-%dT%H:%M:%SZ")


def is_sqlite_url(url: str) -> bool:
    """
    Check if a database URL is a SQLite connection string.
    """
    u = (url or "").strip().lower()
    return u.startswith("sqlite:///")


def email_domain(email: str | None) -> str | None:
    """
    Return the text after the first '@', or None if there is no '@'.

    'john@example.com' -> 'example.com'
    """
    if not email:
        return None
    idx = email.find("@")
    if idx < 0:
        return None
    return email[idx + 1 :]


__all__ = [
    "utc_now",
    "utc_now_iso_z",
    "is_sqlite_url",
    "email_domain",
]
