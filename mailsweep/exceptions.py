# mailsweep/exceptions.py
"""
Shared exception classes used across the codebase.

Per-candidate failures (probe errors, malformed input) never escape the
pipeline; they are turned into outcomes or counters where they happen.
Store errors are fatal only when the initial candidate read fails.
"""

from __future__ import annotations


class ProbeError(Exception):
    """
    Raised by the verification capability for any probe-level failure.

    Examples:
        - DNS failure for the recipient domain
        - SMTP protocol error or dropped connection
        - Socket timeout inside the probe itself
    """

    pass


class ProbeRefused(ProbeError):
    """
    Raised when the remote MX actively refuses us (connection refused,
    554 greeting, policy block). Usually an IP-reputation problem, not a
    property of the domain, so it is not fed to the skip-list.
    """

    pass


class TemporarySMTPError(ProbeError):
    """
    Raised when an SMTP RCPT probe gets a temporary/retriable answer.

    Examples:
        - 4xx SMTP response codes
        - Greylisting responses (450)
    """

    pass


class MalformedCandidate(ValueError):
    """Raised for an empty or unparseable candidate email."""

    pass


class StoreError(Exception):
    """Raised when a read or bulk write against the candidate store fails."""

    pass


class StoreConnectFailure(StoreError):
    """Raised when the candidate store cannot be opened at all."""

    pass


__all__ = [
    "ProbeError",
    "ProbeRefused",
    "TemporarySMTPError",
    "MalformedCandidate",
    "StoreError",
    "StoreConnectFailure",
]
