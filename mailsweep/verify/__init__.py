"""
SMTP verification package

The verification capability consumed by the pipeline:

    SmtpProbe(identity).verify(email, timeout_ms) -> bool
        True  = mailbox accepted (RCPT 2xx)
        False = mailbox rejected (RCPT 5xx)
        raises ProbeRefused / ProbeError otherwise

See: mailsweep/verify/smtp.py (blocking RCPT probe), mailsweep/verify/mx.py
"""

from __future__ import annotations

from .probe import SmtpProbe, interpret
from .smtp import probe_rcpt

__all__ = ["SmtpProbe", "interpret", "probe_rcpt"]
