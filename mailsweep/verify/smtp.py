# mailsweep/verify/smtp.py
"""
Blocking SMTP RCPT probe.

Public function:

    probe_rcpt(
        email: str,
        mx_host: str,
        *,
        helo_domain: str,
        mail_from: str,
        timeout: float = 3.0,
    ) -> dict

Responsibilities:
- Light email normalization (trim, split, IDNA for domain; preserve local-part case).
- Open an SMTP connection; EHLO (HELO fallback); opportunistic STARTTLS.
- Run MAIL FROM / RCPT TO and capture the RCPT reply code/message.
- Classify into: accept | hard_fail | temp_fail | refused | unknown.

`refused` means the MX will not talk to us at all (TCP refused, 554
greeting, SMTPConnectError). It says more about our sending IP than about
the recipient.

Never raises for network/protocol errors; they come back as
category="unknown" with `error` set. ValueError for an invalid email.
"""

from __future__ import annotations

import smtplib
import time


def _idna_domain(d: str) -> str:
    d = (d or "").strip().lower()
    try:
        return d.encode("idna").decode("ascii")
    except Exception:
        return d


def _normalize_email(email: str) -> tuple[str, str, str]:
    s = (email or "").strip()
    if not s or "@" not in s:
        raise ValueError("invalid_email")
    local, domain = s.split("@", 1)
    nd = _idna_domain(domain)
    return local, nd, f"{local}@{nd}"


def _classify(code: int | None) -> str:
    if code is None:
        return "unknown"
    if 200 <= code < 300:
        return "accept"
    if 500 <= code < 600:
        return "hard_fail"
    if 400 <= code < 500:
        return "temp_fail"
    return "unknown"


def _decode_msg(msg: bytes | str | None) -> str:
    if msg is None:
        return ""
    if isinstance(msg, bytes):
        return msg.decode("latin-1", errors="replace").strip()
    return str(msg).strip()


def probe_rcpt(  # noqa: C901
    email: str,
    mx_host: str,
    *,
    helo_domain: str,
    mail_from: str,
    timeout: float = 3.0,
) -> dict:
    """
    Probe deliverability by issuing SMTP MAIL FROM / RCPT TO against an MX host.
    """
    started = time.monotonic()

    if not (mx_host or "").strip():
        raise ValueError("mx_host_required")
    _local, _domain, email_norm = _normalize_email(email)

    smtp: smtplib.SMTP | None = None
    rcpt_code: int | None = None
    rcpt_msg: str = ""
    error_str: str | None = None
    category: str = "unknown"

    try:
        smtp = smtplib.SMTP(host=mx_host, port=25, local_hostname=helo_domain, timeout=timeout)

        try:
            smtp.ehlo()
        except smtplib.SMTPHeloError:
            smtp.helo()

        try:
            if smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
        except (OSError, smtplib.SMTPException):
            pass

        mail_code, mail_resp = smtp.mail(mail_from)
        if mail_code >= 500:
            # sender rejected before RCPT: a policy block against us
            rcpt_code = int(mail_code)
            rcpt_msg = _decode_msg(mail_resp)
            category = "refused"
            error_str = f"mail_from_rejected:{mail_code}"
        else:
            code, resp = smtp.rcpt(email_norm)
            rcpt_code = int(code) if isinstance(code, int) else None
            rcpt_msg = _decode_msg(resp)
            category = _classify(rcpt_code)

    except ConnectionRefusedError as exc:
        error_str = f"refused:{exc}"
        category = "refused"
    except smtplib.SMTPConnectError as exc:
        rcpt_code = int(getattr(exc, "smtp_code", None) or 0) or None
        rcpt_msg = _decode_msg(getattr(exc, "smtp_error", b""))
        error_str = f"refused:{rcpt_code}"
        category = "refused"
    except TimeoutError as exc:
        error_str = f"timeout:{exc}"
    except smtplib.SMTPResponseException as exc:
        rcpt_code = int(getattr(exc, "smtp_code", None) or 0) or None
        rcpt_msg = _decode_msg(getattr(exc, "smtp_error", b""))
        category = "refused" if rcpt_code == 554 else _classify(rcpt_code)
        error_str = f"smtp_response:{rcpt_code}"
    except smtplib.SMTPServerDisconnected as exc:
        error_str = f"disconnected:{exc}"
    except smtplib.SMTPException as exc:
        error_str = f"smtp_error:{exc}"
    except OSError as exc:
        error_str = f"error:{type(exc).__name__}:{exc}"
    finally:
        if smtp is not None:
            try:
                smtp.quit()
            except (OSError, smtplib.SMTPException):
                smtp.close()

    elapsed_ms = int((time.monotonic() - started) * 1000)

    return {
        "ok": rcpt_code is not None and error_str is None,
        "category": category,
        "code": rcpt_code,
        "message": rcpt_msg,
        "mx_host": mx_host,
        "helo_domain": helo_domain,
        "elapsed_ms": elapsed_ms,
        "error": error_str,
    }


__all__ = ["probe_rcpt"]
