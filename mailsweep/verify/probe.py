from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from mailsweep.config import SmtpIdentityConfig
from mailsweep.exceptions import ProbeError, ProbeRefused, TemporarySMTPError
from mailsweep.verify.mx import lookup_mx
from mailsweep.verify.smtp import probe_rcpt

log = logging.getLogger(__name__)


def interpret(result: dict) -> bool:
    """
    Map a probe_rcpt() result dict onto the verification contract:
    accept -> True, hard_fail -> False, refused -> ProbeRefused,
    temp_fail -> TemporarySMTPError, anything else -> ProbeError.
    """
    category = result.get("category")
    code = result.get("code")
    if category == "accept":
        return True
    if category == "hard_fail":
        return False
    detail = result.get("error") or f"{category}:{code}"
    if result.get("message"):
        detail = f"{detail} {result['message']}"
    if category == "refused":
        raise ProbeRefused(detail)
    if category == "temp_fail":
        raise TemporarySMTPError(detail)
    raise ProbeError(detail)


class SmtpProbe:
    """
    Async verification capability backed by a blocking smtplib RCPT probe.

    Each verify() resolves the MX and probes it on a worker thread from the
    probe's own pool, so a hung SMTP server never blocks the event loop.
    Temporary (4xx) answers are retried `temp_retries` times.
    """

    def __init__(
        self,
        identity: SmtpIdentityConfig,
        *,
        max_workers: int = 32,
        resolve_mx: Callable[[str], str] = lookup_mx,
        backoff_max_s: float = 2.0,
    ) -> None:
        self.identity = identity
        self._resolve_mx = resolve_mx
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="smtp-probe")
        self._check = retry(
            reraise=True,
            retry=retry_if_exception_type(TemporarySMTPError),
            stop=stop_after_attempt(1 + max(0, identity.temp_retries)),
            wait=wait_random_exponential(multiplier=0.5, max=backoff_max_s),
        )(self._check_once)

    def _check_once(self, email: str, timeout_s: float) -> bool:
        domain = email.rsplit("@", 1)[-1]
        mx_host = self._resolve_mx(domain)
        try:
            result = probe_rcpt(
                email,
                mx_host,
                helo_domain=self.identity.helo_domain,
                mail_from=self.identity.mail_from,
                timeout=timeout_s,
            )
        except ValueError as exc:
            raise ProbeError(str(exc)) from exc
        log.debug(
            "probe %s via %s -> %s %s (%d ms)",
            email,
            mx_host,
            result.get("category"),
            result.get("code"),
            result.get("elapsed_ms", 0),
        )
        return interpret(result)

    async def verify(self, email: str, timeout_ms: int) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._check, email, timeout_ms / 1000.0)

    def close(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)


__all__ = ["SmtpProbe", "interpret"]
