from __future__ import annotations

import unicodedata

import dns.exception
import dns.resolver

from mailsweep.exceptions import ProbeError

DNS_LIFETIME_S = 2.0


def norm_domain(domain: str | None) -> str | None:
    """
    NFKC -> lower -> IDNA ASCII if possible, else fallback to raw.
    """
    if not domain:
        return None
    s = unicodedata.normalize("NFKC", str(domain)).strip().lower()
    if not s:
        return None
    try:
        return s.encode("idna").decode("ascii")
    except Exception:
        return s


def _mx_pairs(domain: str, lifetime: float) -> list[tuple[int, str]]:
    resolver = dns.resolver.Resolver()
    resolver.lifetime = lifetime
    resolver.timeout = lifetime

    answers = resolver.resolve(domain, "MX")
    pairs: list[tuple[int, str]] = []
    for r in answers:
        exch = getattr(r, "exchange", None)
        if exch is None:
            continue
        full = exch.to_text()  # may be "." (Null MX, RFC 7505) or "host."
        host = "." if full == "." else exch.to_text(omit_final_dot=True).lower()
        if host:
            pairs.append((int(getattr(r, "preference", 0)), host))
    return pairs


def lookup_mx(domain: str, *, lifetime: float = DNS_LIFETIME_S) -> str:
    """
    Return the lowest-preference MX host for `domain`.

    - No MX answer -> fall back to the domain itself (implicit MX).
    - Null MX (".") -> ProbeError; the domain accepts no mail.
    - NXDOMAIN / DNS timeout -> ProbeError.
    """
    d = norm_domain(domain)
    if not d:
        raise ProbeError("empty domain")
    try:
        pairs = _mx_pairs(d, lifetime)
    except dns.resolver.NXDOMAIN as exc:
        raise ProbeError(f"nxdomain:{d}") from exc
    except (dns.resolver.NoAnswer, dns.resolver.NoNameservers):
        return d
    except dns.exception.Timeout as exc:
        raise ProbeError(f"dns_timeout:{d}") from exc
    except dns.exception.DNSException as exc:
        raise ProbeError(f"dns_error:{d}:{exc}") from exc

    if any(h == "." for _, h in pairs):
        raise ProbeError(f"null_mx:{d}")
    if not pairs:
        return d
    pairs.sort(key=lambda t: (t[0], t[1]))
    return pairs[0][1]


__all__ = ["lookup_mx", "norm_domain"]
