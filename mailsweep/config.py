from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_float(name: str, default: float) -> float:
    v = os.getenv(name, str(default)).strip()
    try:
        return float(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be a number; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_list_str(name: str, default_csv: str) -> list[str]:
    raw = os.getenv(name, default_csv).strip()
    out: list[str] = []
    for tok in (t.strip() for t in raw.split(",")):
        if tok:
            out.append(tok)
    return out


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)

DEFAULT_DB_URL = f"sqlite:///{(ROOT / 'dev.db').as_posix()}"

# Domains (substrings) that are never probed. Learned domains are appended at runtime.
DEFAULT_SKIP_DOMAINS = "@fsb,.gov,kremlin.ru,.ua,.kz,icloud.com"

# -------------------------------
# SMTP probe identity (constants, env-overridable)
# -------------------------------
SMTP_HELO_DOMAIN = os.getenv("SMTP_HELO_DOMAIN", "verifier.mailsweep.local")
SMTP_MAIL_FROM = os.getenv("SMTP_MAIL_FROM", f"bounce@{SMTP_HELO_DOMAIN}")


@dataclass(frozen=True)
class StoreConfig:
    url: str
    table: str
    email_filter: str | None
    limit_records: int


@dataclass(frozen=True)
class PipelineConfig:
    max_in_flight: int = 32
    probe_time_limit_ms: int = 15000
    probe_timeout_ms: int = 3000
    record_delay_ms: int = 800
    break_after_timeouts: int = 500
    break_counter: int = 0  # 0 = process every loaded record
    save_batch_size: int = 500
    skip_domains: list[str] = field(
        default_factory=lambda: [d for d in DEFAULT_SKIP_DOMAINS.split(",") if d]
    )
    skip_after_timeouts: int = 10
    progress_interval_s: float = 1.0
    save_interval_s: float = 1.0
    hard_stop_grace_s: float = 5.0


@dataclass(frozen=True)
class SmtpIdentityConfig:
    helo_domain: str
    mail_from: str
    temp_retries: int


@dataclass(frozen=True)
class AppConfig:
    store: StoreConfig
    pipeline: PipelineConfig
    smtp_identity: SmtpIdentityConfig


def load_settings() -> AppConfig:
    store = StoreConfig(
        url=_getenv_str("DATABASE_URL", DEFAULT_DB_URL),
        table=_getenv_str("SWEEP_TABLE", "contacts"),
        email_filter=_getenv_str("SWEEP_EMAIL_FILTER", "") or None,
        limit_records=_getenv_int("SWEEP_LIMIT_RECORDS", 500000),
    )
    pipeline = PipelineConfig(
        max_in_flight=_getenv_int("SWEEP_MAX_IN_FLIGHT", 32),
        probe_time_limit_ms=_getenv_int("SWEEP_PROBE_TIME_LIMIT_MS", 15000),
        probe_timeout_ms=_getenv_int("SWEEP_PROBE_TIMEOUT_MS", 3000),
        record_delay_ms=_getenv_int("SWEEP_RECORD_DELAY_MS", 800),
        break_after_timeouts=_getenv_int("SWEEP_BREAK_AFTER_TIMEOUTS", 500),
        break_counter=_getenv_int("SWEEP_BREAK_COUNTER", 0),
        save_batch_size=_getenv_int("SWEEP_SAVE_BATCH_SIZE", 500),
        skip_domains=_getenv_list_str("SWEEP_SKIP_DOMAINS", DEFAULT_SKIP_DOMAINS),
        skip_after_timeouts=_getenv_int("SWEEP_SKIP_AFTER_TIMEOUTS", 10),
        progress_interval_s=_getenv_float("SWEEP_PROGRESS_INTERVAL_S", 1.0),
        save_interval_s=_getenv_float("SWEEP_SAVE_INTERVAL_S", 1.0),
        hard_stop_grace_s=_getenv_float("SWEEP_HARD_STOP_GRACE_S", 5.0),
    )
    if pipeline.max_in_flight < 1:
        raise ValueError("SWEEP_MAX_IN_FLIGHT must be at least 1")
    if pipeline.save_batch_size < 1:
        raise ValueError("SWEEP_SAVE_BATCH_SIZE must be at least 1")

    helo = _getenv_str("SMTP_HELO_DOMAIN", "verifier.mailsweep.local")
    smtp_identity = SmtpIdentityConfig(
        helo_domain=helo,
        mail_from=_getenv_str("SMTP_MAIL_FROM", f"bounce@{helo}"),
        temp_retries=_getenv_int("SMTP_TEMP_RETRIES", 1),
    )
    return AppConfig(store=store, pipeline=pipeline, smtp_identity=smtp_identity)


__all__ = [
    "StoreConfig",
    "PipelineConfig",
    "SmtpIdentityConfig",
    "AppConfig",
    "load_settings",
    "DEFAULT_DB_URL",
    "DEFAULT_SKIP_DOMAINS",
    "SMTP_HELO_DOMAIN",
    "SMTP_MAIL_FROM",
]
