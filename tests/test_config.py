# tests/test_config.py
from __future__ import annotations

import pytest

from mailsweep.config import DEFAULT_SKIP_DOMAINS, PipelineConfig, load_settings

_SWEEP_VARS = [
    "DATABASE_URL",
    "SWEEP_TABLE",
    "SWEEP_EMAIL_FILTER",
    "SWEEP_LIMIT_RECORDS",
    "SWEEP_MAX_IN_FLIGHT",
    "SWEEP_RECORD_DELAY_MS",
    "SWEEP_SAVE_BATCH_SIZE",
    "SWEEP_SKIP_DOMAINS",
    "SWEEP_PROGRESS_INTERVAL_S",
    "SMTP_HELO_DOMAIN",
    "SMTP_MAIL_FROM",
    "SMTP_TEMP_RETRIES",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in _SWEEP_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    cfg = load_settings()
    assert cfg.store.url.startswith("sqlite:///")
    assert cfg.store.table == "contacts"
    assert cfg.store.email_filter is None
    assert cfg.pipeline.max_in_flight == 32
    assert cfg.pipeline.probe_time_limit_ms == 15000
    assert cfg.pipeline.save_batch_size == 500
    assert cfg.pipeline.skip_domains == DEFAULT_SKIP_DOMAINS.split(",")
    assert cfg.smtp_identity.mail_from == f"bounce@{cfg.smtp_identity.helo_domain}"
    assert cfg.smtp_identity.temp_retries == 1


def test_env_overrides(clean_env):
    clean_env.setenv("DATABASE_URL", "sqlite:///tmp/x.db")
    clean_env.setenv("SWEEP_EMAIL_FILTER", "[c-j]*")
    clean_env.setenv("SWEEP_MAX_IN_FLIGHT", "8")
    clean_env.setenv("SWEEP_RECORD_DELAY_MS", "0")
    clean_env.setenv("SWEEP_SKIP_DOMAINS", " .gov , , example.org ")
    clean_env.setenv("SWEEP_PROGRESS_INTERVAL_S", "0.25")
    clean_env.setenv("SMTP_HELO_DOMAIN", "probe.example.net")

    cfg = load_settings()
    assert cfg.store.url == "sqlite:///tmp/x.db"
    assert cfg.store.email_filter == "[c-j]*"
    assert cfg.pipeline.max_in_flight == 8
    assert cfg.pipeline.record_delay_ms == 0
    assert cfg.pipeline.skip_domains == [".gov", "example.org"]
    assert cfg.pipeline.progress_interval_s == 0.25
    assert cfg.smtp_identity.mail_from == "bounce@probe.example.net"


@pytest.mark.parametrize(
    "name,value",
    [
        ("SWEEP_MAX_IN_FLIGHT", "lots"),
        ("SWEEP_MAX_IN_FLIGHT", "0"),
        ("SWEEP_SAVE_BATCH_SIZE", "0"),
        ("SWEEP_PROGRESS_INTERVAL_S", "soon"),
    ],
)
def test_bad_values_rejected(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(ValueError):
        load_settings()


def test_pipeline_config_is_frozen():
    cfg = PipelineConfig()
    with pytest.raises(AttributeError):
        cfg.max_in_flight = 1  # type: ignore[misc]
