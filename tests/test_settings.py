from __future__ import annotations

import pytest

from earnloop.config import Settings

_KEYS = (
    "DATABASE_URL",
    "TIMEZONE",
    "ENVIRONMENT",
    "CHECKIN_REWARD",
    "JACKPOT_CHANCE",
    "DATACENTER_IP_PREFIXES",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    # no stray .env next to the working directory
    monkeypatch.chdir(tmp_path)
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_load_without_any_env_uses_defaults(clean_env):
    s = Settings.load()

    assert s.database_url == "sqlite+aiosqlite:///./earnloop.db"
    assert s.timezone == "UTC"
    assert s.checkin_reward == 5
    assert s.is_dev is False
    assert s.datacenter_ip_prefixes == Settings().datacenter_ip_prefixes


def test_load_reads_env(clean_env):
    clean_env.setenv("DATABASE_URL", " sqlite+aiosqlite:///./other.db ")
    clean_env.setenv("CHECKIN_REWARD", "7")
    clean_env.setenv("JACKPOT_CHANCE", "0.5")
    clean_env.setenv("DATACENTER_IP_PREFIXES", "[10., 11.]")
    clean_env.setenv("ENVIRONMENT", "development")

    s = Settings.load()

    assert s.database_url == "sqlite+aiosqlite:///./other.db"
    assert s.checkin_reward == 7
    assert s.jackpot_chance == 0.5
    assert s.datacenter_ip_prefixes == ("10.", "11.")
    assert s.is_dev is True


def test_malformed_number_fails_fast(clean_env):
    clean_env.setenv("CHECKIN_REWARD", "five")

    with pytest.raises(RuntimeError, match="CHECKIN_REWARD"):
        Settings.load()
