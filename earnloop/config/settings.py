# earnloop/config/settings.py
from __future__ import annotations

import os
import re
from dataclasses import dataclass

from dotenv import load_dotenv


DEFAULT_DATACENTER_PREFIXES: tuple[str, ...] = (
    "104.16.", "172.64.", "141.101.",  # Cloudflare
    "54.", "52.", "35.", "34.",  # AWS (simplified)
)


def _to_int(value: str, key_name: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise RuntimeError(f"Invalid integer for {key_name}: {value!r}") from e


def _to_float(value: str, key_name: str) -> float:
    try:
        return float(value)
    except ValueError as e:
        raise RuntimeError(f"Invalid number for {key_name}: {value!r}") from e


def _parse_str_list(raw: str | None) -> list[str]:
    """
    Parses comma/space/newline separated strings.
    Accepts:
      "54.,52."
      "54. 52."
      "[54., 52.]"  (brackets ignored)
    """
    if not raw:
        return []

    cleaned = raw.strip().strip("[](){}").strip()
    if not cleaned:
        return []

    out: list[str] = []
    for p in re.split(r"[,\s]+", cleaned):
        p2 = p.strip().strip("'\"")
        if p2:
            out.append(p2)
    return out


def _int_env(env, key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    return _to_int(raw, key) if raw else default


def _float_env(env, key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    return _to_float(raw, key) if raw else default


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str = "sqlite+aiosqlite:///./earnloop.db"

    # --- scheduler / time ---
    timezone: str = "UTC"
    draw_check_minutes: int = 60

    # --- environment ---
    environment: str = "production"  # production | development

    # --- earn rewards (credits) ---
    checkin_reward: int = 5
    ad_reward: int = 10
    learn_reward: int = 15
    learn_min_score: int = 70
    boost_multiplier: int = 2

    # --- jackpot (tokens) ---
    jackpot_min_bet: int = 10
    jackpot_max_bet: int = 500
    jackpot_contribution: float = 0.10  # share of a losing spin fed to the pool
    jackpot_chance: float = 0.0001
    jackpot_pool_share: float = 0.5  # share of the pool paid on a true jackpot
    jackpot_seed_tokens: int = 10_000

    mystery_bag_cost: int = 25

    # --- giveaways ---
    giveaway_entry_cost: int = 50
    giveaway_max_bonus_entries: int = 5
    giveaway_bonus_cooldown_hours: int = 12

    # --- fraud gate ---
    velocity_window_minutes: int = 5
    velocity_max_events: int = 10
    datacenter_ip_prefixes: tuple[str, ...] = DEFAULT_DATACENTER_PREFIXES

    @property
    def is_dev(self) -> bool:
        return self.environment.lower() in {"dev", "development", "local"}

    @classmethod
    def load(cls) -> "Settings":
        """
        Loads from process env (and .env if present).
        Every key is optional; malformed numbers fail fast.
        """
        load_dotenv()
        env = os.environ

        database_url = (env.get("DATABASE_URL") or "sqlite+aiosqlite:///./earnloop.db").strip()
        timezone = (env.get("TIMEZONE") or "UTC").strip() or "UTC"
        environment = (env.get("ENVIRONMENT") or "production").strip() or "production"

        prefixes = tuple(_parse_str_list(env.get("DATACENTER_IP_PREFIXES"))) or DEFAULT_DATACENTER_PREFIXES

        return cls(
            database_url=database_url,
            timezone=timezone,
            draw_check_minutes=_int_env(env, "DRAW_CHECK_MINUTES", 60),
            environment=environment,
            checkin_reward=_int_env(env, "CHECKIN_REWARD", 5),
            ad_reward=_int_env(env, "AD_REWARD", 10),
            learn_reward=_int_env(env, "LEARN_REWARD", 15),
            learn_min_score=_int_env(env, "LEARN_MIN_SCORE", 70),
            boost_multiplier=_int_env(env, "BOOST_MULTIPLIER", 2),
            jackpot_min_bet=_int_env(env, "JACKPOT_MIN_BET", 10),
            jackpot_max_bet=_int_env(env, "JACKPOT_MAX_BET", 500),
            jackpot_contribution=_float_env(env, "JACKPOT_CONTRIBUTION", 0.10),
            jackpot_chance=_float_env(env, "JACKPOT_CHANCE", 0.0001),
            jackpot_pool_share=_float_env(env, "JACKPOT_POOL_SHARE", 0.5),
            jackpot_seed_tokens=_int_env(env, "JACKPOT_SEED_TOKENS", 10_000),
            mystery_bag_cost=_int_env(env, "MYSTERY_BAG_COST", 25),
            giveaway_entry_cost=_int_env(env, "GIVEAWAY_ENTRY_COST", 50),
            giveaway_max_bonus_entries=_int_env(env, "GIVEAWAY_MAX_BONUS_ENTRIES", 5),
            giveaway_bonus_cooldown_hours=_int_env(env, "GIVEAWAY_BONUS_COOLDOWN_HOURS", 12),
            velocity_window_minutes=_int_env(env, "VELOCITY_WINDOW_MINUTES", 5),
            velocity_max_events=_int_env(env, "VELOCITY_MAX_EVENTS", 10),
            datacenter_ip_prefixes=prefixes,
        )
