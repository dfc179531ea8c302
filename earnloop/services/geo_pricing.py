# earnloop/services/geo_pricing.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

# high purchasing power
TIER_1_COUNTRIES = frozenset({
    "US", "GB", "CA", "AU", "DE", "FR", "JP", "NL", "SE",
    "NO", "DK", "FI", "CH", "AT", "BE", "IE", "NZ", "LU",
})

# medium purchasing power
TIER_2_COUNTRIES = frozenset({
    "KR", "SG", "AE", "SA", "QA", "KW", "BH", "IT", "ES",
    "PT", "PL", "CZ", "HU", "IL", "TW", "HK", "MY", "TH",
})

TIER_MULTIPLIERS: dict[int, float] = {1: 1.0, 2: 1.5, 3: 3.0}

TIER_DESCRIPTIONS: dict[int, str] = {
    1: "Standard pricing",
    2: "Regional pricing (1.5x)",
    3: "Regional pricing (3x)",
}


@dataclass(frozen=True, slots=True)
class TierInfo:
    tier: int
    multiplier: float
    description: str


def get_country_tier(country_code: str | None) -> int:
    # unknown, missing or untrusted -> most conservative tier
    if not country_code:
        return 3
    code = country_code.strip().upper()
    if code in TIER_1_COUNTRIES:
        return 1
    if code in TIER_2_COUNTRIES:
        return 2
    return 3


def get_price_multiplier(country_code: str | None) -> float:
    return TIER_MULTIPLIERS[get_country_tier(country_code)]


def get_adjusted_price(base_price: int, country_code: str | None) -> int:
    multiplier = Decimal(str(get_price_multiplier(country_code)))
    adjusted = (Decimal(int(base_price)) * multiplier).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(adjusted)


def get_tier_info(country_code: str | None) -> TierInfo:
    tier = get_country_tier(country_code)
    return TierInfo(tier=tier, multiplier=TIER_MULTIPLIERS[tier], description=TIER_DESCRIPTIONS[tier])
