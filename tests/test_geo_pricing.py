from __future__ import annotations

import pytest

from earnloop.handlers import get_adjusted_price as adjusted_price_handler
from earnloop.services.geo_pricing import get_adjusted_price, get_country_tier, get_tier_info


@pytest.mark.parametrize(
    "country, expected",
    [
        ("US", 5000),
        ("us", 5000),
        ("KR", 7500),
        ("BR", 15000),
        ("", 15000),
        (None, 15000),
    ],
)
def test_gift_card_prices(country, expected):
    assert get_adjusted_price(5000, country) == expected


def test_half_up_rounding():
    # 333 * 1.5 = 499.5
    assert get_adjusted_price(333, "KR") == 500


def test_tiers():
    assert get_country_tier("GB") == 1
    assert get_country_tier(" sg ") == 2
    assert get_country_tier("XX") == 3
    info = get_tier_info("DE")
    assert (info.tier, info.multiplier) == (1, 1.0)


async def test_adjusted_price_handler(ctx):
    res = await adjusted_price_handler(ctx, base_price=5000, country_code="KR")

    assert res["success"] is True
    assert res["data"]["adjusted_price"] == 7500
    assert res["data"]["tier"] == 2
