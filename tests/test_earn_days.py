from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime

from earnloop.database.models import EarnEventType
from earnloop.services.earn import EarnEventRecorder, EarnService
from earnloop.utils.dates import local_date, local_day_start


def test_local_day_start_is_utc_of_local_midnight():
    # New York is on EDT (UTC-4) from 2026-03-08
    assert local_day_start(date(2026, 3, 10), "America/New_York") == datetime(2026, 3, 10, 4, 0)
    assert local_day_start(date(2026, 3, 10), "Asia/Tokyo") == datetime(2026, 3, 9, 15, 0)
    assert local_day_start(date(2026, 3, 10), "UTC") == datetime(2026, 3, 10, 0, 0)


def test_local_date_of_utc_instant():
    assert local_date(datetime(2026, 3, 10, 3, 0), "America/New_York") == date(2026, 3, 9)
    assert local_date(datetime(2026, 3, 10, 20, 0), "Asia/Tokyo") == date(2026, 3, 11)


async def _ad(session, uid: int, key: str, at: datetime) -> None:
    res = await EarnEventRecorder.record(
        session, user_id=uid, event_type=EarnEventType.REWARDED_AD, amount=10, dedup_key=key, now=at
    )
    assert res.applied


async def test_status_counts_from_local_midnight(session, make_user):
    uid = await make_user("ny@example.com")
    await _ad(session, uid, "ad:late", datetime(2026, 3, 10, 3, 0))  # Mar 9, 23:00 in New York
    await _ad(session, uid, "ad:early", datetime(2026, 3, 10, 6, 0))  # Mar 10, 02:00 in New York

    st = await EarnService.status(session, user_id=uid, today=date(2026, 3, 10), timezone="America/New_York")

    assert st.ads_today == 1
    assert st.today_earned == 10
    assert st.total_earned == 20


async def test_rewarded_ad_counts_the_local_day(session, settings, make_user):
    tokyo = replace(settings, timezone="Asia/Tokyo")
    uid = await make_user("tokyo@example.com")
    await _ad(session, uid, "ad:yesterday", datetime(2026, 3, 10, 14, 0))  # Mar 10, 23:00 in Tokyo
    await _ad(session, uid, "ad:today", datetime(2026, 3, 10, 16, 0))  # Mar 11, 01:00 in Tokyo

    res = await EarnService.rewarded_ad(
        session, settings=tokyo, user_id=uid, transaction_id="txn-day", now=datetime(2026, 3, 10, 20, 0)
    )

    assert res.credited is True
    assert res.ads_today == 2
