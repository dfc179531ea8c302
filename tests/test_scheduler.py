from __future__ import annotations

from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from earnloop.handlers import claim_free_entry
from earnloop.scheduler.jobs import build_scheduler, check_scheduled_draws
from earnloop.services.giveaway import GIVEAWAY_CONFIGS, is_draw_due

WEEKLY = GIVEAWAY_CONFIGS["weekly_bonus"]
MONTHLY = GIVEAWAY_CONFIGS["monthly_giveaway"]

# 2026-05-24 is a Sunday; 2026-05-31 is a Sunday and the last day of May
SUNDAY = datetime(2026, 5, 24, 23, 15)
MONTH_END = datetime(2026, 5, 31, 23, 15)


def test_weekly_window():
    assert is_draw_due(WEEKLY, SUNDAY, None)
    assert not is_draw_due(WEEKLY, SUNDAY.replace(hour=22), None)
    assert not is_draw_due(WEEKLY, SUNDAY - timedelta(days=1), None)


def test_weekly_gap():
    assert not is_draw_due(WEEKLY, SUNDAY, SUNDAY - timedelta(minutes=10))
    assert not is_draw_due(WEEKLY, SUNDAY, SUNDAY - timedelta(hours=144))
    assert is_draw_due(WEEKLY, SUNDAY, SUNDAY - timedelta(days=7))


def test_monthly_window_and_gap():
    assert not is_draw_due(MONTHLY, SUNDAY, None)
    assert is_draw_due(MONTHLY, MONTH_END, None)
    assert is_draw_due(MONTHLY, datetime(2026, 2, 28, 23, 0), None)
    assert not is_draw_due(MONTHLY, MONTH_END, MONTH_END - timedelta(days=20))
    assert is_draw_due(MONTHLY, MONTH_END, MONTH_END - timedelta(days=31))


async def test_scheduled_draw_runs_once_per_window(ctx, make_user):
    for email in ("s1@example.com", "s2@example.com"):
        uid = await make_user(email)
        await claim_free_entry(ctx, user_id=uid, giveaway_id="weekly_bonus")

    first = await check_scheduled_draws(ctx, now=SUNDAY)
    again = await check_scheduled_draws(ctx, now=SUNDAY + timedelta(minutes=30))

    assert [(o.giveaway_id, o.ok) for o in first] == [("weekly_bonus", True)]
    assert again == []


async def test_month_end_sunday_runs_both(ctx, fulfillment, make_user):
    uid = await make_user("both@example.com")
    await claim_free_entry(ctx, user_id=uid, giveaway_id="weekly_bonus")
    await claim_free_entry(ctx, user_id=uid, giveaway_id="monthly_giveaway")

    outcomes = await check_scheduled_draws(ctx, now=MONTH_END)

    assert sorted((o.giveaway_id, o.ok) for o in outcomes) == [
        ("monthly_giveaway", True),
        ("weekly_bonus", True),
    ]
    assert len(fulfillment.submitted) == 1


def test_build_scheduler_registers_job(ctx):
    scheduler = build_scheduler(ctx)

    assert isinstance(scheduler, AsyncIOScheduler)
    job = scheduler.get_job("check_scheduled_draws")
    assert job is not None
    assert job.max_instances == 1
