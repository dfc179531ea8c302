# earnloop/scheduler/jobs.py
from __future__ import annotations

import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from earnloop.database.repo import giveaway_repo
from earnloop.errors import EconomyError
from earnloop.handlers.common import AppContext, session_scope
from earnloop.services.fulfillment import hand_off
from earnloop.services.giveaway import GIVEAWAY_CONFIGS, DrawOutcome, is_draw_due
from earnloop.utils.dates import utc_now

log = logging.getLogger(__name__)


async def check_scheduled_draws(ctx: AppContext, *, now: datetime | None = None) -> list[DrawOutcome]:
    """
    Runs every overdue draw. Safe to fire more than once per window:
    run_draw re-checks the gap since the last draw under the giveaway lock.
    """
    now = now or utc_now()
    outcomes: list[DrawOutcome] = []

    for config in GIVEAWAY_CONFIGS.values():
        # read-only peek; the session closes (and rolls back) before the draw takes its lock
        async with ctx.db.session() as session:
            last = await giveaway_repo.get_last_draw_at(session, config.id)

        if not is_draw_due(config, now, last):
            continue

        try:
            async with session_scope(ctx.db) as session:
                outcome = await ctx.giveaways.run_draw(
                    session,
                    giveaway_id=config.id,
                    now=now,
                    min_gap=config.min_gap,
                    rng=ctx.rng,
                )
        except EconomyError:
            log.exception("Scheduled draw failed giveaway=%s", config.id)
            continue

        await hand_off(ctx.fulfillment, outcome.fulfillment)

        if outcome.ok:
            log.info("Scheduled draw giveaway=%s draw=%s winner=%s", config.id, outcome.draw_id, outcome.winner_user_id)
        else:
            log.info("Scheduled draw giveaway=%s not run: %s", config.id, outcome.error)
        outcomes.append(outcome)

    return outcomes


def build_scheduler(ctx: AppContext) -> AsyncIOScheduler:
    """
    Creates and returns an AsyncIOScheduler with our jobs registered.
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        check_scheduled_draws,
        trigger=IntervalTrigger(minutes=max(1, ctx.settings.draw_check_minutes), timezone="UTC"),
        kwargs={"ctx": ctx},
        id="check_scheduled_draws",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=300,
    )

    return scheduler
