# earnloop/scheduler/__init__.py
from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from earnloop.handlers.common import AppContext
from earnloop.scheduler.jobs import build_scheduler


def setup_scheduler(ctx: AppContext) -> AsyncIOScheduler:
    scheduler = build_scheduler(ctx)
    scheduler.start()
    return scheduler
