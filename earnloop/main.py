# earnloop/main.py
import asyncio
import logging

from earnloop.config import Settings
from earnloop.database import Database

# register models on Base.metadata
from earnloop.database.models import *  # noqa: F401,F403

from earnloop.handlers.common import AppContext
from earnloop.scheduler import setup_scheduler


def setup_logging(is_dev: bool) -> None:
    """
    - app logs: INFO (or DEBUG in dev)
    - SQLAlchemy / driver / scheduler logs: WARNING+
    """
    app_level = logging.DEBUG if is_dev else logging.INFO

    logging.basicConfig(
        level=app_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    for name in (
        "sqlalchemy",
        "sqlalchemy.engine",
        "sqlalchemy.pool",
        "sqlalchemy.orm",
        "aiosqlite",
        "asyncpg",
        "apscheduler",
    ):
        logging.getLogger(name).setLevel(logging.WARNING)


async def build_context(settings: Settings) -> AppContext:
    db = Database(settings.database_url)
    await db.init_models()
    return AppContext(db=db, settings=settings)


async def main() -> None:
    settings = Settings.load()
    setup_logging(settings.is_dev)
    log = logging.getLogger("earnloop")

    ctx = await build_context(settings)
    log.info("DB initialized")

    scheduler = setup_scheduler(ctx)
    log.info("Scheduler started")

    try:
        # the routing layer mounts the handlers; this process keeps the draw schedule alive
        await asyncio.Event().wait()
    except (asyncio.CancelledError, KeyboardInterrupt):
        pass
    except Exception:
        log.exception("Engine crashed")
        raise
    finally:
        try:
            scheduler.shutdown(wait=False)
        except Exception:
            log.exception("Failed to shutdown scheduler")

        try:
            await ctx.db.close()
        except Exception:
            log.exception("Failed to close DB")


if __name__ == "__main__":
    asyncio.run(main())
