# earnloop/database/repo/giveaway_repo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.database.models import (
    EntryType,
    Giveaway,
    GiveawayDraw,
    GiveawayEntry,
    GiveawayEntryArchive,
    User,
)
from earnloop.database.tx import upsert


@dataclass(frozen=True, slots=True)
class EntrantRow:
    user_id: int
    email: str
    free: int
    bonus: int
    paid: int

    @property
    def total(self) -> int:
        return self.free + self.bonus + self.paid


@dataclass(frozen=True, slots=True)
class EntryCounter:
    entry_type: EntryType
    entries_count: int
    updated_at: datetime


async def lock_giveaway(session: AsyncSession, giveaway_id: str) -> Giveaway:
    """
    Loads (creating if needed) the giveaway state row with FOR UPDATE.
    SQLite ignores FOR UPDATE; its BEGIN IMMEDIATE already serializes writers.
    """
    stmt = upsert(session, Giveaway).values(id=giveaway_id, last_draw_at=None)
    await session.execute(stmt.on_conflict_do_nothing(index_elements=["id"]))

    res = await session.execute(
        select(Giveaway)
        .where(Giveaway.id == giveaway_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return res.scalar_one()


async def get_last_draw_at(session: AsyncSession, giveaway_id: str) -> datetime | None:
    res = await session.execute(select(Giveaway.last_draw_at).where(Giveaway.id == giveaway_id))
    return res.scalar_one_or_none()


async def set_last_draw_at(session: AsyncSession, giveaway_id: str, when: datetime) -> None:
    await session.execute(
        update(Giveaway).where(Giveaway.id == giveaway_id).values(last_draw_at=when)
    )


async def get_user_counters(
    session: AsyncSession,
    *,
    user_id: int,
    giveaway_id: str,
) -> dict[EntryType, EntryCounter]:
    res = await session.execute(
        select(GiveawayEntry.entry_type, GiveawayEntry.entries_count, GiveawayEntry.updated_at).where(
            GiveawayEntry.user_id == user_id,
            GiveawayEntry.giveaway_id == giveaway_id,
        )
    )
    return {
        et: EntryCounter(entry_type=et, entries_count=int(n or 0), updated_at=ts)
        for et, n, ts in res.all()
    }


async def list_user_entries(session: AsyncSession, *, user_id: int) -> list[GiveawayEntry]:
    res = await session.execute(
        select(GiveawayEntry)
        .where(GiveawayEntry.user_id == user_id)
        .order_by(GiveawayEntry.giveaway_id.asc(), GiveawayEntry.entry_type.asc())
    )
    return list(res.scalars().all())


async def increment_entry(
    session: AsyncSession,
    *,
    user_id: int,
    giveaway_id: str,
    entry_type: EntryType,
    now: datetime,
    cap: int | None = None,
) -> bool:
    """
    Atomic upsert (+1). With `cap`, the increment only applies below the cap.
    Returns False when the cap blocked it.
    """
    stmt = upsert(session, GiveawayEntry).values(
        user_id=user_id,
        giveaway_id=giveaway_id,
        entry_type=entry_type,
        entries_count=1,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "giveaway_id", "entry_type"],
        set_={
            "entries_count": GiveawayEntry.entries_count + 1,
            "updated_at": now,
        },
        where=(GiveawayEntry.entries_count < cap) if cap is not None else None,
    ).returning(GiveawayEntry.id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none() is not None


async def get_entrants(session: AsyncSession, giveaway_id: str) -> list[EntrantRow]:
    """
    Aggregates entry counters per user; banned accounts are excluded.
    """
    q = (
        select(
            GiveawayEntry.user_id,
            User.email,
            GiveawayEntry.entry_type,
            GiveawayEntry.entries_count,
        )
        .join(User, User.id == GiveawayEntry.user_id)
        .where(
            GiveawayEntry.giveaway_id == giveaway_id,
            User.is_banned.is_(False),
        )
        .order_by(GiveawayEntry.user_id.asc())
    )
    res = await session.execute(q)

    acc: dict[int, dict] = {}
    for user_id, email, entry_type, count in res.all():
        row = acc.setdefault(user_id, {"email": email, "free": 0, "bonus": 0, "paid": 0})
        row[EntryType(entry_type).value] = int(count or 0)

    out: list[EntrantRow] = []
    for user_id, row in acc.items():
        entrant = EntrantRow(
            user_id=int(user_id),
            email=row["email"],
            free=row["free"],
            bonus=row["bonus"],
            paid=row["paid"],
        )
        if entrant.total > 0:
            out.append(entrant)
    return out


async def save_draw(session: AsyncSession, draw: GiveawayDraw) -> GiveawayDraw:
    session.add(draw)
    await session.flush()  # draw.id becomes available
    return draw


async def archive_and_clear(session: AsyncSession, *, giveaway_id: str, draw_id: int) -> int:
    """
    Copies live entries into the archive (tagged with draw_id), then deletes them.
    Returns number of archived rows.
    """
    src = select(
        GiveawayEntry.user_id,
        GiveawayEntry.giveaway_id,
        GiveawayEntry.entry_type,
        GiveawayEntry.entries_count,
        GiveawayEntry.created_at,
    ).where(GiveawayEntry.giveaway_id == giveaway_id)

    rows = (await session.execute(src)).all()
    if rows:
        await session.execute(
            insert(GiveawayEntryArchive),
            [
                {
                    "user_id": user_id,
                    "giveaway_id": gw_id,
                    "entry_type": entry_type,
                    "entries_count": count,
                    "draw_id": draw_id,
                    "created_at": created_at,
                }
                for user_id, gw_id, entry_type, count, created_at in rows
            ],
        )

    await session.execute(
        delete(GiveawayEntry)
        .where(GiveawayEntry.giveaway_id == giveaway_id)
        .execution_options(synchronize_session=False)
    )
    return len(rows)


async def get_draw_history(session: AsyncSession, *, limit: int = 20) -> list[tuple[GiveawayDraw, str | None]]:
    q = (
        select(GiveawayDraw, User.email)
        .join(User, User.id == GiveawayDraw.winner_user_id, isouter=True)
        .order_by(GiveawayDraw.created_at.desc(), GiveawayDraw.id.desc())
        .limit(limit)
    )
    res = await session.execute(q)
    return [(d, email) for d, email in res.all()]


async def count_draws(session: AsyncSession, giveaway_id: str) -> int:
    res = await session.execute(
        select(func.count(GiveawayDraw.id)).where(GiveawayDraw.giveaway_id == giveaway_id)
    )
    return int(res.scalar_one() or 0)
