"""
Club service — club reference table and the "Open" sentinel resolver.

Functions receive an AsyncSession and never commit it: the caller (request
dependency or test) owns that transaction. The one exception is club
creation: `get_or_create_club` writes through a short transaction of its own
on the same engine, so a new club is committed and visible to concurrent
requests before the caller reads it.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.exceptions import ConflictError, NotFoundError, PersistenceError
from backend.models.models import OPEN_CLUB_NAME, Club

logger = logging.getLogger(__name__)

ClubRef = Union[int, str, None]

CREATE_ATTEMPTS = 3
RETRY_DELAY = 0.05   # seconds, multiplied by the attempt number


async def find_club_by_name(session: AsyncSession, name: str) -> Optional[Club]:
    result = await session.execute(select(Club).where(Club.name == name).limit(1))
    return result.scalar_one_or_none()


async def find_club_by_id(session: AsyncSession, club_id: int) -> Optional[Club]:
    return await session.get(Club, club_id)


async def list_clubs(session: AsyncSession) -> List[Club]:
    """Public club list — the "Open" sentinel is hidden."""
    result = await session.execute(
        select(Club).where(Club.name != OPEN_CLUB_NAME).order_by(Club.name)
    )
    return list(result.scalars().all())


async def insert_club(session: AsyncSession, name: str) -> Club:
    """
    Insert a club inside a SAVEPOINT.
    Raises ConflictError if the name is already taken; the outer transaction survives.
    """
    club = Club(name=name)
    try:
        async with session.begin_nested():
            session.add(club)
            await session.flush()
    except IntegrityError as e:
        raise ConflictError(f"Club {name!r} already exists") from e
    return club


async def get_or_create_club(
    session: AsyncSession,
    name: str,
    attempts: int = CREATE_ATTEMPTS,
) -> Club:
    """
    Return the club called `name`, creating it if needed.

    Lookup and insert run in a fresh transaction that commits at once, never
    in the caller's. A concurrent creator may win between the lookup and the
    insert: the unique constraint fires (IntegrityError), or on SQLite the
    write lock is refused (OperationalError). Both roll back and retry; the
    next attempt starts a new snapshot and finds the winner's row.
    """
    sessions = async_sessionmaker(session.bind, class_=AsyncSession, expire_on_commit=False)
    for attempt in range(1, attempts + 1):
        async with sessions() as own:
            try:
                club = await find_club_by_name(own, name)
                if club is None:
                    club = await insert_club(own, name)
                    await own.commit()
                    logger.info("Club created: id=%d name=%r", club.id, name)
                return club
            except (ConflictError, OperationalError) as e:
                await own.rollback()
                logger.info(
                    "Club %r created concurrently (attempt %d/%d): %s", name, attempt, attempts, e
                )
        if attempt < attempts:
            await asyncio.sleep(RETRY_DELAY * attempt)
    logger.error("Could not create or find club %r after %d attempts", name, attempts)
    raise PersistenceError("Failed to resolve club")


async def resolve_club(session: AsyncSession, club_ref: ClubRef) -> Optional[int]:
    """
    Map a submitted club reference to a club id.

    "Open"      → id of the Open club (created lazily)
    None / ""   → None
    anything else is an id and passes through unchanged
    """
    if club_ref == OPEN_CLUB_NAME:
        club = await get_or_create_club(session, OPEN_CLUB_NAME)
        return club.id
    if club_ref is None or club_ref == "":
        return None
    return int(club_ref)


async def get_club_name(session: AsyncSession, club_id: Optional[int]) -> Optional[str]:
    """Club name for an id. Raises NotFoundError for an id with no row."""
    if club_id is None:
        return None
    club = await find_club_by_id(session, club_id)
    if club is None:
        raise NotFoundError(f"Club id={club_id} does not exist")
    return club.name
