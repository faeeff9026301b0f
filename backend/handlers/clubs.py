"""
Club reference endpoints: public list and self-service add.
"""
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.exceptions import PersistenceError
from backend.middlewares import get_session
from backend.services import get_or_create_club, list_clubs
from backend.validators import validate_club

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/clubs", tags=["clubs"])


@router.get("")
async def get_clubs(session: AsyncSession = Depends(get_session)) -> list:
    try:
        clubs = await list_clubs(session)
    except SQLAlchemyError as e:
        logger.exception("Error fetching clubs")
        raise PersistenceError("Failed to fetch clubs") from e
    return [{"id": c.id, "name": c.name} for c in clubs]


@router.post("", status_code=201)
async def add_club(
    payload: Any = Body(default=None),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """Create a club; an existing club with the same name is returned as is."""
    data = validate_club(payload)
    try:
        club = await get_or_create_club(session, data.name)
        await session.commit()
    except SQLAlchemyError as e:
        logger.exception("Error adding club")
        raise PersistenceError("Failed to add club") from e
    return {"id": club.id, "name": club.name}
