"""
Admin view of all registrations and the derived-flag recalculation triggers.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.exceptions import PersistenceError
from backend.middlewares import get_session, require_admin
from backend.services import list_registrations, recalculate_flags, registration_to_dict

logger = logging.getLogger(__name__)
router = APIRouter(tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/registrations")
async def get_registrations(session: AsyncSession = Depends(get_session)) -> list:
    try:
        rows = await list_registrations(session)
    except SQLAlchemyError as e:
        logger.exception("Error fetching registrations")
        raise PersistenceError("Failed to fetch registrations") from e
    return [registration_to_dict(reg, club1, club2) for reg, club1, club2 in rows]


async def _recalculate(session: AsyncSession, full: bool) -> dict:
    try:
        report = await recalculate_flags(session, full=full)
        await session.commit()
    except SQLAlchemyError as e:
        logger.exception("Error recalculating fields (full=%s)", full)
        raise PersistenceError(
            "Failed to recalculate all fields" if full else "Failed to recalculate fields"
        ) from e
    prefix = "Force recalculated" if full else "Recalculated"
    return {
        "success": True,
        "message": f"{prefix} fields for {report.updated} registrations",
        "updatedCount": report.updated,
        "failedCount": report.failed,
    }


@router.post("/recalculate-fields")
async def recalculate_missing(session: AsyncSession = Depends(get_session)) -> dict:
    """Only rows whose flags are still NULL."""
    return await _recalculate(session, full=False)


@router.post("/recalculate-all-fields")
async def recalculate_all(session: AsyncSession = Depends(get_session)) -> dict:
    return await _recalculate(session, full=True)
