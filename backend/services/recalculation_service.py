"""
Recalculation of derived flags (etranger / mosaique / mixte).

Two modes:
  selective — only rows with at least one NULL flag (legacy rows)
  full      — every row, e.g. after a rule or club-name change

Each row is recomputed from its stored nationality / gender / birth date and
joined club names, then updated inside its own SAVEPOINT. A failing row is
rolled back, logged and skipped; the rest of the batch carries on. Running
the workflow twice over unchanged data writes the same flags both times.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from backend.models.models import Club, Registration
from backend.services.classifier import AthleteProfile, DerivedFlags, classify

logger = logging.getLogger(__name__)


@dataclass
class RecalculationReport:
    selected: int = 0
    updated: int = 0
    failed_ids: List[int] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_ids)


async def _select_rows(session: AsyncSession, full: bool):
    club1 = aliased(Club)
    club2 = aliased(Club)
    q = (
        select(
            Registration.id,
            Registration.is_pair,
            Registration.athlete1_nationality,
            Registration.athlete1_gender,
            Registration.athlete1_birth_date,
            Registration.athlete2_nationality,
            Registration.athlete2_gender,
            Registration.athlete2_birth_date,
            club1.name.label("club1_name"),
            club2.name.label("club2_name"),
        )
        .outerjoin(club1, Registration.athlete1_club_id == club1.id)
        .outerjoin(club2, Registration.athlete2_club_id == club2.id)
        .order_by(Registration.id)
    )
    if not full:
        q = q.where(
            or_(
                Registration.etranger.is_(None),
                Registration.mosaique.is_(None),
                Registration.mixte.is_(None),
            )
        )
    result = await session.execute(q)
    return result.all()


def flags_for_row(row) -> DerivedFlags:
    """Rebuild minimal athlete views from a selected row and classify them."""
    is_pair = bool(row.is_pair)
    athlete1 = AthleteProfile(
        nationality=row.athlete1_nationality,
        gender=row.athlete1_gender,
        birth_date=row.athlete1_birth_date,
    )
    athlete2 = None
    if is_pair:
        athlete2 = AthleteProfile(
            nationality=row.athlete2_nationality,
            gender=row.athlete2_gender,
            birth_date=row.athlete2_birth_date,
        )
    return classify(athlete1, athlete2, is_pair, row.club1_name, row.club2_name)


async def update_flags(session: AsyncSession, registration_id: int, flags: DerivedFlags) -> None:
    await session.execute(
        update(Registration)
        .where(Registration.id == registration_id)
        .values(etranger=flags.etranger, mosaique=flags.mosaique, mixte=flags.mixte)
    )


async def recalculate_flags(session: AsyncSession, full: bool = False) -> RecalculationReport:
    """Recompute flags for the selected rows. The caller commits."""
    rows = await _select_rows(session, full)
    report = RecalculationReport(selected=len(rows))

    for row in rows:
        try:
            flags = flags_for_row(row)
            async with session.begin_nested():
                await update_flags(session, row.id, flags)
        except (SQLAlchemyError, ValueError, TypeError):
            logger.exception("Recalculation failed for registration #%d, skipping", row.id)
            report.failed_ids.append(row.id)
            continue
        report.updated += 1

    logger.info(
        "Recalculated flags (%s): %d selected, %d updated, %d failed",
        "full" if full else "selective", report.selected, report.updated, report.failed,
    )
    return report
