"""
Registration service — submission workflow, duplicate-contact checks and the
admin listing.

Submission order within one request is fixed by data dependencies:
decode photos → resolve clubs → resolve club names → classify → insert.
Nothing is written before the payload (photos included) has been validated.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from backend.config import settings
from backend.exceptions import NotFoundError, ValidationError
from backend.models.models import Club, PhotoMode, Registration
from backend.services.classifier import AthleteProfile, classify
from backend.services.club_service import get_club_name, resolve_club
from backend.validators import AthleteData, RegistrationData

logger = logging.getLogger(__name__)

_DATA_URI_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")
_PHONE_NOISE = re.compile(r"[\s\-()]")
DEFAULT_PHOTO_TYPE = "image/jpeg"


@dataclass
class Photo:
    data: bytes
    mime_type: Optional[str]


# ── Helpers ───────────────────────────────────────────────────────────────────

def normalize_phone(phone: str) -> str:
    """Strip spaces, hyphens and parentheses: "+216 97-475 (628)" → "+21697475628"."""
    return _PHONE_NOISE.sub("", phone)


def decode_photo(value: Optional[str], mime_type: Optional[str], field: str) -> Optional[Photo]:
    """Decode a base64 photo, with or without a data-URI prefix. None if absent."""
    if not value:
        return None
    raw = _DATA_URI_PREFIX.sub("", value.strip())
    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError.single(field, "Photo must be base64 encoded") from e
    if len(data) > settings.MAX_PHOTO_BYTES:
        raise ValidationError.single(field, "Photo is too large")
    return Photo(data=data, mime_type=mime_type or None)


def photo_data_uri(data: Optional[bytes], mime_type: Optional[str]) -> Optional[str]:
    if not data:
        return None
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type or DEFAULT_PHOTO_TYPE};base64,{encoded}"


def _profile(athlete: Optional[AthleteData]) -> Optional[AthleteProfile]:
    if athlete is None:
        return None
    return AthleteProfile(
        nationality=athlete.nationality,
        gender=athlete.gender,
        birth_date=athlete.birth_date,
    )


def _collect_photos(
    data: RegistrationData,
    photo_mode: str,
) -> Tuple[Optional[Photo], Optional[Photo], Optional[Photo]]:
    """(athlete1, athlete2, team) photos for the configured photo mode."""
    if photo_mode == PhotoMode.ATHLETE:
        photo1 = decode_photo(data.athlete1_photo, data.athlete1_photo_type, "athlete1Photo")
        photo2 = None
        if data.is_pair:
            photo2 = decode_photo(data.athlete2_photo, data.athlete2_photo_type, "athlete2Photo")
        return photo1, photo2, None
    if photo_mode == PhotoMode.TEAM:
        return None, None, decode_photo(data.team_photo, data.team_photo_type, "teamPhoto")
    return None, None, None


async def _resolve_club_name(
    session: AsyncSession,
    club_id: Optional[int],
) -> Tuple[Optional[int], Optional[str]]:
    """(club_id, club_name); an unknown id is tolerated and dropped to None."""
    try:
        return club_id, await get_club_name(session, club_id)
    except NotFoundError:
        logger.warning("Registration references unknown club id=%s, storing no club", club_id)
        return None, None


# ── Submission ────────────────────────────────────────────────────────────────

async def create_registration(
    session: AsyncSession,
    data: RegistrationData,
    photo_mode: Optional[str] = None,
    classifier_enabled: Optional[bool] = None,
) -> Registration:
    """
    Persist a validated registration and return the flushed row (id assigned).
    The caller commits.
    """
    photo_mode = photo_mode or settings.PHOTO_MODE
    if classifier_enabled is None:
        classifier_enabled = settings.CLASSIFIER_ENABLED

    photo1, photo2, team_photo = _collect_photos(data, photo_mode)

    athlete1 = data.athlete1
    athlete2 = data.athlete2 if data.is_pair else None

    # Both references first: creating "Open" commits on its own, before this
    # transaction has read anything
    club1_ref = await resolve_club(session, athlete1.club_id)
    club2_ref = await resolve_club(session, athlete2.club_id) if athlete2 is not None else None

    club1_id, club1_name = await _resolve_club_name(session, club1_ref)
    club2_id, club2_name = await _resolve_club_name(session, club2_ref)

    flags = None
    if classifier_enabled:
        flags = classify(
            _profile(athlete1), _profile(athlete2), data.is_pair, club1_name, club2_name
        )

    reg = Registration(
        is_pair=data.is_pair,
        athlete1_last_name=athlete1.last_name,
        athlete1_first_name=athlete1.first_name,
        athlete1_birth_date=athlete1.birth_date,
        athlete1_club_id=club1_id,
        athlete1_nationality=athlete1.nationality,
        athlete1_gender=athlete1.gender,
        athlete1_email=str(athlete1.email),
        athlete1_phone=athlete1.phone,
        athlete1_photo=photo1.data if photo1 else None,
        athlete1_photo_type=photo1.mime_type if photo1 else None,
        athlete2_last_name=athlete2.last_name if athlete2 else None,
        athlete2_first_name=athlete2.first_name if athlete2 else None,
        athlete2_birth_date=athlete2.birth_date if athlete2 else None,
        athlete2_club_id=club2_id,
        athlete2_nationality=athlete2.nationality if athlete2 else None,
        athlete2_gender=athlete2.gender if athlete2 else None,
        athlete2_email=str(athlete2.email) if athlete2 else None,
        athlete2_phone=athlete2.phone if athlete2 else None,
        athlete2_photo=photo2.data if photo2 else None,
        athlete2_photo_type=photo2.mime_type if photo2 else None,
        team_photo=team_photo.data if team_photo else None,
        team_photo_type=team_photo.mime_type if team_photo else None,
        locale=(data.locale or "").strip() or settings.DEFAULT_LOCALE,
        etranger=flags.etranger if flags else None,
        mosaique=flags.mosaique if flags else None,
        mixte=flags.mixte if flags else None,
    )
    session.add(reg)
    await session.flush()
    logger.info(
        "Registration #%d created (%s, pair=%s, flags=%s)",
        reg.id, reg.display_name, reg.is_pair, flags,
    )
    return reg


# ── Duplicate-contact checks ──────────────────────────────────────────────────

async def email_exists(session: AsyncSession, email: str) -> bool:
    """Case-insensitive match against either athlete's email."""
    needle = email.strip().lower()
    result = await session.execute(
        select(func.count(Registration.id)).where(
            or_(
                func.lower(Registration.athlete1_email) == needle,
                func.lower(Registration.athlete2_email) == needle,
            )
        )
    )
    return result.scalar_one() > 0


def _normalized_phone_column(column):
    expr = column
    for char in (" ", "-", "(", ")"):
        expr = func.replace(expr, char, "")
    return expr


async def phone_exists(session: AsyncSession, phone: str) -> bool:
    """Match ignoring spaces, hyphens and parentheses on both sides."""
    needle = normalize_phone(phone)
    result = await session.execute(
        select(func.count(Registration.id)).where(
            or_(
                _normalized_phone_column(Registration.athlete1_phone) == needle,
                _normalized_phone_column(Registration.athlete2_phone) == needle,
            )
        )
    )
    return result.scalar_one() > 0


# ── Admin listing ─────────────────────────────────────────────────────────────

async def list_registrations(
    session: AsyncSession,
) -> List[Tuple[Registration, Optional[str], Optional[str]]]:
    """All registrations, newest first, with both club names joined in."""
    club1 = aliased(Club)
    club2 = aliased(Club)
    result = await session.execute(
        select(Registration, club1.name, club2.name)
        .outerjoin(club1, Registration.athlete1_club_id == club1.id)
        .outerjoin(club2, Registration.athlete2_club_id == club2.id)
        .order_by(Registration.created_at.desc(), Registration.id.desc())
    )
    return [(reg, name1, name2) for reg, name1, name2 in result.all()]


def registration_to_dict(
    reg: Registration,
    club1_name: Optional[str],
    club2_name: Optional[str],
) -> dict:
    """Flat admin view of a row; photos become data URIs."""
    return {
        "id": reg.id,
        "created_at": reg.created_at.isoformat() if reg.created_at else None,
        "is_pair": reg.is_pair,
        "athlete1_last_name": reg.athlete1_last_name,
        "athlete1_first_name": reg.athlete1_first_name,
        "athlete1_birth_date": reg.athlete1_birth_date.isoformat(),
        "athlete1_club_id": reg.athlete1_club_id,
        "athlete1_club_name": club1_name,
        "athlete1_nationality": reg.athlete1_nationality,
        "athlete1_gender": reg.athlete1_gender,
        "athlete1_email": reg.athlete1_email,
        "athlete1_phone": reg.athlete1_phone,
        "athlete1_photo": photo_data_uri(reg.athlete1_photo, reg.athlete1_photo_type),
        "athlete1_photo_type": reg.athlete1_photo_type,
        "athlete2_last_name": reg.athlete2_last_name,
        "athlete2_first_name": reg.athlete2_first_name,
        "athlete2_birth_date": (
            reg.athlete2_birth_date.isoformat() if reg.athlete2_birth_date else None
        ),
        "athlete2_club_id": reg.athlete2_club_id,
        "athlete2_club_name": club2_name,
        "athlete2_nationality": reg.athlete2_nationality,
        "athlete2_gender": reg.athlete2_gender,
        "athlete2_email": reg.athlete2_email,
        "athlete2_phone": reg.athlete2_phone,
        "athlete2_photo": photo_data_uri(reg.athlete2_photo, reg.athlete2_photo_type),
        "athlete2_photo_type": reg.athlete2_photo_type,
        "team_photo": photo_data_uri(reg.team_photo, reg.team_photo_type),
        "team_photo_type": reg.team_photo_type,
        "locale": reg.locale,
        "etranger": reg.etranger,
        "mosaique": reg.mosaique,
        "mixte": reg.mixte,
    }
