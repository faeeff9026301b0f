"""
ORM models for the CPSS competition registration backend.

Domain overview
---------------
Club          — affiliation reference table; "Open" is the hidden sentinel
Registration  — one entrant slot: a single athlete or a pair
                (athlete1 + athlete2), with derived ranking flags
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base

# ─────────────────────────── Constants ────────────────────────────────────────

OPEN_CLUB_NAME = "Open"   # sentinel club: "no formal affiliation"


class Gender:
    MALE   = "male"
    FEMALE = "female"


class Locale:
    FR = "fr"
    EN = "en"   # anything other than "fr" gets the English copy


class PhotoMode:
    ATHLETE = "athlete"   # one photo per athlete
    TEAM    = "team"      # one photo for the whole entry
    NONE    = "none"


# Photos can be several MB; LONGBLOB on MySQL
_PHOTO = LargeBinary(length=16 * 1024 * 1024)


# ─────────────────────────── Models ───────────────────────────────────────────

class Club(Base):
    """Fishing club an athlete is affiliated with."""
    __tablename__ = "clubs"

    id:   Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)


class Registration(Base):
    """
    A competition entry. athlete2_* columns are NULL unless is_pair is set.

    etranger / mosaique / mixte are derived at creation; rows created before
    the classifier existed hold NULL until the recalculation workflow runs.
    """
    __tablename__ = "registrations"
    __mapper_args__ = {"eager_defaults": True}   # created_at is generated by the DB

    id:         Mapped[int]      = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), index=True)
    is_pair:    Mapped[bool]     = mapped_column(Boolean, default=False)

    # ── Athlete 1 ─────────────────────────────────────────────────────────────
    athlete1_last_name:   Mapped[str]             = mapped_column(String(255))
    athlete1_first_name:  Mapped[str]             = mapped_column(String(255))
    athlete1_birth_date:  Mapped[date]            = mapped_column(Date)
    athlete1_club_id:     Mapped[Optional[int]]   = mapped_column(ForeignKey("clubs.id"), nullable=True)
    athlete1_nationality: Mapped[str]             = mapped_column(String(100))
    athlete1_gender:      Mapped[str]             = mapped_column(String(10))     # Gender.*
    athlete1_email:       Mapped[str]             = mapped_column(String(255), index=True)
    athlete1_phone:       Mapped[str]             = mapped_column(String(50))
    athlete1_photo:       Mapped[Optional[bytes]] = mapped_column(_PHOTO, nullable=True)
    athlete1_photo_type:  Mapped[Optional[str]]   = mapped_column(String(50), nullable=True)

    # ── Athlete 2 (pairs only) ────────────────────────────────────────────────
    athlete2_last_name:   Mapped[Optional[str]]   = mapped_column(String(255), nullable=True)
    athlete2_first_name:  Mapped[Optional[str]]   = mapped_column(String(255), nullable=True)
    athlete2_birth_date:  Mapped[Optional[date]]  = mapped_column(Date, nullable=True)
    athlete2_club_id:     Mapped[Optional[int]]   = mapped_column(ForeignKey("clubs.id"), nullable=True)
    athlete2_nationality: Mapped[Optional[str]]   = mapped_column(String(100), nullable=True)
    athlete2_gender:      Mapped[Optional[str]]   = mapped_column(String(10), nullable=True)
    athlete2_email:       Mapped[Optional[str]]   = mapped_column(String(255), nullable=True, index=True)
    athlete2_phone:       Mapped[Optional[str]]   = mapped_column(String(50), nullable=True)
    athlete2_photo:       Mapped[Optional[bytes]] = mapped_column(_PHOTO, nullable=True)
    athlete2_photo_type:  Mapped[Optional[str]]   = mapped_column(String(50), nullable=True)

    # ── Team photo (PhotoMode.TEAM) ───────────────────────────────────────────
    team_photo:      Mapped[Optional[bytes]] = mapped_column(_PHOTO, nullable=True)
    team_photo_type: Mapped[Optional[str]]   = mapped_column(String(50), nullable=True)

    locale: Mapped[str] = mapped_column(String(10), default=Locale.FR)

    # ── Derived flags ─────────────────────────────────────────────────────────
    etranger: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    mosaique: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    mixte:    Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    @property
    def display_name(self) -> str:
        name = f"{self.athlete1_first_name} {self.athlete1_last_name}"
        if self.is_pair:
            name += f" & {self.athlete2_first_name} {self.athlete2_last_name}"
        return name
