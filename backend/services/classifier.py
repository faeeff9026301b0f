"""
Derived-flag classifier: Etranger / Mosaique / Mixte.

Pure functions over primitive inputs (strings, dates, booleans) — no database,
no network. The registration workflow and the recalculation batch both call
`classify()`, so a row always gets the same flags from the same stored data.

Rules
-----
etranger  — "foreign" entry: no Tunisian national in it
mosaique  — eligible for the mixed bracket (see `mosaique()` for precedence)
mixte     — a pair whose two club affiliations count as different
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from backend.config import settings
from backend.models.models import OPEN_CLUB_NAME, Gender

TUNISIAN_ALIASES = frozenset({"tunisia", "tunisie", "tn", "tunisian"})

_OPEN = OPEN_CLUB_NAME.lower()


@dataclass(frozen=True)
class AthleteProfile:
    """The slice of an athlete the classifier looks at."""

    nationality: Optional[str] = None
    gender:      Optional[str] = None
    birth_date:  Optional[date] = None


@dataclass(frozen=True)
class DerivedFlags:
    etranger: bool
    mosaique: bool
    mixte:    bool


# ─────────────────────────── Primitives ──────────────────────────────────────

def is_tunisian(nationality: Optional[str]) -> bool:
    """Case- and whitespace-insensitive match against the Tunisian aliases."""
    if not nationality:
        return False
    return nationality.strip().lower() in TUNISIAN_ALIASES


def age_on_competition(
    birth_date: Optional[date],
    reference: Optional[date] = None,
) -> Optional[int]:
    """Whole years between birth_date and the competition date. None if unknown."""
    if birth_date is None:
        return None
    reference = reference or settings.COMPETITION_DATE
    age = reference.year - birth_date.year
    if (reference.month, reference.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().lower()


# ─────────────────────────── Flags ───────────────────────────────────────────

def etranger(
    athlete1_nationality: Optional[str],
    athlete2_nationality: Optional[str],
    is_pair: bool,
) -> bool:
    """Single: athlete is not Tunisian. Pair: neither athlete is Tunisian."""
    if not is_pair:
        return not is_tunisian(athlete1_nationality)
    return not is_tunisian(athlete1_nationality) and not is_tunisian(athlete2_nationality)


def mosaique(
    athlete1: AthleteProfile,
    athlete2: Optional[AthleteProfile],
    is_pair: bool,
    reference: Optional[date] = None,
    young_max_age: Optional[int] = None,
) -> bool:
    """
    Mixed-bracket eligibility. Singles always qualify; pairs are checked in
    order, first match wins:

      1. male + female (either order)          → True
      2. female + female                       → True
      3. a birth date is missing               → False
      4. exactly one athlete is young (≤ 20)   → True
      5. both young                            → True
      6. both adults: nationalities differ     → True, else False
    """
    if not is_pair:
        return True
    if athlete2 is None:
        return False

    genders = {athlete1.gender, athlete2.gender}
    if genders == {Gender.MALE, Gender.FEMALE}:
        return True
    if athlete1.gender == Gender.FEMALE and athlete2.gender == Gender.FEMALE:
        return True

    age1 = age_on_competition(athlete1.birth_date, reference)
    age2 = age_on_competition(athlete2.birth_date, reference)
    if age1 is None or age2 is None:
        return False

    limit = settings.YOUNG_MAX_AGE if young_max_age is None else young_max_age
    young1 = age1 <= limit
    young2 = age2 <= limit

    if young1 != young2:
        return True
    if young1 and young2:
        return True

    # Both adults: only a same-nationality pair falls through
    return (athlete1.nationality or "").lower() != (athlete2.nationality or "").lower()


def mixte(
    club1_name: Optional[str],
    club2_name: Optional[str],
    is_pair: bool,
) -> bool:
    """Pair from two different clubs. "Open" counts as different from any real club."""
    if not is_pair:
        return False

    club1 = _normalize(club1_name)
    club2 = _normalize(club2_name)
    open1 = club1 == _OPEN
    open2 = club2 == _OPEN

    if open1 and open2:
        return False
    if open1 != open2:
        return True
    return club1 != club2


def classify(
    athlete1: AthleteProfile,
    athlete2: Optional[AthleteProfile],
    is_pair: bool,
    club1_name: Optional[str],
    club2_name: Optional[str],
) -> DerivedFlags:
    """Compute all three flags for one entry."""
    partner = athlete2 if is_pair else None
    return DerivedFlags(
        etranger=etranger(
            athlete1.nationality,
            partner.nationality if partner else None,
            is_pair,
        ),
        mosaique=mosaique(athlete1, partner, is_pair),
        mixte=mixte(club1_name, club2_name if is_pair else None, is_pair),
    )
