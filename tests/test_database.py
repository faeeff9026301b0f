"""
Integration tests — Database layer (SQLite in-memory via aiosqlite).

Tests:
  - Club service: public listing, get-or-create, "Open" sentinel resolution,
    recovery from a concurrent insert of the same name
  - Registration workflow: single / pair rows, derived flags, unknown club ids,
    photo modes, nothing written on invalid photos
  - Duplicate-contact checks (email case-insensitive, phone normalised)
  - Admin listing and the flag recalculation batch

Each test gets a completely fresh database (function-scoped async_session).
The concurrent "Open" tests use a SQLite file instead, so that independent
sessions really hold separate connections and locks.
"""
from __future__ import annotations

import asyncio
import base64
from datetime import date

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from backend.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from backend.models.base import Base, enable_sqlite_savepoints
from backend.models.models import OPEN_CLUB_NAME, Club, PhotoMode, Registration
from backend.services import club_service, recalculation_service
from backend.services.club_service import (
    get_club_name,
    get_or_create_club,
    insert_club,
    list_clubs,
    resolve_club,
)
from backend.services.recalculation_service import recalculate_flags
from backend.services.registration_service import (
    create_registration,
    decode_photo,
    email_exists,
    list_registrations,
    normalize_phone,
    phone_exists,
    registration_to_dict,
)
from backend.validators import validate_registration
from tests.conftest import athlete_payload, registration_payload

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"
PNG_B64 = base64.b64encode(PNG_BYTES).decode()


# ── Helpers ───────────────────────────────────────────────────────────────────

async def _register(session: AsyncSession, payload: dict, **kwargs) -> Registration:
    reg = await create_registration(session, validate_registration(payload), **kwargs)
    await session.commit()
    return reg


async def _count(session: AsyncSession, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def _flags(session: AsyncSession, registration_id: int) -> tuple:
    result = await session.execute(
        select(Registration.etranger, Registration.mosaique, Registration.mixte)
        .where(Registration.id == registration_id)
    )
    return tuple(result.one())


# ── File database for cross-session tests ─────────────────────────────────────

@pytest.fixture
async def file_sessions(tmp_path):
    """Session factory over a SQLite file; each session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'clubs.db'}", poolclass=NullPool)
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


# ─────────────────────────── Clubs ────────────────────────────────────────────

class TestClubs:
    async def test_list_clubs_hides_open_and_sorts(self, async_session: AsyncSession) -> None:
        for name in ("Sfax Pêche", OPEN_CLUB_NAME, "Bizerte Club"):
            await insert_club(async_session, name)
        await async_session.commit()

        names = [c.name for c in await list_clubs(async_session)]
        assert names == ["Bizerte Club", "Sfax Pêche"]

    async def test_get_or_create_returns_existing(self, async_session: AsyncSession) -> None:
        first = await get_or_create_club(async_session, "Club Nabeul")
        second = await get_or_create_club(async_session, "Club Nabeul")
        assert first.id == second.id
        assert await _count(async_session, Club) == 1

    async def test_insert_duplicate_raises_conflict_and_keeps_transaction(
        self, async_session: AsyncSession
    ) -> None:
        await insert_club(async_session, "Club Nabeul")
        with pytest.raises(ConflictError):
            await insert_club(async_session, "Club Nabeul")
        # Outer transaction is still usable after the SAVEPOINT rollback
        other = await insert_club(async_session, "Club Mahdia")
        await async_session.commit()
        assert other.id is not None
        assert await _count(async_session, Club) == 2

    async def test_resolve_open_twice_creates_one_row(self, async_session: AsyncSession) -> None:
        id1 = await resolve_club(async_session, OPEN_CLUB_NAME)
        id2 = await resolve_club(async_session, OPEN_CLUB_NAME)
        assert id1 == id2
        result = await async_session.execute(
            select(func.count()).select_from(Club).where(Club.name == OPEN_CLUB_NAME)
        )
        assert result.scalar_one() == 1

    @pytest.mark.parametrize("ref,expected", [(None, None), ("", None), (7, 7)])
    async def test_resolve_passthrough(self, async_session: AsyncSession, ref, expected) -> None:
        assert await resolve_club(async_session, ref) == expected
        assert await _count(async_session, Club) == 0

    async def test_open_created_concurrently_is_reused(
        self, async_session: AsyncSession, monkeypatch
    ) -> None:
        """Another request inserted "Open" between our lookup and our insert."""
        existing = await insert_club(async_session, OPEN_CLUB_NAME)
        await async_session.commit()

        real_find = club_service.find_club_by_name
        calls = []

        async def stale_find(session, name):
            calls.append(name)
            if len(calls) == 1:
                return None
            return await real_find(session, name)

        monkeypatch.setattr(club_service, "find_club_by_name", stale_find)

        club_id = await resolve_club(async_session, OPEN_CLUB_NAME)
        await async_session.commit()

        assert club_id == existing.id
        assert len(calls) == 2
        assert await _count(async_session, Club) == 1

    async def test_giving_up_raises_persistence_error(
        self, async_session: AsyncSession, monkeypatch
    ) -> None:
        async def missing(session, name):
            return None

        async def always_taken(session, name):
            raise ConflictError(f"Club {name!r} already exists")

        monkeypatch.setattr(club_service, "find_club_by_name", missing)
        monkeypatch.setattr(club_service, "insert_club", always_taken)
        monkeypatch.setattr(club_service, "RETRY_DELAY", 0)

        with pytest.raises(PersistenceError):
            await resolve_club(async_session, OPEN_CLUB_NAME)

    async def test_get_club_name(self, async_session: AsyncSession) -> None:
        club = await insert_club(async_session, "Club Monastir")
        assert await get_club_name(async_session, club.id) == "Club Monastir"
        assert await get_club_name(async_session, None) is None
        with pytest.raises(NotFoundError):
            await get_club_name(async_session, 999)


# ─────────────────────────── Concurrent "Open" creation ──────────────────────

class TestConcurrentOpenClub:
    """Independent requests resolving "Open" at the same time on an empty table."""

    @staticmethod
    async def _resolve_in_request(sessions) -> int:
        async with sessions() as session:
            club_id = await resolve_club(session, OPEN_CLUB_NAME)
            await session.commit()
            return club_id

    async def _open_rows(self, sessions) -> int:
        async with sessions() as session:
            result = await session.execute(
                select(func.count()).select_from(Club).where(Club.name == OPEN_CLUB_NAME)
            )
            return result.scalar_one()

    async def test_two_requests_share_one_row(self, file_sessions) -> None:
        results = await asyncio.gather(
            self._resolve_in_request(file_sessions),
            self._resolve_in_request(file_sessions),
        )
        assert results[0] == results[1]
        assert await self._open_rows(file_sessions) == 1

    async def test_many_requests_share_one_row(self, file_sessions) -> None:
        results = await asyncio.gather(
            *(self._resolve_in_request(file_sessions) for _ in range(4))
        )
        assert len(set(results)) == 1
        assert await self._open_rows(file_sessions) == 1

    async def test_registrations_after_race_use_the_same_club(self, file_sessions) -> None:
        await asyncio.gather(
            self._resolve_in_request(file_sessions),
            self._resolve_in_request(file_sessions),
        )
        ids = []
        for email in ("a@example.com", "b@example.com"):
            async with file_sessions() as session:
                payload = registration_payload(athlete1=athlete_payload(email=email, clubId="Open"))
                ids.append((await _register(session, payload)).athlete1_club_id)
        assert ids[0] is not None
        assert ids[0] == ids[1]


# ─────────────────────────── Registration workflow ────────────────────────────

class TestCreateRegistration:
    async def test_single_tunisian(self, async_session: AsyncSession) -> None:
        reg = await _register(async_session, registration_payload())

        assert reg.id is not None
        assert reg.created_at is not None
        assert reg.is_pair is False
        assert reg.athlete1_birth_date == date(1990, 6, 15)
        assert reg.athlete2_last_name is None
        assert reg.athlete2_email is None
        assert reg.locale == "fr"
        assert (reg.etranger, reg.mosaique, reg.mixte) == (False, True, False)

    async def test_single_foreigner(self, async_session: AsyncSession) -> None:
        payload = registration_payload(athlete1=athlete_payload(nationality="France"))
        reg = await _register(async_session, payload)
        assert (reg.etranger, reg.mosaique, reg.mixte) == (True, True, False)

    async def test_pair_with_open_and_real_club(self, async_session: AsyncSession) -> None:
        club = await insert_club(async_session, "Club Kelibia")
        await async_session.commit()

        payload = registration_payload(
            is_pair=True,
            athlete1=athlete_payload(clubId=club.id),
        )
        payload["athlete2"]["clubId"] = "Open"
        reg = await _register(async_session, payload)

        open_id = await resolve_club(async_session, OPEN_CLUB_NAME)
        assert reg.athlete1_club_id == club.id
        assert reg.athlete2_club_id == open_id
        assert reg.athlete2_first_name == "Giulia"
        # Tunisian + Italian, male + female, real club + Open
        assert (reg.etranger, reg.mosaique, reg.mixte) == (False, True, True)

    async def test_pair_same_club_two_adult_men_same_nationality(
        self, async_session: AsyncSession
    ) -> None:
        club = await insert_club(async_session, "Club Kelibia")
        payload = registration_payload(
            is_pair=True,
            athlete1=athlete_payload(clubId=club.id),
            athlete2=athlete_payload(
                firstName="Sami", email="sami@example.com", phone="+216 22 000 111",
                clubId=str(club.id), nationality=" tunisia ",
            ),
        )
        reg = await _register(async_session, payload)
        assert (reg.etranger, reg.mosaique, reg.mixte) == (False, False, False)

    async def test_both_open_is_not_mixte(self, async_session: AsyncSession) -> None:
        payload = registration_payload(
            is_pair=True,
            athlete1=athlete_payload(clubId="Open"),
            athlete2=athlete_payload(
                firstName="Sami", email="sami@example.com", clubId="Open", gender="male",
            ),
        )
        reg = await _register(async_session, payload)
        assert reg.athlete1_club_id == reg.athlete2_club_id
        assert reg.mixte is False

    async def test_unknown_club_id_is_stored_as_null(self, async_session: AsyncSession) -> None:
        payload = registration_payload(athlete1=athlete_payload(clubId=4242))
        reg = await _register(async_session, payload)
        assert reg.athlete1_club_id is None

    async def test_classifier_disabled_leaves_flags_null(self, async_session: AsyncSession) -> None:
        reg = await _register(async_session, registration_payload(), classifier_enabled=False)
        assert (reg.etranger, reg.mosaique, reg.mixte) == (None, None, None)

    async def test_missing_locale_defaults_to_french(self, async_session: AsyncSession) -> None:
        payload = registration_payload()
        del payload["locale"]
        reg = await _register(async_session, payload)
        assert reg.locale == "fr"

    async def test_athlete_photos(self, async_session: AsyncSession) -> None:
        payload = registration_payload(
            is_pair=True,
            athlete1Photo=f"data:image/png;base64,{PNG_B64}",
            athlete1PhotoType="image/png",
            athlete2Photo=PNG_B64,
            teamPhoto=PNG_B64,
        )
        reg = await _register(async_session, payload, photo_mode=PhotoMode.ATHLETE)
        assert reg.athlete1_photo == PNG_BYTES
        assert reg.athlete1_photo_type == "image/png"
        assert reg.athlete2_photo == PNG_BYTES
        assert reg.athlete2_photo_type is None
        assert reg.team_photo is None

    async def test_team_photo(self, async_session: AsyncSession) -> None:
        payload = registration_payload(
            is_pair=True,
            athlete1Photo=PNG_B64,
            teamPhoto=PNG_B64,
            teamPhotoType="image/png",
        )
        reg = await _register(async_session, payload, photo_mode=PhotoMode.TEAM)
        assert reg.team_photo == PNG_BYTES
        assert reg.team_photo_type == "image/png"
        assert reg.athlete1_photo is None

    async def test_photo_mode_none_ignores_photos(self, async_session: AsyncSession) -> None:
        payload = registration_payload(athlete1Photo="###", teamPhoto="###")
        reg = await _register(async_session, payload, photo_mode=PhotoMode.NONE)
        assert reg.athlete1_photo is None
        assert reg.team_photo is None

    async def test_invalid_photo_writes_nothing(self, async_session: AsyncSession) -> None:
        payload = registration_payload(
            athlete1=athlete_payload(clubId="Open"),
            athlete1Photo="not base64!!",
        )
        with pytest.raises(ValidationError) as exc_info:
            await create_registration(
                async_session, validate_registration(payload), photo_mode=PhotoMode.ATHLETE
            )
        assert exc_info.value.errors[0].field == "athlete1Photo"
        await async_session.rollback()
        assert await _count(async_session, Registration) == 0
        assert await _count(async_session, Club) == 0


class TestPhotoDecoding:
    def test_absent(self) -> None:
        assert decode_photo(None, None, "teamPhoto") is None
        assert decode_photo("", "image/png", "teamPhoto") is None

    def test_data_uri_prefix_stripped(self) -> None:
        photo = decode_photo(f"data:image/jpeg;base64,{PNG_B64}", "", "teamPhoto")
        assert photo.data == PNG_BYTES
        assert photo.mime_type is None

    def test_too_large(self, monkeypatch) -> None:
        from backend.config import settings
        monkeypatch.setattr(settings, "MAX_PHOTO_BYTES", 4)
        with pytest.raises(ValidationError) as exc_info:
            decode_photo(PNG_B64, None, "athlete2Photo")
        assert exc_info.value.errors[0].field == "athlete2Photo"


# ─────────────────────────── Duplicate checks ─────────────────────────────────

class TestDuplicateChecks:
    async def test_email_case_insensitive(self, async_session: AsyncSession) -> None:
        await _register(async_session, registration_payload(
            athlete1=athlete_payload(email="Karim.BenSalah@Example.com"),
        ))
        assert await email_exists(async_session, "karim.bensalah@example.com")
        assert await email_exists(async_session, "  KARIM.BENSALAH@EXAMPLE.COM ")
        assert not await email_exists(async_session, "someone@example.com")

    async def test_email_matches_athlete2(self, async_session: AsyncSession) -> None:
        await _register(async_session, registration_payload(is_pair=True))
        assert await email_exists(async_session, "GIULIA@example.com")

    async def test_phone_formatting_ignored(self, async_session: AsyncSession) -> None:
        await _register(async_session, registration_payload(
            athlete1=athlete_payload(phone="+216 97-475 (628)"),
        ))
        assert await phone_exists(async_session, "+21697475628")
        assert await phone_exists(async_session, "+216 (97) 475-628")
        assert not await phone_exists(async_session, "+21697475629")

    async def test_phone_matches_athlete2(self, async_session: AsyncSession) -> None:
        await _register(async_session, registration_payload(is_pair=True))
        assert await phone_exists(async_session, "+393331234567")

    async def test_empty_database(self, async_session: AsyncSession) -> None:
        assert not await email_exists(async_session, "karim@example.com")
        assert not await phone_exists(async_session, "+216 97 475 628")

    def test_normalize_phone(self) -> None:
        assert normalize_phone("+216 97-475 (628)") == "+21697475628"


# ─────────────────────────── Admin listing ────────────────────────────────────

class TestListRegistrations:
    async def test_newest_first_with_club_names(self, async_session: AsyncSession) -> None:
        club = await insert_club(async_session, "Club Tabarka")
        first = await _register(async_session, registration_payload(
            athlete1=athlete_payload(clubId=club.id),
        ))
        second = await _register(async_session, registration_payload(
            is_pair=True,
            athlete2=athlete_payload(
                firstName="Sami", email="sami@example.com", clubId="Open",
            ),
        ))

        rows = await list_registrations(async_session)
        assert [reg.id for reg, _, _ in rows] == [second.id, first.id]
        assert rows[0][1:] == (None, OPEN_CLUB_NAME)
        assert rows[1][1:] == ("Club Tabarka", None)

    async def test_registration_to_dict(self, async_session: AsyncSession) -> None:
        reg = await _register(
            async_session,
            registration_payload(athlete1Photo=PNG_B64),
            photo_mode=PhotoMode.ATHLETE,
        )
        [(row, name1, name2)] = await list_registrations(async_session)
        data = registration_to_dict(row, name1, name2)

        assert data["id"] == reg.id
        assert data["athlete1_birth_date"] == "1990-06-15"
        assert data["athlete1_photo"] == f"data:image/jpeg;base64,{PNG_B64}"
        assert data["athlete2_photo"] is None
        assert data["athlete2_birth_date"] is None
        assert data["team_photo"] is None
        assert data["created_at"] is not None
        assert (data["etranger"], data["mosaique"], data["mixte"]) == (False, True, False)


# ─────────────────────────── Recalculation ───────────────────────────────────

class TestRecalculation:
    async def test_selective_only_touches_null_rows(self, async_session: AsyncSession) -> None:
        legacy = await _register(async_session, registration_payload(
            athlete1=athlete_payload(nationality="Algeria"),
        ), classifier_enabled=False)
        current = await _register(async_session, registration_payload(
            athlete1=athlete_payload(email="other@example.com"),
        ))
        # Tamper with a fully-classified row; selective mode must leave it alone
        await async_session.execute(
            update(Registration).where(Registration.id == current.id).values(etranger=True)
        )
        await async_session.commit()

        report = await recalculate_flags(async_session)
        await async_session.commit()

        assert (report.selected, report.updated, report.failed) == (1, 1, 0)
        assert await _flags(async_session, legacy.id) == (True, True, False)
        assert await _flags(async_session, current.id) == (True, True, False)

    async def test_partially_null_row_is_selected(self, async_session: AsyncSession) -> None:
        reg = await _register(async_session, registration_payload())
        await async_session.execute(
            update(Registration).where(Registration.id == reg.id).values(mixte=None)
        )
        await async_session.commit()

        report = await recalculate_flags(async_session)
        await async_session.commit()
        assert report.updated == 1
        assert await _flags(async_session, reg.id) == (False, True, False)

    async def test_full_recomputes_after_club_rename(self, async_session: AsyncSession) -> None:
        club_a = await insert_club(async_session, "Club A")
        club_b = await insert_club(async_session, "Club B")
        reg = await _register(async_session, registration_payload(
            is_pair=True,
            athlete1=athlete_payload(clubId=club_a.id),
            athlete2=athlete_payload(
                firstName="Sami", email="sami@example.com", clubId=club_b.id,
            ),
        ))
        assert reg.mixte is True

        await async_session.execute(
            update(Club).where(Club.id == club_b.id).values(name="club a ")
        )
        await async_session.commit()

        selective = await recalculate_flags(async_session)
        assert selective.selected == 0

        report = await recalculate_flags(async_session, full=True)
        await async_session.commit()
        assert (report.selected, report.updated) == (1, 1)
        assert (await _flags(async_session, reg.id))[2] is False

    async def test_idempotent(self, async_session: AsyncSession) -> None:
        ids = []
        for i, nationality in enumerate(("Tunisia", "Morocco", "tn")):
            reg = await _register(async_session, registration_payload(
                athlete1=athlete_payload(email=f"a{i}@example.com", nationality=nationality),
            ), classifier_enabled=False)
            ids.append(reg.id)

        await recalculate_flags(async_session, full=True)
        await async_session.commit()
        first = [await _flags(async_session, i) for i in ids]

        await recalculate_flags(async_session, full=True)
        await async_session.commit()
        second = [await _flags(async_session, i) for i in ids]

        assert first == second
        assert [f[0] for f in first] == [False, True, False]

    async def test_failed_row_is_skipped(self, async_session: AsyncSession, monkeypatch) -> None:
        ids = []
        for i in range(3):
            reg = await _register(async_session, registration_payload(
                athlete1=athlete_payload(email=f"a{i}@example.com"),
            ), classifier_enabled=False)
            ids.append(reg.id)

        real_update = recalculation_service.update_flags
        broken_id = ids[1]

        async def flaky_update(session, registration_id, flags):
            if registration_id == broken_id:
                raise OperationalError("UPDATE registrations", {}, Exception("disk I/O error"))
            await real_update(session, registration_id, flags)

        monkeypatch.setattr(recalculation_service, "update_flags", flaky_update)

        report = await recalculate_flags(async_session)
        await async_session.commit()

        assert report.selected == 3
        assert report.updated == 2
        assert report.failed_ids == [broken_id]
        assert await _flags(async_session, ids[0]) == (False, True, False)
        assert await _flags(async_session, broken_id) == (None, None, None)
        assert await _flags(async_session, ids[2]) == (False, True, False)

    async def test_empty_table(self, async_session: AsyncSession) -> None:
        report = await recalculate_flags(async_session, full=True)
        assert (report.selected, report.updated, report.failed) == (0, 0, 0)
