"""
Shared pytest fixtures for the registration backend tests.

Sets required environment variables BEFORE any backend module is imported so
that pydantic-settings and SQLAlchemy engine initialisation use safe test values.
"""
from __future__ import annotations

import os
from datetime import date
from typing import AsyncGenerator, List, Optional, Tuple

# ── Set env vars before any backend import ────────────────────────────────────
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_PASSWORD", "test-admin-password")
os.environ.setdefault("SESSION_BACKEND", "memory")
os.environ.pop("RESEND_API_KEY", None)

# ── Third-party ───────────────────────────────────────────────────────────────
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# ── Backend imports (safe after env vars are set) ─────────────────────────────
from backend.exceptions import NotificationError
from backend.models.base import Base, enable_sqlite_savepoints


# ── DB fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture
async def async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a fresh AsyncSession backed by an isolated in-memory SQLite database.
    Schema is created fresh for every test function; engine is always disposed
    on teardown, even if the test raises an exception.
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with factory() as session:
            yield session
    finally:
        await engine.dispose()


# ── Payload helpers ───────────────────────────────────────────────────────────

def athlete_payload(**overrides) -> dict:
    """A valid athlete block as the web form sends it."""
    data = {
        "lastName": "Ben Salah",
        "firstName": "Karim",
        "birthDate": "1990-06-15",
        "nationality": "Tunisia",
        "gender": "male",
        "email": "karim@example.com",
        "phone": "+216 97 475 628",
        "clubId": None,
    }
    data.update(overrides)
    return data


def registration_payload(is_pair: bool = False, athlete1: Optional[dict] = None,
                         athlete2: Optional[dict] = None, **extra) -> dict:
    payload = {
        "isPair": is_pair,
        "athlete1": athlete1 if athlete1 is not None else athlete_payload(),
        "locale": "fr",
    }
    if is_pair:
        payload["athlete2"] = athlete2 if athlete2 is not None else athlete_payload(
            lastName="Rossi",
            firstName="Giulia",
            birthDate="1995-03-02",
            nationality="Italy",
            gender="female",
            email="giulia@example.com",
            phone="+39 333 123 4567",
        )
    payload.update(extra)
    return payload


@pytest.fixture
def make_payload():
    """Factory fixture — returns a callable that builds a registration payload."""
    return registration_payload


@pytest.fixture
def make_athlete():
    return athlete_payload


def birth_date_for_age(age: int, reference: date = date(2026, 5, 1)) -> date:
    """A birth date giving exactly `age` on the reference date."""
    return date(reference.year - age, 1, 15)


# ── Mock helpers ──────────────────────────────────────────────────────────────

class RecordingEmailSender:
    """
    EmailSender that records messages instead of sending them.
    Addresses listed in `fail_for` raise NotificationError.
    """

    def __init__(self, fail_for: Tuple[str, ...] = ()) -> None:
        self.sent: List[Tuple[str, str, str]] = []
        self.fail_for = set(fail_for)

    async def send(self, to: str, subject: str, html: str) -> None:
        if to in self.fail_for:
            raise NotificationError(f"mailbox unavailable: {to}")
        self.sent.append((to, subject, html))

    @property
    def recipients(self) -> List[str]:
        return [to for to, _, _ in self.sent]


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()
