from backend.services.classifier import (
    AthleteProfile, DerivedFlags,
    is_tunisian, age_on_competition, etranger, mosaique, mixte, classify,
)
from backend.services.club_service import (
    find_club_by_name, find_club_by_id, list_clubs, insert_club,
    get_or_create_club, resolve_club, get_club_name,
)
from backend.services.registration_service import (
    create_registration, email_exists, phone_exists, normalize_phone,
    list_registrations, registration_to_dict,
)
from backend.services.recalculation_service import RecalculationReport, recalculate_flags
from backend.services.notification_service import (
    EmailSender, ResendEmailSender, LoggingEmailSender, build_email_sender,
    build_confirmation_email, notify_registration_confirmed, dispatch_confirmations,
)
from backend.services.session_store import (
    SessionStore, InMemorySessionStore, RedisSessionStore, build_session_store,
    check_password,
)

__all__ = [
    # classifier
    "AthleteProfile", "DerivedFlags",
    "is_tunisian", "age_on_competition", "etranger", "mosaique", "mixte", "classify",
    # clubs
    "find_club_by_name", "find_club_by_id", "list_clubs", "insert_club",
    "get_or_create_club", "resolve_club", "get_club_name",
    # registrations
    "create_registration", "email_exists", "phone_exists", "normalize_phone",
    "list_registrations", "registration_to_dict",
    # recalculation
    "RecalculationReport", "recalculate_flags",
    # notifications
    "EmailSender", "ResendEmailSender", "LoggingEmailSender", "build_email_sender",
    "build_confirmation_email", "notify_registration_confirmed", "dispatch_confirmations",
    # admin sessions
    "SessionStore", "InMemorySessionStore", "RedisSessionStore", "build_session_store",
    "check_password",
]
