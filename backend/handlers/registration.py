"""
Public registration endpoints.

Flow:
  form → GET /check-email, /check-phone (advisory duplicate hints)
       → POST /registrations → validated, classified, saved ✅
       → confirmation emails sent in the background
"""
import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.exceptions import PersistenceError, ValidationError
from backend.middlewares import get_email_sender, get_session
from backend.services import create_registration, dispatch_confirmations, email_exists, phone_exists
from backend.services.notification_service import EmailSender
from backend.validators import validate_registration

logger = logging.getLogger(__name__)
router = APIRouter(tags=["registration"])


# ── Duplicate-contact hints ───────────────────────────────────────────────────

@router.get("/check-email")
async def check_email(
    email: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> dict:
    if not email or not email.strip():
        raise ValidationError.single("email", "Email is required")
    try:
        exists = await email_exists(session, email)
    except SQLAlchemyError as e:
        logger.exception("Error checking email")
        raise PersistenceError("Failed to check email") from e
    return {"exists": exists}


@router.get("/check-phone")
async def check_phone(
    phone: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> dict:
    if not phone or not phone.strip():
        raise ValidationError.single("phone", "Phone is required")
    try:
        exists = await phone_exists(session, phone)
    except SQLAlchemyError as e:
        logger.exception("Error checking phone")
        raise PersistenceError("Failed to check phone") from e
    return {"exists": exists}


# ── Submission ────────────────────────────────────────────────────────────────

@router.post("/registrations", status_code=201)
async def submit_registration(
    background_tasks: BackgroundTasks,
    payload: Any = Body(default=None),
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
) -> dict:
    data = validate_registration(payload)

    try:
        reg = await create_registration(session, data)
        await session.commit()
    except SQLAlchemyError as e:
        logger.exception("Error creating registration")
        raise PersistenceError("Failed to create registration") from e

    # Runs after the response has been sent; its outcome never reaches the caller
    background_tasks.add_task(
        dispatch_confirmations,
        sender,
        reg.id,
        data.athlete1,
        data.athlete2,
        data.is_pair,
        reg.locale,
    )

    return {
        "success": True,
        "registrationId": reg.id,
        "message": "Registration successful",
    }
