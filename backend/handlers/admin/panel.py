"""
Admin login / logout.

Login trades the shared admin password for an opaque bearer token; logout
revokes the presented token.
"""
import logging
from typing import Any

from fastapi import APIRouter, Body, Depends

from backend.config import settings
from backend.exceptions import AuthError
from backend.middlewares import get_session_store, require_admin
from backend.services.session_store import SessionStore, check_password

logger = logging.getLogger(__name__)
router = APIRouter(tags=["admin"])


@router.post("/login")
async def login(
    payload: Any = Body(default=None),
    store: SessionStore = Depends(get_session_store),
) -> dict:
    password = payload.get("password") if isinstance(payload, dict) else None
    if not isinstance(password, str) or not check_password(password, settings.ADMIN_PASSWORD):
        logger.warning("Rejected admin login attempt")
        raise AuthError("Mot de passe incorrect")
    token = await store.issue()
    logger.info("Admin session opened")
    return {"success": True, "token": token}


@router.post("/logout")
async def logout(
    token: str = Depends(require_admin),
    store: SessionStore = Depends(get_session_store),
) -> dict:
    await store.revoke(token)
    logger.info("Admin session closed")
    return {"success": True}
