"""
Admin authorization dependency.

Admin routes declare `token: str = Depends(require_admin)`; the bearer token
is checked against the session store attached to the app at startup.
"""
from typing import Optional

from fastapi import Header, Request

from backend.exceptions import AuthError
from backend.services.notification_service import EmailSender
from backend.services.session_store import SessionStore


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an "Authorization: Bearer <token>" header."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    return token or None


async def require_admin(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> str:
    """Returns the validated token; raises AuthError otherwise."""
    token = bearer_token(authorization)
    if token is None:
        raise AuthError()
    if not await get_session_store(request).validate(token):
        raise AuthError()
    return token
