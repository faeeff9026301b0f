"""
Admin session store — opaque bearer tokens issued on password login.

InMemorySessionStore  process-lifetime dict; fine for a single instance
RedisSessionStore     shared between instances, expiry handled by Redis
"""
from __future__ import annotations

import hmac
import logging
import secrets
import time
from typing import Dict, Optional, Protocol

from redis import asyncio as aioredis

from backend.config import Settings, settings

logger = logging.getLogger(__name__)


def generate_token() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def check_password(candidate: Optional[str], expected: str) -> bool:
    """Constant-time password comparison."""
    if not candidate:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


class SessionStore(Protocol):
    async def issue(self) -> str: ...

    async def validate(self, token: str) -> bool: ...

    async def revoke(self, token: str) -> None: ...


class InMemorySessionStore:
    """
    Token → expiry (monotonic seconds, or None for no expiry).

    Parameters
    ----------
    ttl : token lifetime in seconds; 0 or None means valid until revoked
    """

    def __init__(self, ttl: Optional[float] = None) -> None:
        self._ttl = ttl or None
        self._tokens: Dict[str, Optional[float]] = {}

    async def issue(self) -> str:
        token = generate_token()
        self._tokens[token] = time.monotonic() + self._ttl if self._ttl else None
        return token

    async def validate(self, token: str) -> bool:
        if token not in self._tokens:
            return False
        expires_at = self._tokens[token]
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._tokens[token]
            return False
        return True

    async def revoke(self, token: str) -> None:
        self._tokens.pop(token, None)


class RedisSessionStore:
    """Tokens stored as `admin_token:<token>` keys with an optional TTL."""

    KEY_PREFIX = "admin_token:"

    def __init__(self, client: aioredis.Redis, ttl: Optional[int] = None) -> None:
        self._redis = client
        self._ttl = ttl or None

    def _key(self, token: str) -> str:
        return f"{self.KEY_PREFIX}{token}"

    async def issue(self) -> str:
        token = generate_token()
        await self._redis.set(self._key(token), "1", ex=self._ttl)
        return token

    async def validate(self, token: str) -> bool:
        return bool(await self._redis.exists(self._key(token)))

    async def revoke(self, token: str) -> None:
        await self._redis.delete(self._key(token))


def build_session_store(config: Settings = settings) -> SessionStore:
    if config.SESSION_BACKEND == "redis":
        logger.info("Admin sessions stored in Redis")
        client = aioredis.from_url(config.REDIS_URL, decode_responses=True)
        return RedisSessionStore(client, ttl=config.ADMIN_TOKEN_TTL)
    return InMemorySessionStore(ttl=config.ADMIN_TOKEN_TTL)
