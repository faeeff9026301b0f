"""
Service-level endpoints.
"""
from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter(tags=["common"])


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
