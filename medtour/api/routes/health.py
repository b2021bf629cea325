"""Health check endpoints exposed by the public API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from medtour.core.config import settings
from medtour.core.db import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("", summary="Constant-time readiness check")
def health_fast() -> dict[str, str]:
    """Readiness check that never touches the database."""
    return {"status": "ok", "timestamp": _utc_timestamp()}


@router.get("/db", summary="Database connectivity check")
def health_db(db: Session = Depends(get_db)) -> dict[str, str]:
    """Deep health check that validates the database connection."""
    db.execute(text("SELECT 1"))
    return {"status": "ok", "scope": "db", "timestamp": _utc_timestamp()}


@router.get("/config", summary="Search configuration snapshot")
def health_config() -> dict[str, object]:
    return {
        "status": "ok",
        "index_url": settings.index_url,
        "index_failure_mode": settings.index_failure_mode,
        "search_fanout_workers": settings.search_fanout_workers,
        "timestamp": _utc_timestamp(),
    }
