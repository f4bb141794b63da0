import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.connection import get_db
from app.schemas.system import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["System"])


@router.get("/health", response_model=HealthCheckResponse)
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Lightweight public health check.
    Returns ok + DB connectivity check (SELECT 1).
    """
    now = datetime.utcnow()
    start_time = getattr(request.app.state, "start_time", now)
    uptime_seconds = (now - start_time).total_seconds()

    db_ok = True
    extra = {"discounts_enabled": settings.DISCOUNTS_ENABLED}
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check DB ping failed: %s", e)
        db_ok = False
        extra["db_error"] = str(e)

    status = "ok" if db_ok else "degraded"

    return HealthCheckResponse(
        status=status,
        now=now,
        uptime_seconds=uptime_seconds,
        db_ok=db_ok,
        extra=extra,
    )
