# smartcare/routers/health.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health Checks"],
)


@router.get("")
async def health_check(db: Session = Depends(get_db)):
    """Liveness plus a round trip to the database."""
    settings = get_settings()
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database probe failed: {e}")
        database = "unavailable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "email": "enabled" if settings.email_enabled else "simulated",
        "push": "enabled" if settings.push_enabled else "simulated",
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
