"""
Health Check Endpoint
"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.models import HealthResponse
from app.core.config import get_settings
from database.connection import engine

router = APIRouter(prefix="/health", tags=["Health"])
logger = logging.getLogger(__name__)


@router.get("", response_model=HealthResponse)
async def health_check():
    """
    Sistem sağlığını kontrol eder
    """
    settings = get_settings()

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_connection = "connected"
    except SQLAlchemyError as e:
        logger.error(f"❌ Veritabanı kontrolü başarısız: {type(e).__name__}")
        db_connection = "disconnected"

    return HealthResponse(
        status="healthy" if db_connection == "connected" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database_connection=db_connection,
        version=settings.app_version,
    )
