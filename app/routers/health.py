import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from app.config import Settings
from app.database.engine import Database
from app.dependencies import get_app_settings, get_database

router = APIRouter(tags=["Health"])
logger = logging.getLogger(__name__)


@router.get("/health")
def health_check(
    settings: Settings = Depends(get_app_settings),
    database: Database = Depends(get_database),
):
    try:
        database.ping()
        database_status = "ok"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        database_status = "unavailable"
    return {
        "status": "ok" if database_status == "ok" else "degraded",
        "app": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "database": database_status,
        "time": datetime.now(timezone.utc).isoformat(),
    }
