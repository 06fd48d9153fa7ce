"""
Health check endpoint for monitoring the sync backend.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import config
from database import get_db
from utils.structured_logging import StructuredLogger

router = APIRouter(tags=["health"])

health_logger = StructuredLogger(service="health", logger_name="brify_sync.health")


@router.get("/health")
def general_health_check(db: Session = Depends(get_db)):
    """
    Returns:
        - overall_status: healthy when the database answers, unhealthy otherwise
        - services.database: connectivity check result
        - services.drive: which Drive client the sync uses (mock or real)
        - timestamp: Timestamp of this health check
    """
    now = datetime.now(timezone.utc)

    database = {"status": "healthy"}
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        database = {"status": "unhealthy", "error": str(e)}

    overall_status = database["status"]

    health_logger.info(
        action="general_health_check",
        status=overall_status,
        message=f"Overall health: {overall_status}",
        database_status=database["status"],
    )

    return {
        "overall_status": overall_status,
        "timestamp": now.isoformat(),
        "services": {
            "database": database,
            "drive": {"mode": "mock" if config.USE_MOCK_DRIVE else "google"},
        },
    }
