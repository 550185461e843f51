# backend/app/routes/v1/health.py
"""
Health check endpoints.

Used by load balancers and monitoring to check database connectivity.
"""

from datetime import datetime, timezone
import logging
from typing import Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.orm import Session

from ...api.dependencies import get_db
from ...database import get_db_pool_status

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    timestamp: datetime
    checks: Dict[str, bool]
    pool: Dict[str, int]


@router.get("/health", response_model=HealthCheckResponse)
def health_check(response: Response, db: Session = Depends(get_db)) -> HealthCheckResponse:
    """
    Basic health check endpoint.

    Returns:
        Simple status indicating the service is running.
    """
    response.headers["Cache-Control"] = "no-store"
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
        status = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        db_ok = False
        status = "degraded"

    return HealthCheckResponse(
        status=status,
        service="SkillSwap API",
        timestamp=datetime.now(timezone.utc),
        checks={"database": db_ok},
        pool=get_db_pool_status(),
    )
