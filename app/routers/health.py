# =============================================================================
# app/routers/health.py - Health Check Endpoint
# =============================================================================
# Provides the health check used by load balancers and uptime monitoring.
# =============================================================================

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from lib.database import ping

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response."""
    status: str


@router.get("/healthz", response_model=HealthResponse)
def healthz():
    """
    Health check endpoint.

    Returns {"status": "ok"} once the database answers a trivial query.
    """
    try:
        ping()
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=500, content={"error": "database unavailable"})
    return HealthResponse(status="ok")
