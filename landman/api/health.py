"""
Health check endpoints.
/health always returns 200 so the platform healthcheck passes; DB
connectivity is reported but does not block the response.
"""

from fastapi import APIRouter, Depends

from landman.config import settings
from landman.dependencies import get_database
from landman.models.database import Database

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: Database = Depends(get_database)):
    """Verifies the API is running and tests DB connectivity."""
    db_error = await db.ping()

    response = {
        "status": "healthy" if db_error is None else "degraded",
        "version": settings.APP_VERSION,
        "database": "connected" if db_error is None else "unreachable",
    }
    if db_error:
        response["database_error"] = db_error

    return response


@router.get("/health/ready")
async def readiness_check(db: Database = Depends(get_database)):
    """Readiness probe: ready only if the database answers."""
    return {"ready": await db.ping() is None}
