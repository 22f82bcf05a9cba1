"""Health check endpoints."""

from fastapi import APIRouter
from sqlalchemy import text

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - verify dependencies are available.
    Fails if the database is down.
    """
    health_status = {
        "status": "ready",
        "checks": {
            "database": "unknown",
        }
    }

    try:
        from backend.app.core.database import engine
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["checks"]["database"] = "ok"
    except Exception as e:
        health_status["checks"]["database"] = f"failed: {str(e)}"
        health_status["status"] = "not_ready"

    return health_status
