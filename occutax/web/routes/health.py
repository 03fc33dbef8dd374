"""Health check route: database connectivity and installed audit triggers."""

from fastapi import APIRouter, Depends, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from occutax.audit.triggers import installed_audit_triggers
from occutax.db.connection import get_db

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        connection = await db.connection()
        triggers = await connection.run_sync(installed_audit_triggers)
    except SQLAlchemyError as e:
        return {
            "status": "error",
            "database": "disconnected",
            "detail": str(e),
        }

    return {
        "status": "ok" if triggers else "degraded",
        "database": "connected",
        "audit_triggers": len(triggers),
    }
