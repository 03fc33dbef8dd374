"""Dashboard routes.

Routes:
- GET /api/dashboard/metrics - Coverage and completeness snapshot
"""

from __future__ import annotations

from fastapi import APIRouter

from occutax.db.connection import get_session
from occutax.reporting.dashboard_metrics import compute_dashboard_metrics

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/metrics")
async def dashboard_metrics():
    async with get_session() as session:
        metrics = await compute_dashboard_metrics(session)
    return metrics.to_dict()
