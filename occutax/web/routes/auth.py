"""Authentication routes.

Routes:
- POST /api/auth/login - Check the single admin credential
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from occutax.web.auth import verify_credentials
from occutax.web.models import LoginRequest

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])


@router.post("/login")
async def login(body: LoginRequest):
    if not verify_credentials(body.username, body.password):
        logger.info("login_failed", username=body.username)
        return JSONResponse(
            status_code=401,
            content={"error": "Unauthorized", "message": "Invalid credentials"},
        )

    logger.info("login_succeeded", username=body.username)
    return {"success": True}
