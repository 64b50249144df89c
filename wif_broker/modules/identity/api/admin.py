import secrets

import structlog
from fastapi import APIRouter, Header, HTTPException, Request

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/sync")
async def trigger_sync(request: Request, x_admin_key: str = Header(..., alias="X-Admin-Key")):
    """Host-directed resync. Returns the installation status, never the token."""
    settings = request.app.state.settings

    if not settings.ADMIN_API_KEY:
        logger.error("admin_key_not_configured")
        raise HTTPException(
            status_code=503,
            detail="Admin endpoint not configured. Set ADMIN_API_KEY."
        )

    if not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        logger.warning("admin_key_rejected")
        raise HTTPException(status_code=403, detail="Forbidden")

    result = await request.app.state.host.sync()
    return {
        "status": result.new_status.value,
        "description": result.custom_status_description,
        "expires_at": request.app.state.host.signals.get("expiresAt"),
    }
