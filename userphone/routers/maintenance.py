import structlog
from fastapi import APIRouter, Depends, HTTPException

from userphone.dependencies import get_cleanup_service
from userphone.models.api.metrics import CleanupResponse
from userphone.services.cleanup_service import CallCleanupService

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_old_calls(
    cleanup: CallCleanupService = Depends(get_cleanup_service),
) -> CleanupResponse:
    """Delete ended calls older than the configured retention now."""
    try:
        deleted = await cleanup.run_once()
    except Exception:
        logger.exception("Manual call cleanup failed")
        raise HTTPException(status_code=500, detail="Internal server error")
    return CleanupResponse(deleted=deleted)
