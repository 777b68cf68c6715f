"""System API: health check and scheduler status."""

from fastapi import APIRouter, Depends

from hedgedesk.api.deps import get_current_operator

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler", dependencies=[Depends(get_current_operator)])
def scheduler_status():
    """Current scheduler state with job details."""
    from hedgedesk.engine.scheduler import get_scheduler_status
    return get_scheduler_status()
