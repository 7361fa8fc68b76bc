"""
Analytics Controllers (API Routes)
==================================

Ingestion hook called when a cleaning log document is created.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status

from vericlean.analytics.mirror import AnalyticsMirror

router = APIRouter(prefix="/analytics", tags=["Analytics"])


def get_analytics_mirror(request: Request) -> AnalyticsMirror:
    mirror = getattr(request.app.state, "analytics_mirror", None)
    if mirror is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Analytics not initialized")
    return mirror


@router.post(
    "/cleaning-logs/{log_id}",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Mirror a created cleaning log",
)
async def mirror_cleaning_log(
    log_id: str,
    data: Dict[str, Any] = Body(..., description="Cleaning log document"),
    mirror: AnalyticsMirror = Depends(get_analytics_mirror),
) -> Dict[str, Any]:
    """
    Accepts the document and mirrors it.

    Always 202: insert failures are logged, not reported to the caller.
    """
    streamed = await mirror.stream(log_id, data)
    return {"log_id": log_id, "streamed": streamed}


analytics_router = router
