"""
Compliance Controllers (API Routes)
===================================

FastAPI routes for the compliance watchdog.

Controllers are thin - they delegate to application services held in
`app.state` by the application lifespan.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from vericlean.compliance.application import (
    AlertListResponse, AlertQueryService, AlertResponse,
    IDocumentStore, WatchdogRunSummary
)
from vericlean.compliance.infrastructure import WatchdogJob
from vericlean.core import ValidationException, WatchdogStageError
from vericlean.privacy import (
    EntityType, generate_privacy_audit_log, get_privacy_context, sanitize
)
from vericlean.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/compliance", tags=["Compliance Watchdog"])


def get_store(request: Request) -> IDocumentStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Store not initialized")
    return store


def get_watchdog_job(request: Request) -> WatchdogJob:
    job = getattr(request.app.state, "watchdog_job", None)
    if job is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Watchdog not initialized")
    return job


@router.post(
    "/watchdog/run",
    response_model=WatchdogRunSummary,
    summary="Run the compliance watchdog once",
)
async def run_watchdog(job: WatchdogJob = Depends(get_watchdog_job)) -> WatchdogRunSummary:
    """
    Trigger one watchdog invocation outside the schedule.

    Returns the run summary, or 500 with the failing stage.
    """
    try:
        return await job()
    except WatchdogStageError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": e.message, "stage": e.stage, "counts": e.counts}
        ) from e


@router.get(
    "/watchdog/last",
    response_model=WatchdogRunSummary,
    summary="Summary of the last successful run",
)
async def last_run(job: WatchdogJob = Depends(get_watchdog_job)) -> WatchdogRunSummary:
    if job.last_summary is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No completed run yet")
    return job.last_summary


@router.get(
    "/alerts/open",
    response_model=AlertListResponse,
    summary="List open missing-clean alerts",
)
async def list_open_alerts(
    building_id: Optional[str] = Query(None, description="Filter by building"),
    limit: int = Query(100, ge=1, le=1000),
    store: IDocumentStore = Depends(get_store),
) -> AlertListResponse:
    alerts = await AlertQueryService(store).list_open_alerts(building_id=building_id, limit=limit)
    return AlertListResponse(
        total=len(alerts),
        alerts=[AlertResponse(**alert.to_dict()) for alert in alerts],
    )


@router.get(
    "/alerts/open/export",
    summary="Open alerts sanitized for an external consumer",
)
async def export_open_alerts(
    context: str = Query("ai_analysis", description="Privacy context of the consumer"),
    building_id: Optional[str] = Query(None, description="Filter by building"),
    limit: int = Query(100, ge=1, le=1000),
    store: IDocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    """
    Open alerts passed through the privacy filter.

    Each record carries the audit of what was removed.
    """
    try:
        get_privacy_context(context)
    except ValidationException as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e

    alerts = await AlertQueryService(store).list_open_alerts(building_id=building_id, limit=limit)

    exported = []
    for alert in alerts:
        original = alert.to_dict()
        sanitized = sanitize(original, EntityType.ALERT, context)
        exported.append({
            "alert": sanitized,
            "audit": generate_privacy_audit_log(original, sanitized, context),
        })

    return {"context": context, "total": len(exported), "alerts": exported}


compliance_router = router
