"""
Alert endpoints - public live map plus the admin dashboard workflow.

Public:
- GET  /alerts/active         alerts that are active and not yet expired
- GET  /alerts/active/stream  the same view as Server-Sent Events
- GET  /alerts/near           active alerts around a point
- GET  /alerts/{id}
- POST /alerts/{id}/vote      anonymous or signed-in

Admin:
- POST /alerts, GET /alerts/history, GET /alerts/mine
- POST /alerts/{id}/resolve, POST /alerts/{id}/false
"""

import json
import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from safety_alerts.core.errors import SafetyAlertsError
from safety_alerts.dependencies import get_optional_session, require_admin
from safety_alerts.models.alert import Alert, AlertCreate, AlertType, NearbyAlert, VoteRequest, VoteResponse
from safety_alerts.models.user import Session
from safety_alerts.services.alert_service import get_alert_service
from safety_alerts.services.subscriptions import iter_snapshots
from safety_alerts.services.visibility import AlertFilter, StatusFilter, apply_filters, visible_alerts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/alerts", tags=["Alerts"])


def alert_filter_params(
    alert_type: Optional[AlertType] = Query(None, alias="type"),
    status_filter: StatusFilter = Query(StatusFilter.ALL, alias="status"),
    country: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    name: Optional[str] = Query(None),
    locality: Optional[str] = Query(None, description="Free text matched against the full location"),
    min_lat: Optional[float] = Query(None, ge=-90, le=90),
    max_lat: Optional[float] = Query(None, ge=-90, le=90),
    min_lng: Optional[float] = Query(None, ge=-180, le=180),
    max_lng: Optional[float] = Query(None, ge=-180, le=180),
) -> AlertFilter:
    return AlertFilter(
        type=alert_type,
        status=status_filter,
        country=country,
        state=state,
        name=name,
        locality=locality,
        min_lat=min_lat,
        max_lat=max_lat,
        min_lng=min_lng,
        max_lng=max_lng,
    )


def _error(e: Exception, action: str) -> HTTPException:
    if isinstance(e, SafetyAlertsError):
        return HTTPException(status_code=e.status_code, detail=e.message)
    logger.error(f"Failed to {action}: {str(e)}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}"
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_alert(
    request: AlertCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(require_admin),
):
    """
    Create an alert. SMS notification of registered phones runs after the
    response is sent; its failure never affects the created alert.
    """
    try:
        service = get_alert_service()
        alert_id = service.create_alert(request, session, notify=False)
        background_tasks.add_task(service.notify_subscribers, alert_id)
        return {
            "success": True,
            "id": alert_id,
            "alert": service.get_alert(alert_id).model_dump(mode="json"),
        }
    except Exception as e:
        raise _error(e, "create alert")


@router.get("/active", response_model=List[Alert])
async def list_active_alerts(alert_filter: AlertFilter = Depends(alert_filter_params)):
    try:
        return apply_filters(get_alert_service().list_active(), alert_filter)
    except Exception as e:
        raise _error(e, "list active alerts")


@router.get("/active/stream")
async def stream_active_alerts():
    """
    Server-Sent Events: one `data:` event carrying the full active list
    every time the alerts collection changes.
    """
    service = get_alert_service()

    async def event_stream():
        async for alerts in iter_snapshots(service.subscribe_active):
            payload = json.dumps([alert.model_dump(mode="json") for alert in alerts])
            yield f"data: {payload}\n\n"

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@router.get("/history", response_model=List[Alert])
async def list_alert_history(
    alert_filter: AlertFilter = Depends(alert_filter_params),
    session: Session = Depends(require_admin),
):
    """
    Every alert regardless of status or expiry, restricted to the caller's
    assigned regions, then narrowed by the query filters.
    """
    try:
        return visible_alerts(get_alert_service().list_history(), session, alert_filter)
    except Exception as e:
        raise _error(e, "list alert history")


@router.get("/mine", response_model=List[Alert])
async def list_my_alerts(session: Session = Depends(require_admin)):
    try:
        return get_alert_service().list_by_creator(session.uid)
    except Exception as e:
        raise _error(e, "list alerts")


@router.get("/near", response_model=List[NearbyAlert])
async def list_nearby_alerts(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: float = Query(5000, gt=0, le=100000, description="Radius in meters"),
):
    try:
        return get_alert_service().list_near(lat, lng, radius)
    except Exception as e:
        raise _error(e, "list nearby alerts")


@router.get("/{alert_id}", response_model=Alert)
async def get_alert(alert_id: str):
    try:
        return get_alert_service().get_alert(alert_id)
    except Exception as e:
        raise _error(e, "get alert")


@router.post("/{alert_id}/resolve", response_model=Alert)
async def resolve_alert(alert_id: str, session: Session = Depends(require_admin)):
    """active -> resolved. 400 from any other status."""
    try:
        return get_alert_service().resolve(alert_id, session)
    except Exception as e:
        raise _error(e, "resolve alert")


@router.post("/{alert_id}/false", response_model=Alert)
async def mark_alert_false(alert_id: str, session: Session = Depends(require_admin)):
    """active -> false. 400 from any other status."""
    try:
        return get_alert_service().mark_false(alert_id, session)
    except Exception as e:
        raise _error(e, "mark alert as false")


@router.post("/{alert_id}/vote", response_model=VoteResponse)
async def vote_on_alert(
    alert_id: str,
    request: VoteRequest,
    session: Session = Depends(get_optional_session),
):
    try:
        return get_alert_service().vote(alert_id, request.direction, session)
    except Exception as e:
        raise _error(e, "record vote")
