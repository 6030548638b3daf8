# kavach/routes/alerts.py
# ------------------------------------------------------------
# Alerts API
#
# Alerts live in the AlertAggregator (append-only list, newest at
# the end). They are transitioned, never deleted.
# ------------------------------------------------------------

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ..models import AlertStatus, CAMERA_STATUSES
from ..runtime import Runtime
from ._common import dump_items, get_runtime

router = APIRouter(tags=["alerts"])


class StatusUpdateRequest(BaseModel):
    status: AlertStatus


@router.get("/api/alerts")
def list_alerts(
    status: Optional[AlertStatus] = None,
    limit: int = Query(50, ge=1, le=300),
    rt: Runtime = Depends(get_runtime),
):
    """
    List recent alerts (newest first), optionally filtered by status.
    """
    alerts = list(reversed(rt.aggregator.alerts))
    if status is not None:
        alerts = [a for a in alerts if a.status == status]
    return dump_items(alerts[:limit])


@router.get("/api/alerts/stats")
def alert_stats(rt: Runtime = Depends(get_runtime)):
    """
    Counters for the dashboard chips: alerts per status, cameras per
    status, and how many trains are being monitored.
    """
    cameras = {s: 0 for s in CAMERA_STATUSES}
    for c in rt.fleet.cameras:
        cameras[c.status] += 1

    return {
        "alerts": rt.aggregator.status_counts(),
        "cameras": cameras,
        "trains": len(rt.fleet.trains),
        "total_alerts": len(rt.aggregator.alerts),
    }


@router.post("/api/alerts/{alert_id}/status")
async def update_alert_status(
    alert_id: str,
    body: StatusUpdateRequest,
    rt: Runtime = Depends(get_runtime),
):
    alert = rt.aggregator.set_status(alert_id, body.status)
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")

    data = alert.model_dump(mode="json")
    rt.feed.push("alert_updated", data)
    return data
