# kavach/routes/health.py
# ------------------------------------------------------------
# Health & metrics endpoint
#
# Purpose:
# - quick liveness check
# - counts for UI chips
# - polling loop status and feed backlog
# ------------------------------------------------------------

from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import time

import redis

from ..runtime import Runtime
from ._common import get_runtime

router = APIRouter(tags=["health"])


def _utc_now_iso():
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _iso_or_none(dt):
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@router.get("/api/health")
def health(rt: Runtime = Depends(get_runtime)):
    """
    Health status for the dashboard.

    Returns:
    - ok, utc
    - started_at, uptime_seconds
    - counts
    - controllers (one entry per polling loop)
    - stream_backlog
    - freshness (latest fleet / detection update)
    - latency_ms (server-measured for this handler)
    """
    t0 = time.perf_counter()

    counts = {
        "trains": len(rt.fleet.trains),
        "alerts": len(rt.aggregator.alerts),
        "cameras": len(rt.fleet.cameras),
        "detection_counters": len(rt.aggregator.counters),
    }

    # the Redis feed can be down while the API is up
    try:
        stream_backlog = rt.feed.backlog()
        feed_ok = True
    except redis.RedisError:
        stream_backlog = None
        feed_ok = False

    freshness = {
        "fleet_latest": _iso_or_none(rt.fleet.last_updated),
        "detection_latest": _iso_or_none(rt.detection.last_updated),
    }

    now = datetime.now(timezone.utc)
    uptime_seconds = int((now - rt.started_at).total_seconds())
    latency_ms = round((time.perf_counter() - t0) * 1000, 2)

    return {
        "ok": True,
        "utc": _utc_now_iso(),
        "started_at": _iso_or_none(rt.started_at),
        "uptime_seconds": uptime_seconds,
        "counts": counts,
        "controllers": rt.controllers(),
        "feed": {"backend": rt.settings.state_backend, "ok": feed_ok},
        "stream_backlog": stream_backlog,
        "freshness": freshness,
        "latency_ms": latency_ms,
    }
