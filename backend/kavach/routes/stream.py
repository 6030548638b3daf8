# kavach/routes/stream.py
# ------------------------------------------------------------
# Server-Sent Events (SSE) stream
#
# Monitors push updates into the UpdateFeed after every tick.
# This endpoint replays new items to connected clients:
# - event: <type>
# - data: <json>
# ------------------------------------------------------------

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
import asyncio
import json
import time
from typing import AsyncGenerator

from ..runtime import Runtime
from ._common import get_runtime

router = APIRouter(tags=["stream"])

HEARTBEAT_EVERY_SEC = 10
POLL_EVERY_SEC = 0.5


def sse(event: str, data_obj) -> str:
    """
    Build an SSE message.

    Format:
        event: name
        data: json
    """
    return f"event: {event}\ndata: {json.dumps(data_obj)}\n\n"


async def feed_events(rt: Runtime, max_polls: int = 0) -> AsyncGenerator[str, None]:
    """
    Yield SSE frames for feed items pushed after the call.

    max_polls > 0 bounds the loop (tests); 0 streams forever.
    """
    cursor = rt.feed.cursor()  # start from "now"

    # initial hello + retry hint (client reconnect delay)
    yield "retry: 2000\n\n"
    yield sse("hello", {"ok": True, "ts": time.time()})

    last_heartbeat = time.time()
    polls = 0

    while True:
        items, cursor = rt.feed.read_since(cursor)
        for payload in items:
            yield sse(payload.get("type", "update"), payload.get("data", {}))

        now = time.time()
        if now - last_heartbeat >= HEARTBEAT_EVERY_SEC:
            yield sse("heartbeat", {"t": now})
            last_heartbeat = now

        polls += 1
        if max_polls and polls >= max_polls:
            return
        await asyncio.sleep(POLL_EVERY_SEC)


@router.get("/api/stream")
def stream(rt: Runtime = Depends(get_runtime)):
    """
    Live updates stream.

    Starts from "now" (does not replay history) to avoid huge bursts,
    and sends a heartbeat periodically to keep the connection alive.
    """
    headers = {
        # SSE must not be cached
        "Cache-Control": "no-cache",
        # keep TCP connection open
        "Connection": "keep-alive",
        # if behind nginx, prevents response buffering
        "X-Accel-Buffering": "no",
    }

    return StreamingResponse(feed_events(rt), media_type="text/event-stream", headers=headers)
