# kavach/routes/detection.py
# ------------------------------------------------------------
# Camera detection API
#
# - GET  /api/detection         current detection view state
# - POST /api/detection/frame   run inference on a supplied frame
# - POST /api/detection/refresh capture + detect right now
# - POST /api/detection/camera  switch camera polling on/off
# ------------------------------------------------------------

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..runtime import Runtime
from ._common import get_runtime

router = APIRouter(tags=["detection"])


class FrameRequest(BaseModel):
    # data URL ("data:image/jpeg;base64,...") as produced by a canvas
    frame: str = Field(min_length=1)


class CameraToggleRequest(BaseModel):
    active: bool


@router.get("/api/detection")
def detection_state(rt: Runtime = Depends(get_runtime)):
    return rt.detection.state()


@router.post("/api/detection/frame")
async def detect_frame(body: FrameRequest, rt: Runtime = Depends(get_runtime)):
    """
    Forward one frame to the inference service and fold the result
    into the consecutive-detection counters.
    """
    detections = await rt.inference.detect(body.frame)
    summaries = await rt.detection.ingest(detections)
    return {
        "objects": [d.model_dump(mode="json") for d in detections],
        "alerts": [s.model_dump(mode="json") for s in summaries],
    }


@router.post("/api/detection/refresh")
async def refresh_detection(rt: Runtime = Depends(get_runtime)):
    return await rt.detection.refresh()


@router.post("/api/detection/camera")
async def toggle_camera(body: CameraToggleRequest, rt: Runtime = Depends(get_runtime)):
    s = rt.settings
    if body.active:
        rt.detection.activate(rt.detection_rate_sec(), s.detection_initial_delay_sec)
    else:
        rt.detection.deactivate()
    return rt.detection.state()
