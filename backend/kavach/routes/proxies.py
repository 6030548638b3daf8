# kavach/routes/proxies.py
# ------------------------------------------------------------
# Thin proxies to third-party services
#
# - POST /api/stopping-distance  text-generation estimate
# - POST /api/send-msg           SMS notification
# - GET  /api/languages          supported UI languages
# - POST /api/translate          UI text translation (cached)
#
# Upstream failures are raised as kavach.errors and turned into
# responses by the handlers registered in main.py.
# ------------------------------------------------------------

from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..clients.translation import LANGUAGE_CODES, SUPPORTED_LANGUAGES
from ..errors import MissingParameterError
from ..runtime import Runtime
from ._common import get_runtime

router = APIRouter(tags=["proxies"])

LOCALE_COOKIE = "NEXT_LOCALE"


class StoppingDistanceRequest(BaseModel):
    # optional so a missing field yields the explicit 400 below
    speed: Optional[float] = None
    lat: Optional[float] = None
    long: Optional[float] = None


class SendMessageRequest(BaseModel):
    message: str = "Rail Kavach alert"
    mobile_no: Optional[str] = None


class TranslateRequest(BaseModel):
    text: Union[str, Dict[str, Any]]
    target: Optional[str] = None


@router.post("/api/stopping-distance")
async def stopping_distance(body: StoppingDistanceRequest, rt: Runtime = Depends(get_runtime)):
    if not rt.settings.cohere_api_key:
        return JSONResponse(status_code=500, content={"error": "Missing API key"})

    estimate = await rt.distance_client.estimate(speed=body.speed, lat=body.lat, long=body.long)
    return {"result": estimate.raw_text, "distance_km": estimate.distance_km}


@router.post("/api/send-msg")
async def send_message(body: Optional[SendMessageRequest] = None, rt: Runtime = Depends(get_runtime)):
    body = body or SendMessageRequest()
    upstream = await rt.notifier.send(body.message, mobile_no=body.mobile_no)
    return {"message": "Message sent successfully", "upstream": upstream}


@router.get("/api/languages")
def languages():
    return {"items": SUPPORTED_LANGUAGES}


@router.post("/api/translate")
async def translate(body: TranslateRequest, request: Request, rt: Runtime = Depends(get_runtime)):
    """
    Translate a string, or every string value of an object.

    Without an explicit target the NEXT_LOCALE cookie decides,
    defaulting to English.
    """
    target = body.target or request.cookies.get(LOCALE_COOKIE) or "en"
    if target not in LANGUAGE_CODES:
        raise HTTPException(status_code=400, detail=f"Unsupported language: {target}")
    if body.text in ("", {}):
        raise MissingParameterError()

    if isinstance(body.text, dict):
        translated: Any = await rt.translator.translate_object(body.text, target)
    else:
        translated = await rt.translator.translate_text(body.text, target)
    return {"target": target, "translated": translated}
