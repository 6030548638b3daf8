# kavach/clients/stopping_distance.py
# ------------------------------------------------------------
# Stopping-distance estimates from a hosted text-generation model
# (Cohere generate API).
#
# The model is asked for a bare number in kilometres; the first
# number found in its reply is taken as the estimate.
# ------------------------------------------------------------

import logging
import re
from typing import Optional

import httpx

from ..errors import MalformedResponseError, MissingParameterError
from ..models import StoppingDistanceEstimate
from ._http import json_body, send

logger = logging.getLogger(__name__)

SERVICE = "text-generation"
_NUMBER = re.compile(r"[-+]?\d+(?:\.\d+)?")

PROMPT_TEMPLATE = (
    "Calculate the safe stopping distance for a train moving at {speed} m/s "
    "at coordinates ({lat}, {long}). Consider normal train deceleration physics. "
    "Give the answer in kilometer and just number. Without units."
)


def parse_distance_km(text: str) -> float:
    m = _NUMBER.search(text or "")
    if m is None:
        raise MalformedResponseError(f"no numeric estimate in reply: {text!r}")
    value = float(m.group(0))
    if value < 0:
        raise MalformedResponseError(f"negative distance in reply: {text!r}")
    return value


class StoppingDistanceClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str,
        api_key: str,
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> None:
        self.client = client
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def estimate(
        self,
        speed: Optional[float],
        lat: Optional[float],
        long: Optional[float],
    ) -> StoppingDistanceEstimate:
        if speed is None or lat is None or long is None:
            raise MissingParameterError()

        resp = await send(
            self.client,
            SERVICE,
            "POST",
            self.api_url,
            json={
                "model": self.model,
                "prompt": PROMPT_TEMPLATE.format(speed=speed, lat=lat, long=long),
                "max_tokens": self.max_tokens,
                "temperature": self.temperature,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        body = json_body(resp, SERVICE)
        try:
            text = body["generations"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError("text-generation reply has no generations") from e
        if not isinstance(text, str):
            raise MalformedResponseError("text-generation reply text is not a string")

        distance = parse_distance_km(text)
        logger.debug("stopping distance at %s km/h: %.3f km", speed, distance)
        return StoppingDistanceEstimate(
            speed=speed,
            lat=lat,
            long=long,
            distance_km=distance,
            raw_text=text,
        )
