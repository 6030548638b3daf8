# kavach/clients/inference.py
# ------------------------------------------------------------
# Remote animal-detection service.
#
# POST {base}/api/detect  {"frame": "data:image/jpeg;base64,..."}
# -> {"objects": [{class_id, class_name, confidence}, ...], ...}
#
# The service also returns its own "alerts" summary; it is ignored,
# consecutive counting is done locally by the AlertAggregator.
# ------------------------------------------------------------

from typing import List

import httpx
from pydantic import ValidationError

from ..errors import MalformedResponseError
from ..models import Detection
from ._http import json_body, send

SERVICE = "inference"


class InferenceClient:
    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def detect(self, frame_data_url: str) -> List[Detection]:
        """
        Run detection on one frame. An empty list means nothing was seen.
        """
        resp = await send(
            self.client,
            SERVICE,
            "POST",
            f"{self.base_url}/api/detect",
            json={"frame": frame_data_url},
        )
        body = json_body(resp, SERVICE)
        if not isinstance(body, dict):
            raise MalformedResponseError("inference reply is not an object")

        objects = body.get("objects") or []
        if not isinstance(objects, list):
            raise MalformedResponseError("inference 'objects' is not a list")
        try:
            return [Detection.model_validate(o) for o in objects]
        except ValidationError as e:
            raise MalformedResponseError(f"bad detection in inference reply: {e}") from e
