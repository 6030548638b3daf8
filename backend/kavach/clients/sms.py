# kavach/clients/sms.py
# ------------------------------------------------------------
# SMS gateway client (DLT template based, form-encoded).
# Failures are raised to the caller; nothing is retried here.
# ------------------------------------------------------------

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import MissingParameterError
from ._http import send

logger = logging.getLogger(__name__)

SERVICE = "sms"


class SmsNotifier:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str,
        api_key: str,
        template_id: str,
        sender_id: str,
        default_recipient: str = "",
    ) -> None:
        self.client = client
        self.api_url = api_url
        self.api_key = api_key
        self.template_id = template_id
        self.sender_id = sender_id
        self.default_recipient = default_recipient

    async def send(self, message: str, mobile_no: Optional[str] = None) -> Dict[str, Any]:
        recipient = mobile_no or self.default_recipient
        if not recipient or not message:
            raise MissingParameterError()

        form = {
            "dlt_template_id": self.template_id,
            "sender_id": self.sender_id,
            "mobile_no": recipient,
            "message": message,
            "unicode": "0",
        }
        resp = await send(
            self.client,
            SERVICE,
            "POST",
            self.api_url,
            data=form,
            headers={"Authorization": self.api_key},
        )
        logger.info("sms sent to %s", recipient)
        try:
            return resp.json()
        except ValueError:
            return {"raw": resp.text}
