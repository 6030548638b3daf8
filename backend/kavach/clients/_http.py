# kavach/clients/_http.py
# ------------------------------------------------------------
# Shared request helper: maps httpx failures onto the error taxonomy.
# ------------------------------------------------------------

from typing import Any

import httpx

from ..errors import MalformedResponseError, TransportError, UpstreamStatusError


async def send(
    client: httpx.AsyncClient,
    service: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    try:
        resp = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise TransportError(f"{service} timed out") from e
    except httpx.RequestError as e:
        raise TransportError(f"{service} unreachable: {e}") from e

    if not resp.is_success:
        try:
            details: Any = resp.json()
        except ValueError:
            details = resp.text
        raise UpstreamStatusError(service, resp.status_code, details)
    return resp


def json_body(resp: httpx.Response, service: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise MalformedResponseError(f"{service} returned non-JSON body") from e
