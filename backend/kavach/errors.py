# kavach/errors.py
# ------------------------------------------------------------
# Error taxonomy shared by the outbound clients, the monitors and
# the HTTP layer.
#
# Every class here is "retryable by the next tick": the polling
# loops catch them, the routes map them to a status code.
# ------------------------------------------------------------

from typing import Any, Optional


class KavachError(Exception):
    """Base class for all errors raised by this package."""


class TransportError(KavachError):
    """Network failure or timeout talking to an upstream service."""


class MalformedResponseError(KavachError):
    """Upstream answered, but not with the shape we expect."""


class MissingParameterError(KavachError):
    """Inbound request lacks a required parameter."""

    def __init__(self, message: str = "Missing required parameters") -> None:
        super().__init__(message)


class UpstreamStatusError(KavachError):
    """Upstream answered with a non-2xx status."""

    def __init__(
        self,
        service: str,
        status_code: int,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(f"{service} returned HTTP {status_code}")
        self.service = service
        self.status_code = status_code
        self.details = details


class CameraNotReadyError(KavachError):
    def __init__(self, message: str = "Camera not ready") -> None:
        super().__init__(message)
