"""
Error taxonomy shared by the pipeline and the HTTP layer.
"""
from typing import Optional


class HomeScoutError(Exception):
    """Base class for errors raised by HomeScout."""


class InvalidFieldError(HomeScoutError):
    """A required request field is missing or has the wrong type."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        self.message = message or f"{field} must be a string"
        super().__init__(f"Invalid request: {self.message}")


class UpstreamError(HomeScoutError):
    """
    An essential upstream call failed.

    The message names the service and status code only. URLs, tokens and
    response bodies stay out of it so it is safe to log.
    """

    def __init__(
        self,
        service: str,
        status: Optional[int] = None,
        reason: str = "",
        transient: Optional[bool] = None,
    ):
        self.service = service
        self.status = status
        self.reason = reason
        self._transient = transient
        detail = f"{service} request failed"
        if status is not None:
            detail += f" (HTTP {status})"
        if reason:
            detail += f": {reason}"
        super().__init__(detail)

    @property
    def is_transient(self) -> bool:
        if self._transient is not None:
            return self._transient
        return self.status is None or self.status in (502, 503, 504)


class RequestCancelled(HomeScoutError):
    """The caller went away; no further upstream calls should be made."""
