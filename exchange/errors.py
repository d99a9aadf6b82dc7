"""
Error types raised by the upstream REST clients and the pipeline.
"""

from __future__ import annotations
from typing import Optional


class ScannerError(Exception):
    """Base class for all scanner errors."""


class FetchError(ScannerError):
    """Non-2xx response, or the request never produced a response (status=None)."""

    def __init__(self, url: str, status: Optional[int] = None, reason: str = ""):
        self.url = url
        self.status = status
        self.reason = reason
        label = status if status is not None else "no response"
        super().__init__(f"{label} {reason} @ {url}".replace("  ", " "))


class DecodeError(ScannerError):
    """Response body is not valid JSON."""

    def __init__(self, url: str, detail: str = ""):
        self.url = url
        self.detail = detail
        super().__init__(f"Invalid JSON @ {url}: {detail}")


class UpstreamUnavailable(ScannerError):
    """An auxiliary upstream service failed entirely."""

    def __init__(self, service: str, cause: Optional[BaseException] = None):
        self.service = service
        self.cause = cause
        msg = f"{service} unavailable"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)
