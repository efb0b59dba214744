"""
ERRORS
======

Exceptions raised by the services and turned into `{"error": ...}` JSON
responses by the route handlers in zeno.main. Each carries the HTTP status the
caller should see.
"""

from typing import Optional


class ZenoError(Exception):
    """Base class for request-level failures that map to an HTTP status."""

    status_code = 500
    error_type = "internal"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(ZenoError):
    """A provider credential is missing from the process environment."""

    status_code = 500
    error_type = "configuration"


class ProviderError(ZenoError):
    """The upstream provider answered with a non-success status or could not be reached."""

    status_code = 502
    error_type = "provider"


class InvalidImageModelError(ZenoError):
    status_code = 400
    error_type = "validation"

    def __init__(self, model_id: str):
        super().__init__(f"Invalid image model ID: {model_id}")
        self.model_id = model_id


__all__ = [
    "ZenoError",
    "ConfigurationError",
    "ProviderError",
    "InvalidImageModelError",
]
