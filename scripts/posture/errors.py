"""Exceptions raised by the posture collector."""

from __future__ import annotations

from typing import Optional


class PostureError(Exception):
    """Base exception for the posture collector."""


class ConfigurationError(PostureError):
    """Raised when required configuration is missing or inconsistent."""


class AuthenticationError(PostureError):
    """Raised when the private key cannot be used or the token exchange fails."""


class RateLimitError(PostureError):
    """Raised when the API quota cannot be waited out."""


class CancellationError(PostureError):
    """Raised when the run is cancelled or its deadline passes."""


class RemoteRequestError(PostureError):
    """Raised on a non-success, non-quota response from the Okta API."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        error_summary: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.error_summary = error_summary


class CollectorRunError(PostureError):
    """A run failure classified for the host: config, network or cancelled."""

    def __init__(self, category: str, message: str) -> None:
        super().__init__(f"{category}: {message}")
        self.category = category
        self.message = message
