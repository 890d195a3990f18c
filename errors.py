#!/usr/bin/env python3
"""Common error types shared across modules.

Provides shared lightweight exceptions to avoid circular imports.
"""

from typing import Any, List, Optional


class KingdomReportError(Exception):
    """Base class for failures the CLI reports and exits on."""


class ConfigurationError(KingdomReportError):
    """Raised when a required secret or setting is missing.

    Attributes:
        missing: Names of the settings that were absent or blank.
    """

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(message)
        self.missing = list(missing or [])


class CompletionError(KingdomReportError):
    """Raised when the completion API keeps failing after all retries.

    Attributes:
        purpose: Label of the call that failed (usually a section key).
        attempts: Number of attempts made.
        last_error: The final underlying exception, if any.
    """

    def __init__(self, message: str, purpose: str = "generic", attempts: int = 0, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.purpose = purpose
        self.attempts = attempts
        self.last_error = last_error


class DeliveryError(KingdomReportError):
    """Raised when a push/email/bot API rejects a request."""

    def __init__(self, message: str, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body


class SubscriberSourceError(KingdomReportError):
    """Raised when the forms API cannot produce a subscriber list."""


__all__ = [
    "KingdomReportError",
    "ConfigurationError",
    "CompletionError",
    "DeliveryError",
    "SubscriberSourceError",
]
