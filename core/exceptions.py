# core/exceptions.py
"""
Centralized exception definitions for MailTrack Pro.

The dispatcher never lets these escape to its callers; they describe what
went wrong inside a single credential attempt, or in the layers around it
(persistence).
"""

from typing import Optional


# ============================================================
# Base Exceptions
# ============================================================

class MailTrackError(Exception):
    """
    Root base exception for the entire application.
    All custom exceptions should inherit from this.
    """
    pass


class LLMError(MailTrackError):
    """
    Base exception for inference service failures.

    `status_code` mirrors the HTTP status reported by the service, if any,
    so the quota classifier can inspect it without knowing the SDK.
    """

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


# ============================================================
# Inference Related
# ============================================================

class QuotaExceededError(LLMError):
    """
    Raised when the service rejects a call because of rate/usage limits.
    """

    def __init__(self, message: str = "quota exceeded", status_code: Optional[int] = 429):
        super().__init__(message, status_code=status_code)


class ProviderError(LLMError):
    """
    Raised when the inference service returns an empty, malformed or
    schema-violating response.
    """
    pass


# ============================================================
# Application Layers
# ============================================================

class PersistenceError(MailTrackError):
    """
    Raised when the email store cannot be read or written.
    """
    pass


