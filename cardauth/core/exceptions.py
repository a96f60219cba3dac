from typing import Any, Dict, Optional
from fastapi import HTTPException, status
from .responses import error_response


class CustomHTTPException(HTTPException):
    def __init__(
        self,
        status_code: int,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            status_code=status_code,
            detail=error_response(message, status_code, details)
        )


class UnauthorizedWebhook(CustomHTTPException):
    def __init__(self, message: str, reason: str):
        super().__init__(status.HTTP_401_UNAUTHORIZED, message, {"reason": reason})


class ForbiddenOrigin(CustomHTTPException):
    def __init__(self, message: str, reason: str):
        super().__init__(status.HTTP_403_FORBIDDEN, message, {"reason": reason})


class CardAuthError(Exception):
    """Base exception for authorization engine errors."""


class CardNotFoundError(CardAuthError):
    """Raised when a card id does not resolve to a stored card."""


class LimitExceededError(CardAuthError):
    """Raised when the storage layer refuses a conditional spend increment."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class AuthorizationTimeout(CardAuthError):
    """Raised when the authorization deadline passes."""

    def __init__(self, stage: str):
        super().__init__(f"Authorization deadline exceeded during {stage}")
        self.stage = stage


class ProviderNotConfiguredError(CardAuthError):
    """Raised when a webhook names a provider with no configuration."""


class IdempotencyConflict(CardAuthError):
    """Raised when a retry arrives while the first attempt is still in flight."""
