"""
Error taxonomy shared by the store, the credential issuer and the routes.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class FeedbackServiceError(Exception):
    """Base exception for feedback service failures."""

    ERROR_CODE = "FEEDBACK_001"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.ERROR_CODE
        self.details = details or {}


class ValidationError(FeedbackServiceError):
    """Raised when a required request field is missing or malformed."""

    ERROR_CODE = "VALIDATION_001"


class EmptyInputError(FeedbackServiceError):
    """Raised when a batch operation receives an empty batch."""

    ERROR_CODE = "EMPTY_INPUT_001"


class WriteError(FeedbackServiceError):
    """Raised when a write transaction fails and is rolled back."""

    ERROR_CODE = "DB_WRITE_001"


class ReadError(FeedbackServiceError):
    """Raised when a query against the store fails."""

    ERROR_CODE = "DB_READ_001"


class CredentialServiceError(FeedbackServiceError):
    """Raised when the identity service refuses or cannot issue credentials."""

    ERROR_CODE = "STS_001"


class ObjectStoreError(FeedbackServiceError):
    """Raised when an object-store call fails."""

    ERROR_CODE = "OSS_001"

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, details={"path": path} if path else None)
        self.path = path
