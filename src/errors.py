"""
Domain exceptions for the claims backend.

Every exception carries an ``error_code`` and the HTTP status the API layer
maps it to. Handlers in ``src.api.app`` turn them into ``ErrorResponse``
bodies.
"""
from typing import Optional, Dict, Any


class ClaimsServiceError(Exception):
    """Base exception for the claims backend."""

    error_code: str = "CLAIMS_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(ClaimsServiceError):
    """No valid session."""

    error_code = "UNAUTHENTICATED"
    status_code = 401


class AuthorizationError(ClaimsServiceError):
    """Valid session without the required capability."""

    error_code = "PERMISSION_DENIED"
    status_code = 403


class ValidationError(ClaimsServiceError):
    """Malformed or missing input."""

    error_code = "INVALID_ARGUMENT"
    status_code = 400


class NotFoundError(ClaimsServiceError):
    """Requested account does not exist or is not of the expected kind."""

    error_code = "NOT_FOUND"
    status_code = 404


class ProviderError(ClaimsServiceError):
    """
    Raw failure reported by the identity provider.

    ``code`` uses the provider's error codes (``auth/email-already-exists``,
    ``auth/invalid-email``, ...).
    """

    error_code = "PROVIDER_ERROR"
    status_code = 502

    def __init__(self, code: str, message: str):
        self.code = code
        super().__init__(message, {"code": code})


class UpstreamProviderError(ClaimsServiceError):
    """Provider failure translated into a user-facing message."""

    error_code = "UPSTREAM_ERROR"
    status_code = 502

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message, {"code": code} if code else None)


class ClaimsAttachmentError(ClaimsServiceError):
    """Account created but its claims could not be attached."""

    error_code = "PARTIAL_FAILURE"
    status_code = 502

    def __init__(self, message: str, account_id: str, result: Any = None):
        self.account_id = account_id
        self.result = result
        super().__init__(message, {"uid": account_id})
