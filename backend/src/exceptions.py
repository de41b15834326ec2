"""Application exception hierarchy.

Every API-facing error carries a machine-readable ``error_code``, a
human-readable ``message``, an HTTP ``status_code`` and optional ``details``.
The global exception handler renders them as ``ErrorResponse`` bodies.
"""

from typing import Any, Optional


class BaseAPIException(Exception):
    """Base class for all API exceptions."""

    error_code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code


# ============================================================================
# Generic
# ============================================================================


class ResourceNotFoundError(BaseAPIException):
    error_code = "RESOURCE_NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} not found: {identifier}",
            details={"resource": resource, "identifier": identifier},
        )


class DatabaseError(BaseAPIException):
    error_code = "DATABASE_ERROR"
    status_code = 500

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message)


# ============================================================================
# Authentication
# ============================================================================


class MissingTokenError(BaseAPIException):
    error_code = "MISSING_TOKEN"
    status_code = 401

    def __init__(self, message: str = "Authorization token is required"):
        super().__init__(message)


class InvalidTokenError(BaseAPIException):
    error_code = "INVALID_TOKEN"
    status_code = 401

    def __init__(self, message: str = "Invalid authorization token"):
        super().__init__(message)


class InvalidApiKeyError(BaseAPIException):
    error_code = "INVALID_API_KEY"
    status_code = 401

    def __init__(self, message: str = "Invalid or missing API key"):
        super().__init__(message)


class WebhookSignatureError(BaseAPIException):
    error_code = "INVALID_WEBHOOK_SIGNATURE"
    status_code = 400

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message)


# ============================================================================
# Component errors (raised by ledger / account / resolver, translated by the gate)
# ============================================================================


class NoAccessError(Exception):
    """Tier resolution found no paid credit and no free trial left."""

    def __init__(self, reason: str = "Out of free trials and credits"):
        super().__init__(reason)
        self.reason = reason


class InsufficientCreditsError(Exception):
    """A debit would take the balance below zero."""

    def __init__(self, user_id: str, requested: int, balance: Optional[int] = None):
        super().__init__(
            f"Insufficient credits for {user_id}: requested {requested}, balance {balance}"
        )
        self.user_id = user_id
        self.requested = requested
        self.balance = balance


class UsageLimitReachedError(Exception):
    """A usage ledger increment hit the period limit."""

    def __init__(self, user_id: str, action_kind: str, limit: int):
        super().__init__(f"Usage limit reached for {user_id}/{action_kind} ({limit})")
        self.user_id = user_id
        self.action_kind = action_kind
        self.limit = limit


class PrincipalNotFoundError(Exception):
    """The backing store has no principal with this id."""

    def __init__(self, user_id: str):
        super().__init__(f"Principal not found: {user_id}")
        self.user_id = user_id


# ============================================================================
# Generation denials (the only errors the entitlement gate lets out)
# ============================================================================


class GenerationDeniedError(BaseAPIException):
    """Base for entitlement denials. ``reason`` is the public reason code."""

    reason: str = "internal_error"
    error_code = "GENERATION_DENIED"

    def __init__(
        self,
        message: str,
        retry_after_seconds: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        details = {"reason": self.reason, **(details or {})}
        if retry_after_seconds is not None:
            details["retry_after_seconds"] = retry_after_seconds
        super().__init__(message, details=details)
        self.retry_after_seconds = retry_after_seconds


class RateLimitedError(GenerationDeniedError):
    reason = "rate_limited"
    error_code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, retry_after_seconds: int, limit: int):
        super().__init__(
            f"Rate limit exceeded. Try again after {retry_after_seconds} seconds.",
            retry_after_seconds=retry_after_seconds,
            details={"limit": limit},
        )


class NoCreditsError(GenerationDeniedError):
    reason = "no_credits"
    error_code = "NO_CREDITS"
    status_code = 402

    def __init__(
        self,
        message: str = "Out of free trials and credits. Please upgrade to continue.",
    ):
        super().__init__(message, details={"upgrade_required": True})


class InvalidPrincipalError(GenerationDeniedError):
    reason = "invalid_principal"
    error_code = "INVALID_PRINCIPAL"
    status_code = 403

    def __init__(self, message: str = "Account is not allowed to generate"):
        super().__init__(message)


class EntitlementInternalError(GenerationDeniedError):
    reason = "internal_error"
    error_code = "ENTITLEMENT_UNAVAILABLE"
    status_code = 503

    def __init__(self, message: str = "Unable to verify entitlement. Please try again."):
        super().__init__(message)


# ============================================================================
# External services
# ============================================================================


class LLMTimeoutError(BaseAPIException):
    error_code = "LLM_TIMEOUT"
    status_code = 504

    def __init__(self, provider: str, timeout_seconds: float):
        super().__init__(
            f"LLM provider {provider} timed out after {timeout_seconds}s",
            details={"provider": provider, "timeout_seconds": timeout_seconds},
        )


class InvalidModelError(BaseAPIException):
    error_code = "INVALID_MODEL"
    status_code = 400

    def __init__(self, model: str, provider: str, valid_models: list[str]):
        super().__init__(
            f"Model '{model}' is not allowed",
            details={"model": model, "provider": provider, "valid_models": valid_models},
        )


class GrantNotFoundError(ResourceNotFoundError):
    """Grant token is unknown, owned by someone else, expired or already settled."""

    error_code = "GRANT_NOT_FOUND"

    def __init__(self, grant_token: str):
        super().__init__("Generation grant", grant_token)


class GenerationFailedError(BaseAPIException):
    error_code = "GENERATION_FAILED"
    status_code = 502

    def __init__(self, message: str = "Design system generation failed", refunded: bool = False):
        super().__init__(message, details={"refunded": refunded})
        self.refunded = refunded
