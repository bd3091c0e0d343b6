# core/errors.py
"""
Domain error taxonomy.

Every error carries the HTTP status it maps to and an optional ``errors``
payload (field list or structured hint) for the response envelope.
"""
from typing import Any, Optional


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Any = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


# ------------------------------
# 401
# ------------------------------
class Unauthenticated(AppError):
    status_code = 401
    default_message = "Authentication required"


class InvalidToken(Unauthenticated):
    default_message = "Invalid token format"


class ExpiredToken(Unauthenticated):
    default_message = "Token has expired"


# ------------------------------
# 403
# ------------------------------
class Forbidden(AppError):
    status_code = 403
    default_message = "Insufficient permissions"


class CrossTenantAccess(Forbidden):
    default_message = "Access denied - you do not belong to this tenant"


class AccountSuspended(Forbidden):
    default_message = "Account is suspended"


class AccountDeleted(Forbidden):
    default_message = "Account has been deleted"


class AccountInactive(Forbidden):
    default_message = "Account must be active to upgrade"


class QuotaExceeded(Forbidden):
    default_message = "Note limit exceeded for your current plan"

    def __init__(self, current_plan: str, note_count: int, max_notes: int):
        super().__init__(
            errors={
                "currentPlan": current_plan,
                "noteCount": note_count,
                "maxNotes": max_notes,
                "upgradeRequired": True,
            }
        )


# ------------------------------
# 404
# ------------------------------
class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class TenantNotFound(NotFound):
    default_message = "Tenant not found"


class PaymentNotFound(NotFound):
    default_message = "Payment record not found"


# ------------------------------
# 400 / 409
# ------------------------------
class ValidationFailed(AppError):
    status_code = 400
    default_message = "Validation error"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(message, errors=[{"field": field, "message": message}])


class AlreadyPro(AppError):
    status_code = 400
    default_message = "Account is already on Pro plan"


class PaymentVerificationFailed(AppError):
    status_code = 400
    default_message = "Payment verification failed"


class SignatureInvalid(PaymentVerificationFailed):
    pass


class Conflict(AppError):
    status_code = 409
    default_message = "Resource already exists"


# ------------------------------
# 500
# ------------------------------
class ServiceError(AppError):
    status_code = 500


class GatewayError(ServiceError):
    default_message = "Payment service unavailable"
