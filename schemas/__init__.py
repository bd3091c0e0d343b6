from .auth_schema import RegisterRequest, LoginRequest, InviteRequest, ChangePasswordRequest
from .note_schema import NoteCreate, NoteUpdate
from .subscription_schema import UpgradeRequest, VerifyPaymentRequest

__all__ = [
    # Auth
    "RegisterRequest", "LoginRequest", "InviteRequest", "ChangePasswordRequest",

    # Notes
    "NoteCreate", "NoteUpdate",

    # Subscription
    "UpgradeRequest", "VerifyPaymentRequest",
]
