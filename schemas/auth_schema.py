# auth_schema.py

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from core.permissions import UserRole


# ---------------------------
# Register & Login
# ---------------------------
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    name: str = Field(..., min_length=1, max_length=100)
    account_name: str = Field(..., alias="accountName", min_length=1, max_length=60)

    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


# ---------------------------
# Account management
# ---------------------------
class InviteRequest(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.MEMBER


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=6, max_length=128)

    model_config = ConfigDict(populate_by_name=True)

