"""Authentication schemas."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class LoginRequest(BaseModel):
    """Login request body."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RegisterRequest(BaseModel):
    """Registration request body (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    confirm_password: str = Field(..., alias="confirmPassword", min_length=1, max_length=128)


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., alias="currentPassword", min_length=1, max_length=128)
    new_password: str = Field(..., alias="newPassword", min_length=1, max_length=128)


class PasswordStrengthRequest(BaseModel):
    password: str = Field(..., max_length=128)
