"""Pydantic schemas for the authentication endpoints."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class _CamelCaseModel(BaseModel):
    # The frontend speaks camelCase (userId, newPassword); snake_case is accepted too.
    model_config = ConfigDict(populate_by_name=True)


# --- Requests ---

class UserCreate(BaseModel):
    """Data required to register a new user."""
    username: str = Field(..., min_length=1, max_length=150)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=1, max_length=72, description="bcrypt only uses the first 72 bytes")


class OTPVerification(_CamelCaseModel):
    user_id: int = Field(..., alias="userId")
    otp: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    """Either `username` or `email` identifies the account; `username` wins when both are sent."""
    username: Optional[str] = None
    email: Optional[str] = None
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., min_length=3)


class ResetPasswordRequest(_CamelCaseModel):
    user_id: int = Field(..., alias="userId")
    otp: str = Field(..., min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=1, max_length=72)


class ResendOTPRequest(_CamelCaseModel):
    user_id: int = Field(..., alias="userId")


# --- Responses ---

class MessageResponse(BaseModel):
    message: str


class UserIdResponse(_CamelCaseModel):
    """Returned by register and forgot-password: the id the client echoes back with the OTP."""
    message: str
    user_id: int = Field(..., alias="userId")


class UserSummary(BaseModel):
    id: int
    username: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    message: str = "Login successful"
    token: str
    user: UserSummary

