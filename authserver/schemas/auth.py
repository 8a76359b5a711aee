"""
Auth schemas: request bodies and responses for registration, OTP, login,
OAuth, token refresh and password reset.

The wire format is camelCase (userId, newPassword, accessToken, ...); fields
are snake_case in Python and mapped with an alias generator.
"""
import uuid
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # Emails are stored lower-cased; normalise on the way in
    @field_validator("email", check_fields=False)
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if isinstance(v, str) else v


class RegisterRequest(CamelModel):
    name: Optional[str] = None
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_valid(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters long")
        if len(v.encode("utf-8")) > 72:
            raise ValueError("Password too long (bcrypt max 72 bytes)")
        return v


class VerifyOTPRequest(CamelModel):
    otp: str
    email: EmailStr
    user_id: uuid.UUID


class ResendOTPRequest(CamelModel):
    email: EmailStr
    user_id: uuid.UUID


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class GoogleAuthRequest(CamelModel):
    email: Optional[str] = None
    name: Optional[str] = None
    google_id: Optional[Union[int, str]] = None
    image: Optional[str] = None


class GitHubAuthRequest(CamelModel):
    email: Optional[str] = None
    name: Optional[str] = None
    github_id: Optional[Union[int, str]] = None
    image: Optional[str] = None
    access_token: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str
    # Length rules live in password_service so every caller gets them
    new_password: str


class MessageResponse(BaseModel):
    message: str
