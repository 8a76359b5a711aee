"""
User schemas: the public user payload and the auth responses that carry it.
"""
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional


class UserOut(BaseModel):
    """
    Public-safe user representation, serialized camelCase.
    password_hash is never included: Pydantic only exposes fields declared here.
    """
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: Optional[str] = None
    email: str
    is_email_verified: bool

    # UUID → str conversion for JSON serialization
    @field_validator("id", mode="before")
    @classmethod
    def uuid_to_str(cls, v) -> str:
        return str(v)


class RegisteredUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str

    @field_validator("id", mode="before")
    @classmethod
    def uuid_to_str(cls, v) -> str:
        return str(v)


class RegisterResponse(BaseModel):
    message: str
    user: RegisteredUser


class AuthResponse(BaseModel):
    """Returned with the refresh cookie after login, OAuth and refresh."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: Optional[str] = None
    access_token: str
    user: UserOut


class SessionResponse(BaseModel):
    user: Optional[dict] = None
