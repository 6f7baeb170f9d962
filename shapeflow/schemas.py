from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

Role = Literal["user", "admin"]
Theme = Literal["light", "dark"]

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128


def _check_password_length(value: str) -> str:
    if len(value) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(value) > PASSWORD_MAX_LENGTH:
        raise ValueError("Password too long")
    return value


class RegisterRequest(BaseModel):
    """
    Registration payload validation.

    - EmailStr uses email-validator library for RFC-compliant validation
    - confirmPassword must repeat password exactly
    """
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str
    confirm_password: str = Field(alias="confirmPassword")

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_length(v)

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    """
    Login payload validation.

    Only the shape is checked here; length rules are not applied so a
    short wrong password gets the same answer as any other wrong password.
    """
    email: EmailStr
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class CreateUserRequest(BaseModel):
    email: EmailStr
    password: str
    role: Role = "user"

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_length(v)


class UpdateRoleRequest(BaseModel):
    role: Role


class UpdatePasswordRequest(BaseModel):
    password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password_length(v)


class PreferencesRequest(BaseModel):
    theme: Theme


class PreferencesResponse(BaseModel):
    theme: Theme


class UserResponse(BaseModel):
    """
    Safe user representation for API responses.

    Critical: Never include password_hash in any response.
    """
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    email: str
    role: Role
    theme: Optional[Theme] = None
    created_at: datetime = Field(serialization_alias="createdAt")


class AuthCheckResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    authenticated: bool
    user_id: Optional[str] = Field(default=None, serialization_alias="userId")
    email: Optional[str] = None
    role: Optional[Role] = None


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str = Field(serialization_alias="userId")
    action: str
    entity_type: str = Field(serialization_alias="entityType")
    entity_id: Optional[str] = Field(default=None, serialization_alias="entityId")
    details: Optional[str] = None
    ip_address: Optional[str] = Field(default=None, serialization_alias="ipAddress")
    user_agent: Optional[str] = Field(default=None, serialization_alias="userAgent")
    created_at: datetime = Field(serialization_alias="createdAt")


class SuccessResponse(BaseModel):
    """
    Generic response for operations without specific return data.
    """
    success: bool = True
    message: Optional[str] = None
