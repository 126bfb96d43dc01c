from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

TodoState = Literal["INCOMPLETE", "COMPLETE"]


def _strip_required(value: str, field_name: str) -> str:
    s = value.strip()
    if not s:
        raise ValueError(f"{field_name} must not be empty")
    return s


def _check_email(value: str) -> str:
    """Validate the address format and return it exactly as submitted."""
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError(str(exc)) from exc
    return value


class TodoFilter(str, Enum):
    INCOMPLETE = "INCOMPLETE"
    COMPLETE = "COMPLETE"
    ALL = "ALL"


class TodoOrder(str, Enum):
    CREATED_AT = "CREATED_AT"
    COMPLETED_AT = "COMPLETED_AT"
    DESCRIPTION = "DESCRIPTION"


# PUBLIC_INTERFACE
class UserCreate(BaseModel):
    """
    Registration payload. The password policy is checked by UserService.register.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"email": "johnsmith@gmail.com", "password": "abc123!", "name": "John Smith"}
        }
    )

    email: str = Field(..., description="User's unique email")
    password: str = Field(..., min_length=1, description="Minimum 6 characters, one number and one of !@#$%^&*")
    name: str = Field(..., min_length=1, max_length=200, description="User's display name")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v, "name")

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        return _check_email(v)


# PUBLIC_INTERFACE
class LoginRequest(BaseModel):
    """Credentials submitted to /login."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"email": "johnsmith@gmail.com", "password": "abc123!"}}
    )

    email: str
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def validate_email_format(cls, v: str) -> str:
        return _check_email(v)


# PUBLIC_INTERFACE
class UserPublic(BaseModel):
    """Public projection of an identity. Never carries the password hash."""

    id: str = Field(..., description="Unique identifier")
    name: str = Field(..., description="User's name")
    email: str = Field(..., description="User's unique email")


class LoginResponse(BaseModel):
    token: str = Field(..., description="JWT for the logged-in user")
    user: UserPublic


class MeResponse(BaseModel):
    user: UserPublic


class MessageResponse(BaseModel):
    message: str = Field(..., description="Success message")


# PUBLIC_INTERFACE
class MeUpdate(BaseModel):
    """
    Profile update payload for PATCH /me. Field names are camelCase on the wire.
    At least one of newEmail, newName, newPassword must be provided; changing the
    password also requires currentPassword.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {"newName": "John Smith", "newPassword": "n3w-pass!", "currentPassword": "abc123!"}
        },
    )

    new_email: Optional[str] = Field(default=None, description="User's new email")
    new_name: Optional[str] = Field(default=None, min_length=1, max_length=200, description="User's new name")
    new_password: Optional[str] = Field(default=None, min_length=1, description="New password")
    current_password: Optional[str] = Field(default=None, description="Current password")

    @field_validator("new_name")
    @classmethod
    def validate_new_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _strip_required(v, "newName")

    @field_validator("new_email")
    @classmethod
    def validate_new_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _check_email(v)

    @model_validator(mode="after")
    def require_change(self) -> "MeUpdate":
        if self.new_email is None and self.new_name is None and self.new_password is None:
            raise ValueError("at least one of newEmail, newName, newPassword is required")
        return self


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """Schema for creating a new task."""

    model_config = ConfigDict(json_schema_extra={"example": {"description": "Buy milk at the store."}})

    description: str = Field(..., min_length=1, description="Task description")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str) -> str:
        return _strip_required(v, "description")


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for PATCH /todo/{id}. Only provided fields are applied; at least one is required.
    """

    model_config = ConfigDict(json_schema_extra={"example": {"state": "COMPLETE"}})

    state: Optional[TodoState] = Field(default=None, description="Task state")
    description: Optional[str] = Field(default=None, min_length=1, description="Task description")

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _strip_required(v, "description")

    @model_validator(mode="after")
    def require_field(self) -> "TodoUpdate":
        if self.state is None and self.description is None:
            raise ValueError("at least one of state, description is required")
        return self


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """Task as returned by the API (camelCase keys)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "70a134cd-66a3-42ea-8f60-cc2202ec2c71",
                "description": "Buy milk at the store.",
                "state": "COMPLETE",
                "createdAt": "2021-05-12T07:23:45.678Z",
                "completedAt": "2021-05-12T09:01:12.000Z",
                "creatorId": "0b5c7f8e-2f0a-4a57-9f7e-1b2c3d4e5f60",
            }
        },
    )

    id: str = Field(..., description="Unique identifier of the task")
    description: str
    state: TodoState
    created_at: datetime = Field(..., description="Creation timestamp")
    completed_at: Optional[datetime] = Field(default=None, description="Completion timestamp; null unless COMPLETE")
    creator_id: str = Field(..., description="Identifier of the user that created the task")


class ErrorResponse(BaseModel):
    """Structured error body returned for every failed request."""

    statusCode: int
    error: str
    message: str
