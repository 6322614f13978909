"""
User models and the acting principal.

Authentication happens upstream; by the time a request reaches a tool handler
or a REST route, the caller has been reduced to an ``Actor`` (id + role) that
this package trusts as given.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserRole(str, Enum):
    STUDENT = "student"
    LIBRARIAN = "librarian"
    ADMIN = "admin"


class Actor(BaseModel):
    """The principal performing an operation."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1)
    role: UserRole = UserRole.STUDENT

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def owns(self, user_id: int) -> bool:
        return self.id == user_id


class User(BaseModel):
    """A library account."""

    id: int
    first_name: str
    last_name: str
    email: EmailStr
    role: UserRole = UserRole.STUDENT
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class UserCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    role: UserRole = UserRole.STUDENT
