"""Notification models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    LOAN_REQUESTED = "loan_requested"
    LOAN_REQUESTED_ADMIN = "loan_requested_admin"
    LOAN_VALIDATED = "loan_validated"
    LOAN_VALIDATED_ADMIN = "loan_validated_admin"
    LOAN_REFUSED = "loan_refused"
    LOAN_REMINDER = "loan_reminder"
    LOAN_OVERDUE = "loan_overdue"
    LOAN_RETURNED = "loan_returned"
    LOAN_RENEWED = "loan_renewed"
    REVIEW_CREATED = "review_created"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class Notification(BaseModel):
    """A message stored for a user."""

    id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    related_entity_type: str | None = None
    related_entity_id: int | None = None
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class NotificationIntent(BaseModel):
    """A notification to be written once the surrounding transaction commits."""

    user_id: int
    type: NotificationType
    title: str = Field(..., max_length=200)
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    related_entity_type: str | None = None
    related_entity_id: int | None = None
