"""
Lending Library models.

Pydantic v2 models for the entities exposed by tools and REST routes,
plus the loan state machine:

- Book: catalog entries and availability snapshots
- User / Actor: accounts and the acting principal
- Loan: loan records, transition table, return results
- Notification: stored user messages and post-commit intents
- Review: ratings left by borrowers
"""

from .book import Book, BookAvailability, BookCreate, BookStatus
from .loan import (
    OPEN_STATUSES,
    OUTSTANDING_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
    Loan,
    LoanEvent,
    LoanStatus,
    LoanSummary,
    ReturnResult,
    transition,
)
from .notification import (
    Notification,
    NotificationIntent,
    NotificationPriority,
    NotificationType,
)
from .review import Review, ReviewCreate
from .user import Actor, User, UserCreate, UserRole

__all__ = [
    "OPEN_STATUSES",
    "OUTSTANDING_STATUSES",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "Actor",
    "Book",
    "BookAvailability",
    "BookCreate",
    "BookStatus",
    "Loan",
    "LoanEvent",
    "LoanStatus",
    "LoanSummary",
    "Notification",
    "NotificationIntent",
    "NotificationPriority",
    "NotificationType",
    "ReturnResult",
    "Review",
    "ReviewCreate",
    "User",
    "UserCreate",
    "UserRole",
    "transition",
]
