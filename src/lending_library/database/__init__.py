"""
Database layer for the Lending Library.

- schema: SQLAlchemy tables and constraints
- session: engine, sessions and error-translating commit/query helpers
- repositories: one per aggregate; the loan repository is the lifecycle engine
"""

from .book_repository import BookRepository, BookSearchParams, BookSortOptions
from .loan_repository import LoanFilters, LoanRepository
from .notification_repository import NotificationOutbox, NotificationRepository
from .repository import PaginatedResponse, PaginationParams
from .review_repository import ReviewRepository
from .schema import Base, Book, Loan, Notification, Review, User
from .session import (
    DatabaseManager,
    get_db_manager,
    get_session,
    reset_db_manager,
    safe_commit,
    safe_query,
    session_scope,
)
from .user_repository import UserRepository

__all__ = [
    "Base",
    "Book",
    "BookRepository",
    "BookSearchParams",
    "BookSortOptions",
    "DatabaseManager",
    "Loan",
    "LoanFilters",
    "LoanRepository",
    "Notification",
    "NotificationOutbox",
    "NotificationRepository",
    "PaginatedResponse",
    "PaginationParams",
    "Review",
    "ReviewRepository",
    "User",
    "UserRepository",
    "get_db_manager",
    "get_session",
    "reset_db_manager",
    "safe_commit",
    "safe_query",
    "session_scope",
]
