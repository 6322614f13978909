"""
SQLAlchemy database schema for the Lending Library.

The tables mirror the Pydantic models in ``lending_library.models``. Several
lending rules are enforced by the database as well as by code, so that a bug
in one code path cannot leave the data inconsistent:

- ``books``: 0 <= available_copies <= total_copies
- ``loans``: due_date >= loan_date, 0 <= renewal_count <= 2
- ``loans``: one pending/active/overdue loan per (user, book), through a
  partial unique index
- ``reviews``: one review per (user, book), rating between 1 and 5
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func

from ..models.book import BookStatus
from ..models.loan import LoanStatus
from ..models.notification import NotificationPriority, NotificationType
from ..models.user import UserRole

Base = declarative_base()


def _enum(enum_cls, name: str) -> Enum:
    # Store the lowercase values rather than the member names
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


_OPEN_LOAN_CLAUSE = text("status IN ('pending', 'active', 'overdue')")


class User(Base):
    """Users table - library accounts (credentials live upstream)."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    role = Column(_enum(UserRole, "user_role"), nullable=False, default=UserRole.STUDENT)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    loans = relationship("Loan", back_populates="user", foreign_keys="Loan.user_id")
    reviews = relationship("Review", back_populates="user")
    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_user_email", "email"),
        Index("idx_user_role", "role"),
    )

    @validates("email")
    def normalize_email(self, key, value):  # noqa: ARG002
        return value.strip().lower() if value else value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Book(Base):
    """
    Books table - the catalog, and the copy counter for each title.

    ``available_copies`` is written only by ``BookRepository``.
    """

    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False, index=True)
    author = Column(String(200), nullable=False, index=True)
    isbn = Column(String(13), nullable=True, unique=True)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)
    status = Column(_enum(BookStatus, "book_status"), nullable=False, default=BookStatus.AVAILABLE)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=True, default=func.now(), onupdate=func.now())

    loans = relationship("Loan", back_populates="book")
    reviews = relationship("Review", back_populates="book", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_book_category", "category"),
        Index("idx_book_status", "status"),
        Index("idx_book_availability", "available_copies"),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceed_total"
        ),
    )


class Loan(Base):
    """
    Loans table - one row per loan request, through its whole lifecycle.

    Status changes are made with guarded UPDATEs in ``LoanRepository``.
    """

    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    status = Column(_enum(LoanStatus, "loan_status"), nullable=False, default=LoanStatus.PENDING)
    loan_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    return_date = Column(Date, nullable=True)
    renewal_count = Column(Integer, nullable=False, default=0)
    notes = Column(Text, nullable=True)
    return_condition = Column(String(20), nullable=True)
    returned_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    penalty_amount = Column(Float, nullable=False, default=0.0)
    penalty_reason = Column(Text, nullable=True)
    penalty_waived = Column(Boolean, nullable=False, default=False)

    # Set by the maintenance jobs so each message goes out once per loan
    reminder_sent = Column(Boolean, nullable=False, default=False)
    overdue_notified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="loans", foreign_keys=[user_id])
    book = relationship("Book", back_populates="loans")

    __table_args__ = (
        Index("idx_loan_user", "user_id"),
        Index("idx_loan_book", "book_id"),
        Index("idx_loan_status", "status"),
        Index("idx_loan_due_date", "due_date"),
        Index(
            "uq_loan_open_user_book",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=_OPEN_LOAN_CLAUSE,
            postgresql_where=_OPEN_LOAN_CLAUSE,
        ),
        CheckConstraint("due_date >= loan_date", name="check_due_after_loan"),
        CheckConstraint("renewal_count >= 0 AND renewal_count <= 2", name="check_renewal_limit"),
        CheckConstraint("penalty_amount >= 0", name="check_penalty_non_negative"),
    )


class Review(Base):
    """Reviews table - one rating per user and book."""

    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="reviews")
    book = relationship("Book", back_populates="reviews")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_review_user_book"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="check_rating_range"),
        Index("idx_review_book", "book_id"),
    )


class Notification(Base):
    """Notifications table - messages for users, written after the fact."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(_enum(NotificationType, "notification_type"), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(
        _enum(NotificationPriority, "notification_priority"),
        nullable=False,
        default=NotificationPriority.NORMAL,
    )
    related_entity_type = Column(String(50), nullable=True)
    related_entity_id = Column(Integer, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=func.now())

    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index("idx_notification_user", "user_id"),
        Index("idx_notification_user_unread", "user_id", "is_read"),
    )
