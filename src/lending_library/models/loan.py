"""
Loan models and the loan state machine.

A loan moves through a closed set of statuses. The legal moves are listed
once, in ``TRANSITIONS``, and every lifecycle operation asks ``transition``
for the target status instead of comparing status strings itself:

    pending --validate--> active
    pending --refuse----> refused
    pending --cancel----> cancelled
    active  --return----> returned
    overdue --return----> returned
    active  --mark_overdue--> overdue
    active/overdue --renew--> active

Terminal statuses: returned, refused, cancelled.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..errors import AlreadyReturned, InvalidStateTransition, LoanNotActive


class LoanStatus(str, Enum):
    """Status of a loan."""

    PENDING = "pending"
    ACTIVE = "active"
    OVERDUE = "overdue"
    RETURNED = "returned"
    REFUSED = "refused"
    CANCELLED = "cancelled"


class LoanEvent(str, Enum):
    """Events that move a loan between statuses."""

    VALIDATE = "validate"
    REFUSE = "refuse"
    CANCEL = "cancel"
    RETURN = "return"
    MARK_OVERDUE = "mark_overdue"
    RENEW = "renew"


TERMINAL_STATUSES = frozenset({LoanStatus.RETURNED, LoanStatus.REFUSED, LoanStatus.CANCELLED})

# A user holds at most one loan per book in these statuses
OPEN_STATUSES = (LoanStatus.PENDING, LoanStatus.ACTIVE, LoanStatus.OVERDUE)

# Loans that hold a copy of the book
OUTSTANDING_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE)

TRANSITIONS: dict[tuple[LoanStatus, LoanEvent], LoanStatus] = {
    (LoanStatus.PENDING, LoanEvent.VALIDATE): LoanStatus.ACTIVE,
    (LoanStatus.PENDING, LoanEvent.REFUSE): LoanStatus.REFUSED,
    (LoanStatus.PENDING, LoanEvent.CANCEL): LoanStatus.CANCELLED,
    (LoanStatus.ACTIVE, LoanEvent.RETURN): LoanStatus.RETURNED,
    (LoanStatus.OVERDUE, LoanEvent.RETURN): LoanStatus.RETURNED,
    (LoanStatus.ACTIVE, LoanEvent.MARK_OVERDUE): LoanStatus.OVERDUE,
    (LoanStatus.ACTIVE, LoanEvent.RENEW): LoanStatus.ACTIVE,
    (LoanStatus.OVERDUE, LoanEvent.RENEW): LoanStatus.ACTIVE,
}


def allowed_sources(event: LoanEvent) -> tuple[LoanStatus, ...]:
    """Statuses from which ``event`` is legal, in declaration order."""
    return tuple(source for (source, ev) in TRANSITIONS if ev == event)


def transition(current: LoanStatus | str, event: LoanEvent, loan_id: int | None = None) -> LoanStatus:
    """
    Return the status a loan moves to when ``event`` happens.

    Raises:
        AlreadyReturned: returning a loan that is already returned
        LoanNotActive: renewing a loan that is neither active nor overdue
        InvalidStateTransition: any other move missing from the table
    """
    current = LoanStatus(current)
    target = TRANSITIONS.get((current, event))
    if target is not None:
        return target

    if event == LoanEvent.RETURN and current == LoanStatus.RETURNED:
        raise AlreadyReturned(loan_id)
    if event == LoanEvent.RENEW:
        raise LoanNotActive(loan_id, current)
    raise InvalidStateTransition(event.value, allowed_sources(event), current)


class Loan(BaseModel):
    """
    A loan as returned to callers, joined with book and user display fields.
    """

    id: int
    user_id: int
    book_id: int
    status: LoanStatus
    loan_date: date
    due_date: date
    return_date: date | None = None
    renewal_count: int = Field(default=0, ge=0, le=2)
    notes: str | None = Field(default=None, max_length=1000)
    return_condition: str | None = None
    returned_by: int | None = None
    processed_by: int | None = None
    penalty_amount: float = Field(default=0.0, ge=0.0)
    penalty_reason: str | None = None
    penalty_waived: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # Display fields
    book_title: str | None = None
    book_author: str | None = None
    user_name: str | None = None
    user_email: str | None = None

    @model_validator(mode="after")
    def validate_dates(self) -> "Loan":
        if self.due_date < self.loan_date:
            raise ValueError("Due date cannot be before loan date")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def days_overdue(self, as_of: date | None = None) -> int:
        """Days past the due date, measured at return for returned loans."""
        if self.status not in (*OUTSTANDING_STATUSES, LoanStatus.RETURNED):
            return 0
        end = self.return_date or as_of or date.today()
        return max(0, (end - self.due_date).days)

    model_config = ConfigDict(
        use_enum_values=False,
        json_schema_extra={
            "example": {
                "id": 42,
                "user_id": 7,
                "book_id": 3,
                "status": "active",
                "loan_date": "2024-01-01",
                "due_date": "2024-01-15",
                "renewal_count": 0,
                "book_title": "The Great Gatsby",
            }
        },
    )


class ReturnResult(BaseModel):
    """Outcome of a return: the updated loan plus lateness."""

    loan: Loan
    is_late: bool
    late_days: int = Field(ge=0)


class LoanSummary(BaseModel):
    """Per-user loan counts."""

    user_id: int
    pending: int = 0
    active: int = 0
    overdue: int = 0
    returned: int = 0
    refused: int = 0
    cancelled: int = 0
    loans_remaining: int = 0
    next_due_date: date | None = None
    outstanding_penalties: float = 0.0
