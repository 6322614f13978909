"""
Lending policy rules.

These are plain functions over plain values: they never touch the database,
so they can be called from a UI pre-check, from the lifecycle engine inside
a transaction, or from a test without any fixtures. The repository layer
gathers the facts (counts, book row) and hands them over.
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class LoanPolicy(BaseModel):
    """Lending limits and rates."""

    model_config = ConfigDict(frozen=True)

    loan_period_days: int = 14
    max_loans_per_user: int = 5
    max_renewals: int = 2
    renewal_extension_days: int = 7
    penalty_per_day: float = 0.25
    max_penalty: float = 20.0


DEFAULT_POLICY = LoanPolicy()


class BorrowFacts(BaseModel):
    """What the borrow rules need to know about a user and a book."""

    book_exists: bool
    book_deleted: bool = False
    book_circulating: bool = True
    available_copies: int = 0
    outstanding_loans: int = 0
    has_outstanding_loan_for_book: bool = False
    has_pending_request_for_book: bool = False


class EligibilityResult(BaseModel):
    """Structured answer to "may this user borrow this book?"."""

    can_borrow: bool
    reason: str | None = None
    code: str | None = None
    loans_remaining: int = 0


def evaluate_borrow_eligibility(
    facts: BorrowFacts, policy: LoanPolicy = DEFAULT_POLICY
) -> EligibilityResult:
    """
    Apply the borrow rules in order and report the first one that fails.

    Order: book present, book in circulation, copies available, loan limit,
    duplicate loan, duplicate pending request.
    """
    remaining = max(0, policy.max_loans_per_user - facts.outstanding_loans)

    if not facts.book_exists or facts.book_deleted:
        return EligibilityResult(
            can_borrow=False, reason="Book not found", code="book_not_found"
        )

    if not facts.book_circulating:
        return EligibilityResult(
            can_borrow=False,
            reason="This book is not in circulation",
            code="book_unavailable",
            loans_remaining=remaining,
        )

    if facts.available_copies <= 0:
        return EligibilityResult(
            can_borrow=False,
            reason="No copies of this book are currently available",
            code="book_unavailable",
            loans_remaining=remaining,
        )

    if facts.outstanding_loans >= policy.max_loans_per_user:
        return EligibilityResult(
            can_borrow=False,
            reason=f"Loan limit reached ({policy.max_loans_per_user} max)",
            code="loan_limit_exceeded",
            loans_remaining=0,
        )

    if facts.has_outstanding_loan_for_book:
        return EligibilityResult(
            can_borrow=False,
            reason="You already have this book on loan",
            code="duplicate_loan",
            loans_remaining=remaining,
        )

    if facts.has_pending_request_for_book:
        return EligibilityResult(
            can_borrow=False,
            reason="You already have a pending request for this book",
            code="duplicate_loan",
            loans_remaining=remaining,
        )

    return EligibilityResult(can_borrow=True, loans_remaining=remaining)


def can_renew(renewal_count: int, policy: LoanPolicy = DEFAULT_POLICY) -> bool:
    return renewal_count < policy.max_renewals


def days_overdue(due_date: date, as_of: date) -> int:
    """Whole days between the due date and ``as_of``; never negative."""
    return max(0, (as_of - due_date).days)


class PenaltyQuote(BaseModel):
    """Penalty derived from a loan's dates."""

    loan_id: int | None = None
    due_date: date
    as_of: date
    days_overdue: int = Field(ge=0)
    daily_rate: float = Field(ge=0.0)
    amount: float = Field(ge=0.0)
    capped: bool = False


def quote_penalty(
    due_date: date,
    as_of: date,
    policy: LoanPolicy = DEFAULT_POLICY,
    loan_id: int | None = None,
) -> PenaltyQuote:
    """Compute the penalty for a loan due on ``due_date`` as of ``as_of``."""
    late = days_overdue(due_date, as_of)
    raw = round(late * policy.penalty_per_day, 2)
    amount = min(raw, policy.max_penalty)
    return PenaltyQuote(
        loan_id=loan_id,
        due_date=due_date,
        as_of=as_of,
        days_overdue=late,
        daily_rate=policy.penalty_per_day,
        amount=amount,
        capped=raw > policy.max_penalty,
    )
