"""
Loan tools: request, validate, refuse, cancel, return, renew, penalties.

Each handler validates its arguments with a Pydantic input model, opens one
session, calls ``LoanRepository`` and wraps the result in the standard
envelope. Authorization is decided by the repository from the actor fields.
"""

import logging
from datetime import date
from typing import Any

from pydantic import Field

from ..database.loan_repository import LoanFilters, LoanRepository
from ..database.repository import PaginationParams
from ..database.session import get_session
from ..errors import AuthorizationError
from ..jobs import run_overdue_sweep
from ..models.loan import LoanStatus
from ..observability import record_loan_event, trace_tool
from .responses import ActorInput, success, tool_errors

logger = logging.getLogger(__name__)


class LoanIdInput(ActorInput):
    loan_id: int = Field(..., ge=1, description="Loan identifier")


class RequestLoanInput(ActorInput):
    book_id: int = Field(..., ge=1, description="Book to borrow")
    user_id: int | None = Field(
        default=None,
        ge=1,
        description="Borrower; admins may request on behalf of a user, defaults to the actor",
    )
    notes: str | None = Field(default=None, max_length=1000)
    duration_days: int | None = Field(default=None, ge=1, le=60)


class RefuseLoanInput(LoanIdInput):
    reason: str | None = Field(default=None, max_length=500)


class ReturnBookInput(LoanIdInput):
    condition: str = Field(
        default="good",
        pattern=r"^(excellent|good|fair|poor|damaged)$",
        description="Condition of the returned copy",
    )
    notes: str | None = Field(default=None, max_length=1000)


class RenewLoanInput(LoanIdInput):
    extension_days: int | None = Field(default=None, ge=1, le=30)


class MarkOverdueInput(LoanIdInput):
    penalty_amount: float | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)


class ApplyPenaltyInput(LoanIdInput):
    amount: float | None = Field(default=None, ge=0)
    reason: str | None = Field(default=None, max_length=500)
    waive: bool = False


class ListLoansInput(ActorInput):
    user_id: int | None = Field(default=None, ge=1)
    book_id: int | None = Field(default=None, ge=1)
    status: LoanStatus | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class OverdueLoansInput(ActorInput):
    min_days_overdue: int = Field(default=1, ge=1)
    user_id: int | None = Field(default=None, ge=1)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class UserScopedInput(ActorInput):
    user_id: int | None = Field(default=None, ge=1, description="Defaults to the actor")


class EligibilityInput(UserScopedInput):
    book_id: int = Field(..., ge=1)


class SweepInput(ActorInput):
    today: date | None = None


def _borrower(params, action: str) -> int:
    """The user an operation is for: the actor, unless an admin names someone else."""
    user_id = params.user_id or params.actor_id
    if user_id != params.actor_id and not params.actor.is_admin:
        raise AuthorizationError(f"Only administrators can {action} for another user")
    return user_id


@trace_tool("request_loan")
@tool_errors("loan request")
async def request_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = RequestLoanInput.model_validate(arguments)
    user_id = _borrower(params, "request loans")

    with get_session() as session:
        loan = LoanRepository(session).create_loan(
            user_id, params.book_id, notes=params.notes, duration_days=params.duration_days
        )

    record_loan_event("create")
    return success(f'Loan request for "{loan.book_title}" submitted', {"loan": loan})


@trace_tool("validate_loan")
@tool_errors("loan validation")
async def validate_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = LoanIdInput.model_validate(arguments)
    with get_session() as session:
        loan = LoanRepository(session).validate_loan(params.loan_id, params.actor)

    record_loan_event("validate")
    return success(
        f"Loan {loan.id} validated, due {loan.due_date.isoformat()}", {"loan": loan}
    )


@trace_tool("refuse_loan")
@tool_errors("loan refusal")
async def refuse_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = RefuseLoanInput.model_validate(arguments)
    with get_session() as session:
        loan = LoanRepository(session).refuse_loan(params.loan_id, params.actor, params.reason)

    record_loan_event("refuse")
    return success(f"Loan {loan.id} refused", {"loan": loan})


@trace_tool("cancel_loan")
@tool_errors("loan cancellation")
async def cancel_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = LoanIdInput.model_validate(arguments)
    with get_session() as session:
        loan = LoanRepository(session).cancel_loan(params.loan_id, params.actor)

    record_loan_event("cancel")
    return success(f"Loan {loan.id} cancelled", {"loan": loan})


@trace_tool("return_book")
@tool_errors("book return")
async def return_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = ReturnBookInput.model_validate(arguments)
    with get_session() as session:
        result = LoanRepository(session).return_book(
            params.loan_id, params.actor, condition=params.condition, notes=params.notes
        )

    record_loan_event("return")
    message = f'"{result.loan.book_title}" returned'
    if result.is_late:
        message += f" {result.late_days} day(s) late"
    return success(message, result)


@trace_tool("renew_loan")
@tool_errors("loan renewal")
async def renew_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = RenewLoanInput.model_validate(arguments)
    with get_session() as session:
        loan = LoanRepository(session).renew_loan(
            params.loan_id, params.actor, extension_days=params.extension_days
        )

    record_loan_event("renew")
    return success(
        f"Loan {loan.id} renewed until {loan.due_date.isoformat()} "
        f"(renewal {loan.renewal_count})",
        {"loan": loan},
    )


@trace_tool("mark_loan_overdue")
@tool_errors("overdue marking")
async def mark_loan_overdue_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = MarkOverdueInput.model_validate(arguments)
    with get_session() as session:
        loan = LoanRepository(session).mark_as_overdue(
            params.loan_id, params.actor, penalty_amount=params.penalty_amount, notes=params.notes
        )

    record_loan_event("mark_overdue")
    return success(f"Loan {loan.id} marked overdue", {"loan": loan})


@trace_tool("get_loan")
@tool_errors("loan lookup")
async def get_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = LoanIdInput.model_validate(arguments)
    with get_session() as session:
        loan = LoanRepository(session).get_loan(params.loan_id, params.actor)
    return success(f"Loan {loan.id}", {"loan": loan})


@trace_tool("list_loans")
@tool_errors("loan listing")
async def list_loans_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Own loans for regular users, any loans (with filters) for admins."""
    params = ListLoansInput.model_validate(arguments)
    pagination = PaginationParams(page=params.page, page_size=params.page_size)

    with get_session() as session:
        repo = LoanRepository(session)
        if params.actor.is_admin:
            page = repo.get_all_loans(
                params.actor,
                LoanFilters(status=params.status, user_id=params.user_id, book_id=params.book_id),
                pagination,
            )
        else:
            user_id = _borrower(params, "list loans")
            page = repo.get_user_loans(user_id, params.status, pagination)

    return success(f"Found {page.total} loan(s)", page)


@trace_tool("list_overdue_loans")
@tool_errors("overdue listing")
async def list_overdue_loans_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = OverdueLoansInput.model_validate(arguments)
    user_id = params.user_id
    if not params.actor.is_admin:
        user_id = _borrower(params, "list overdue loans")

    with get_session() as session:
        page = LoanRepository(session).get_overdue_loans(
            params.min_days_overdue,
            user_id=user_id,
            pagination=PaginationParams(page=params.page, page_size=params.page_size),
        )
    return success(f"Found {page.total} overdue loan(s)", page)


@trace_tool("loan_summary")
@tool_errors("loan summary")
async def loan_summary_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = UserScopedInput.model_validate(arguments)
    user_id = _borrower(params, "view loan summaries")
    with get_session() as session:
        summary = LoanRepository(session).get_user_loan_summary(user_id)
    return success(f"{summary.loans_remaining} loan(s) remaining", summary)


@trace_tool("check_loan_eligibility")
@tool_errors("eligibility check")
async def check_eligibility_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = EligibilityInput.model_validate(arguments)
    user_id = _borrower(params, "check eligibility")
    with get_session() as session:
        result = LoanRepository(session).check_loan_eligibility(user_id, params.book_id)

    message = "Eligible to borrow" if result.can_borrow else result.reason
    return success(message, result)


@trace_tool("calculate_penalty")
@tool_errors("penalty calculation")
async def calculate_penalty_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = LoanIdInput.model_validate(arguments)
    with get_session() as session:
        quote = LoanRepository(session).calculate_penalty(params.loan_id, params.actor)
    return success(f"Penalty: {quote.amount:.2f} ({quote.days_overdue} day(s) late)", quote)


@trace_tool("apply_penalty")
@tool_errors("penalty application")
async def apply_penalty_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = ApplyPenaltyInput.model_validate(arguments)
    with get_session() as session:
        loan = LoanRepository(session).apply_penalty(
            params.loan_id,
            params.actor,
            amount=params.amount,
            reason=params.reason,
            waive=params.waive,
        )

    verb = "waived" if params.waive else f"set to {loan.penalty_amount:.2f}"
    return success(f"Penalty on loan {loan.id} {verb}", {"loan": loan})


@trace_tool("run_overdue_sweep")
@tool_errors("overdue sweep")
async def run_overdue_sweep_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = SweepInput.model_validate(arguments)
    if not params.actor.is_admin:
        raise AuthorizationError("Only administrators can run the overdue sweep")

    with get_session() as session:
        notices = run_overdue_sweep(session, today=params.today)
    return success(f"Overdue sweep sent {notices} notice(s)", {"notices": notices})


request_loan = {
    "name": "request_loan",
    "description": (
        "Request to borrow a book. Checks that a copy is available, that the borrower is "
        "under the loan limit and has no open loan or pending request for the same book. "
        "The request stays pending until an administrator validates it."
    ),
    "inputSchema": RequestLoanInput.model_json_schema(),
    "handler": request_loan_handler,
}

validate_loan = {
    "name": "validate_loan",
    "description": (
        "Approve a pending loan request (administrators only). Takes a copy off the shelf "
        "and sets the due date from today."
    ),
    "inputSchema": LoanIdInput.model_json_schema(),
    "handler": validate_loan_handler,
}

refuse_loan = {
    "name": "refuse_loan",
    "description": "Refuse a pending loan request (administrators only).",
    "inputSchema": RefuseLoanInput.model_json_schema(),
    "handler": refuse_loan_handler,
}

cancel_loan = {
    "name": "cancel_loan",
    "description": "Cancel a pending loan request. Borrowers may cancel their own requests.",
    "inputSchema": LoanIdInput.model_json_schema(),
    "handler": cancel_loan_handler,
}

return_book = {
    "name": "return_book",
    "description": (
        "Return a borrowed book. Puts the copy back on the shelf and reports how many days "
        "late the return was."
    ),
    "inputSchema": ReturnBookInput.model_json_schema(),
    "handler": return_book_handler,
}

renew_loan = {
    "name": "renew_loan",
    "description": (
        "Extend the due date of an active or overdue loan (administrators only). "
        "A loan can be renewed at most twice."
    ),
    "inputSchema": RenewLoanInput.model_json_schema(),
    "handler": renew_loan_handler,
}

mark_loan_overdue = {
    "name": "mark_loan_overdue",
    "description": "Flag one late active loan as overdue (administrators only).",
    "inputSchema": MarkOverdueInput.model_json_schema(),
    "handler": mark_loan_overdue_handler,
}

get_loan = {
    "name": "get_loan",
    "description": "Get a loan with book and borrower details.",
    "inputSchema": LoanIdInput.model_json_schema(),
    "handler": get_loan_handler,
}

list_loans = {
    "name": "list_loans",
    "description": "List loans. Borrowers see their own loans; administrators can filter all loans.",
    "inputSchema": ListLoansInput.model_json_schema(),
    "handler": list_loans_handler,
}

list_overdue_loans = {
    "name": "list_overdue_loans",
    "description": "List outstanding loans past their due date, most overdue first.",
    "inputSchema": OverdueLoansInput.model_json_schema(),
    "handler": list_overdue_loans_handler,
}

loan_summary = {
    "name": "loan_summary",
    "description": "Loan counts per status, loans remaining and next due date for a user.",
    "inputSchema": UserScopedInput.model_json_schema(),
    "handler": loan_summary_handler,
}

check_loan_eligibility = {
    "name": "check_loan_eligibility",
    "description": "Check, without changing anything, whether a user may request a book.",
    "inputSchema": EligibilityInput.model_json_schema(),
    "handler": check_eligibility_handler,
}

calculate_penalty = {
    "name": "calculate_penalty",
    "description": "Quote the late penalty for a loan without recording it.",
    "inputSchema": LoanIdInput.model_json_schema(),
    "handler": calculate_penalty_handler,
}

apply_penalty = {
    "name": "apply_penalty",
    "description": (
        "Record a penalty on a loan (administrators only). Uses the calculated amount "
        "unless one is given; can waive the penalty."
    ),
    "inputSchema": ApplyPenaltyInput.model_json_schema(),
    "handler": apply_penalty_handler,
}

overdue_sweep = {
    "name": "run_overdue_sweep",
    "description": "Mark late loans overdue and notify borrowers (administrators only).",
    "inputSchema": SweepInput.model_json_schema(),
    "handler": run_overdue_sweep_handler,
}

loan_tools = [
    request_loan,
    validate_loan,
    refuse_loan,
    cancel_loan,
    return_book,
    renew_loan,
    mark_loan_overdue,
    get_loan,
    list_loans,
    list_overdue_loans,
    loan_summary,
    check_loan_eligibility,
    calculate_penalty,
    apply_penalty,
    overdue_sweep,
]
