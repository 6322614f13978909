"""Tests for the loan state machine and loan models."""

from datetime import date

import pytest
from pydantic import ValidationError

from lending_library.errors import AlreadyReturned, InvalidStateTransition, LoanNotActive
from lending_library.models.loan import (
    OPEN_STATUSES,
    OUTSTANDING_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
    Loan,
    LoanEvent,
    LoanStatus,
    allowed_sources,
    transition,
)


class TestTransitionTable:
    @pytest.mark.parametrize(
        ("current", "event", "expected"),
        [
            (LoanStatus.PENDING, LoanEvent.VALIDATE, LoanStatus.ACTIVE),
            (LoanStatus.PENDING, LoanEvent.REFUSE, LoanStatus.REFUSED),
            (LoanStatus.PENDING, LoanEvent.CANCEL, LoanStatus.CANCELLED),
            (LoanStatus.ACTIVE, LoanEvent.RETURN, LoanStatus.RETURNED),
            (LoanStatus.OVERDUE, LoanEvent.RETURN, LoanStatus.RETURNED),
            (LoanStatus.ACTIVE, LoanEvent.MARK_OVERDUE, LoanStatus.OVERDUE),
            (LoanStatus.ACTIVE, LoanEvent.RENEW, LoanStatus.ACTIVE),
            (LoanStatus.OVERDUE, LoanEvent.RENEW, LoanStatus.ACTIVE),
        ],
    )
    def test_legal_transitions(self, current, event, expected):
        assert transition(current, event) == expected

    def test_accepts_raw_status_strings(self):
        assert transition("pending", LoanEvent.VALIDATE) == LoanStatus.ACTIVE

    def test_terminal_statuses_have_no_outgoing_transitions(self):
        for status in TERMINAL_STATUSES:
            for event in LoanEvent:
                with pytest.raises(InvalidStateTransition):
                    transition(status, event, loan_id=1)

    def test_every_illegal_pair_is_rejected(self):
        for status in LoanStatus:
            for event in LoanEvent:
                if (status, event) in TRANSITIONS:
                    continue
                with pytest.raises(InvalidStateTransition):
                    transition(status, event, loan_id=7)

    def test_returning_a_returned_loan_is_already_returned(self):
        with pytest.raises(AlreadyReturned) as exc_info:
            transition(LoanStatus.RETURNED, LoanEvent.RETURN, loan_id=3)
        assert "already been returned" in str(exc_info.value)
        assert exc_info.value.kind == "invalid_state"

    @pytest.mark.parametrize("status", [LoanStatus.PENDING, LoanStatus.RETURNED])
    def test_renewing_outside_active_or_overdue_is_loan_not_active(self, status):
        with pytest.raises(LoanNotActive) as exc_info:
            transition(status, LoanEvent.RENEW, loan_id=9)
        assert exc_info.value.actual == status

    def test_validate_from_active_names_expected_and_actual(self):
        with pytest.raises(InvalidStateTransition) as exc_info:
            transition(LoanStatus.ACTIVE, LoanEvent.VALIDATE)
        error = exc_info.value
        assert error.operation == "validate"
        assert error.expected == (LoanStatus.PENDING,)
        assert error.actual == LoanStatus.ACTIVE
        assert "expected status pending, found active" in str(error)

    def test_allowed_sources(self):
        assert allowed_sources(LoanEvent.RETURN) == (LoanStatus.ACTIVE, LoanStatus.OVERDUE)
        assert allowed_sources(LoanEvent.VALIDATE) == (LoanStatus.PENDING,)
        assert allowed_sources(LoanEvent.MARK_OVERDUE) == (LoanStatus.ACTIVE,)

    def test_status_groups(self):
        assert set(OUTSTANDING_STATUSES) < set(OPEN_STATUSES)
        assert not TERMINAL_STATUSES & set(OPEN_STATUSES)
        assert TERMINAL_STATUSES | set(OPEN_STATUSES) == set(LoanStatus)


class TestLoanModel:
    def _loan(self, **overrides) -> Loan:
        data = {
            "id": 1,
            "user_id": 1,
            "book_id": 1,
            "status": LoanStatus.ACTIVE,
            "loan_date": date(2024, 1, 1),
            "due_date": date(2024, 1, 15),
        }
        data.update(overrides)
        return Loan(**data)

    def test_due_date_before_loan_date_is_rejected(self):
        with pytest.raises(ValidationError, match="Due date cannot be before loan date"):
            self._loan(due_date=date(2023, 12, 31))

    def test_renewal_count_is_capped(self):
        with pytest.raises(ValidationError):
            self._loan(renewal_count=3)

    def test_days_overdue_for_outstanding_loan(self):
        assert self._loan().days_overdue(date(2024, 1, 20)) == 5
        assert self._loan().days_overdue(date(2024, 1, 10)) == 0

    def test_days_overdue_uses_return_date_for_returned_loans(self):
        loan = self._loan(status=LoanStatus.RETURNED, return_date=date(2024, 1, 18))
        assert loan.days_overdue(date(2024, 3, 1)) == 3

    def test_pending_loans_are_never_overdue(self):
        assert self._loan(status=LoanStatus.PENDING).days_overdue(date(2025, 1, 1)) == 0

    def test_is_terminal(self):
        assert self._loan(status=LoanStatus.REFUSED).is_terminal
        assert not self._loan(status=LoanStatus.OVERDUE).is_terminal
