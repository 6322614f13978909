"""
Error taxonomy for the Lending Library backend.

Every failure raised by the lifecycle engine belongs to one of a small number
of kinds. Tool handlers and the REST layer map a kind to a response status,
so callers can tell "that loan does not exist" apart from "that loan is not
pending any more" without parsing messages.

Kinds:
- not_found: loan, book, user or notification absent (404)
- invalid_state: operation attempted from the wrong loan status (400)
- policy_violation: loan limit, duplicate loan, no copy, renewal cap (400)
- forbidden: actor may not perform the transition (403)
- conflict: unique constraint on catalog/user data (409)
- infrastructure: database unavailable or failing (500)
"""


class LibraryError(Exception):
    """Base exception for all library operations."""

    kind = "internal"
    status_code = 500


class NotFoundError(LibraryError):
    """Raised when an entity is not found."""

    kind = "not_found"
    status_code = 404


class LoanNotFound(NotFoundError):
    def __init__(self, loan_id: int):
        super().__init__(f"Loan {loan_id} not found")
        self.loan_id = loan_id


class BookNotFound(NotFoundError):
    def __init__(self, book_id: int):
        super().__init__(f"Book {book_id} not found")
        self.book_id = book_id


class UserNotFound(NotFoundError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class NotificationNotFound(NotFoundError):
    def __init__(self, notification_id: int):
        super().__init__(f"Notification {notification_id} not found")
        self.notification_id = notification_id


class InvalidStateTransition(LibraryError):
    """Raised when a loan operation is attempted from the wrong status."""

    kind = "invalid_state"
    status_code = 400

    def __init__(self, operation: str, expected, actual, message: str | None = None):
        expected_text = ", ".join(str(getattr(s, "value", s)) for s in expected)
        actual_text = str(getattr(actual, "value", actual))
        super().__init__(
            message
            or f"Cannot {operation} loan: expected status {expected_text}, found {actual_text}"
        )
        self.operation = operation
        self.expected = tuple(expected)
        self.actual = actual


class AlreadyReturned(InvalidStateTransition):
    def __init__(self, loan_id: int):
        super().__init__(
            "return",
            ("active", "overdue"),
            "returned",
            f"Loan {loan_id} has already been returned",
        )


class LoanNotActive(InvalidStateTransition):
    def __init__(self, loan_id: int, actual):
        super().__init__(
            "renew",
            ("active", "overdue"),
            actual,
            f"Loan {loan_id} cannot be renewed: only active or overdue loans can be renewed "
            f"(current status: {getattr(actual, 'value', actual)})",
        )


class PolicyViolation(LibraryError):
    """Raised when a lending rule rejects an otherwise valid request."""

    kind = "policy_violation"
    status_code = 400
    reason = "policy_violation"


class BookUnavailable(PolicyViolation):
    reason = "book_unavailable"


class LoanLimitExceeded(PolicyViolation):
    reason = "loan_limit_exceeded"


class DuplicateActiveLoan(PolicyViolation):
    reason = "duplicate_loan"


class NoCopyAvailable(PolicyViolation):
    reason = "no_copy_available"


class RenewalLimitExceeded(PolicyViolation):
    reason = "renewal_limit_exceeded"


class ReviewNotAllowed(PolicyViolation):
    reason = "review_not_allowed"


class AuthorizationError(LibraryError):
    """Raised when the acting principal may not perform an operation."""

    kind = "forbidden"
    status_code = 403


class DuplicateError(LibraryError):
    """Raised when attempting to create a duplicate entity."""

    kind = "conflict"
    status_code = 409


class TransientInfrastructureError(LibraryError):
    """Raised when the database fails underneath an operation."""

    kind = "infrastructure"
    status_code = 500
