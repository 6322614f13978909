"""
Loan repository: the loan lifecycle engine.

Every operation that changes a loan follows the same shape:

1. Lock the loan row (``SELECT ... FOR UPDATE``) and ask the transition
   table whether the event is legal from its current status.
2. Check the lending rules and take or give back a copy through
   ``BookRepository``, all in the same session. Rules that count a user's
   loans run after that user's row is locked, so locks are always taken
   in the order loan, user, book.
3. Move the status with a guarded UPDATE
   (``WHERE id = :id AND status IN (:expected)``). A rowcount of zero means
   a concurrent request got there first, and the whole transaction is
   rolled back with ``InvalidStateTransition``.
4. Commit, then dispatch the notifications collected on the way.

Nothing is committed when a step fails, so a refused validation never
leaves a copy taken and a failed return never leaves one missing.
"""

import logging
from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import date, timedelta

from pydantic import BaseModel
from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import get_config
from ..errors import (
    AuthorizationError,
    BookNotFound,
    BookUnavailable,
    DuplicateActiveLoan,
    InvalidStateTransition,
    LoanLimitExceeded,
    LoanNotFound,
    NoCopyAvailable,
    PolicyViolation,
    RenewalLimitExceeded,
    UserNotFound,
)
from ..models.book import CIRCULATING_STATUSES, BookStatus
from ..models.loan import (
    OUTSTANDING_STATUSES,
    Loan as LoanModel,
    LoanEvent,
    LoanStatus,
    LoanSummary,
    ReturnResult,
    allowed_sources,
    transition,
)
from ..models.notification import NotificationPriority, NotificationType
from ..models.user import Actor
from ..policies import (
    BorrowFacts,
    EligibilityResult,
    LoanPolicy,
    PenaltyQuote,
    can_renew,
    evaluate_borrow_eligibility,
    quote_penalty,
)
from .book_repository import BookRepository
from .notification_repository import NotificationOutbox, NotificationRepository
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import Loan as LoanDB
from .session import safe_commit, safe_query
from .user_repository import UserRepository

logger = logging.getLogger(__name__)

_ELIGIBILITY_ERRORS = {
    "book_unavailable": BookUnavailable,
    "loan_limit_exceeded": LoanLimitExceeded,
    "duplicate_loan": DuplicateActiveLoan,
}


class LoanFilters(BaseModel):
    """Filters for the admin loan listing."""

    status: LoanStatus | None = None
    user_id: int | None = None
    book_id: int | None = None
    due_before: date | None = None
    due_after: date | None = None


class LoanRepository(BaseRepository[LoanDB, LoanModel]):
    """
    Loan lifecycle operations.

    Args:
        session: Session shared by every step of an operation
        policy: Lending limits; defaults to the configured policy
        clock: Returns "today"; tests pass a fixed date
    """

    def __init__(
        self,
        session: Session,
        policy: LoanPolicy | None = None,
        clock: Callable[[], date] = date.today,
    ):
        super().__init__(session)
        self.policy = policy or get_config().loan_policy
        self.clock = clock
        self.book_repo = BookRepository(session)
        self.user_repo = UserRepository(session)
        self.notification_repo = NotificationRepository(session)

    @property
    def model_class(self):
        return LoanDB

    @property
    def response_schema(self):
        return LoanModel

    # === Plumbing ===

    @contextmanager
    def _transaction(self, operation: str) -> Generator[None, None, None]:
        try:
            yield
            safe_commit(self.session, operation)
        except Exception:
            self.session.rollback()
            raise

    def _lock_loan(self, loan_id: int) -> LoanDB:
        loan = self._get_db_obj(loan_id, for_update=True)
        if loan is None:
            raise LoanNotFound(loan_id)
        return loan

    def _apply_transition(
        self, loan: LoanDB, event: LoanEvent, *guards, **values
    ) -> LoanStatus:
        """
        Move ``loan`` along ``event`` with a guarded UPDATE.

        Raises:
            InvalidStateTransition: If the loan left the expected status
                (or failed an extra guard) since it was read
        """
        target = transition(loan.status, event, loan.id)
        expected = allowed_sources(event)
        stmt = (
            update(LoanDB)
            .where(LoanDB.id == loan.id, LoanDB.status.in_(expected), *guards)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(
            self.session, lambda s: s.execute(stmt), f"Failed to {event.value} loan"
        )
        if result.rowcount == 0:
            self.session.refresh(loan)
            logger.warning(
                "Loan %s changed concurrently during %s (now %s)",
                loan.id,
                event.value,
                loan.status.value,
            )
            raise InvalidStateTransition(event.value, expected, loan.status)

        self.session.refresh(loan)
        return target

    @staticmethod
    def _require_admin(actor: Actor, action: str) -> None:
        if not actor.is_admin:
            raise AuthorizationError(f"Only administrators can {action}")

    @staticmethod
    def _require_owner_or_admin(actor: Actor, loan: LoanDB, action: str) -> None:
        if not (actor.is_admin or actor.owns(loan.user_id)):
            raise AuthorizationError(f"You can only {action} your own loans")

    def _count_outstanding(self, user_id: int) -> int:
        query = select(func.count()).where(
            LoanDB.user_id == user_id, LoanDB.status.in_(OUTSTANDING_STATUSES)
        )
        return safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to count user loans"
        ) or 0

    def _has_loan_in(self, user_id: int, book_id: int, statuses) -> bool:
        query = select(
            exists().where(
                LoanDB.user_id == user_id,
                LoanDB.book_id == book_id,
                LoanDB.status.in_(statuses),
            )
        )
        return bool(
            safe_query(self.session, lambda s: s.execute(query).scalar(), "Failed to check loans")
        )

    def _borrow_facts(self, user_id: int, book_id: int) -> BorrowFacts:
        book = self.book_repo._get_db_obj(book_id)
        return BorrowFacts(
            book_exists=book is not None,
            book_deleted=book is not None and book.status == BookStatus.DELETED,
            book_circulating=book is not None and book.status in CIRCULATING_STATUSES,
            available_copies=book.available_copies if book is not None else 0,
            outstanding_loans=self._count_outstanding(user_id),
            has_outstanding_loan_for_book=self._has_loan_in(
                user_id, book_id, OUTSTANDING_STATUSES
            ),
            has_pending_request_for_book=self._has_loan_in(
                user_id, book_id, (LoanStatus.PENDING,)
            ),
        )

    def _loan_to_model(self, loan: LoanDB) -> LoanModel:
        return LoanModel(
            id=loan.id,
            user_id=loan.user_id,
            book_id=loan.book_id,
            status=LoanStatus(loan.status),
            loan_date=loan.loan_date,
            due_date=loan.due_date,
            return_date=loan.return_date,
            renewal_count=loan.renewal_count,
            notes=loan.notes,
            return_condition=loan.return_condition,
            returned_by=loan.returned_by,
            processed_by=loan.processed_by,
            penalty_amount=loan.penalty_amount or 0.0,
            penalty_reason=loan.penalty_reason,
            penalty_waived=loan.penalty_waived,
            created_at=loan.created_at,
            updated_at=loan.updated_at,
            book_title=loan.book.title if loan.book else None,
            book_author=loan.book.author if loan.book else None,
            user_name=loan.user.full_name if loan.user else None,
            user_email=loan.user.email if loan.user else None,
        )

    def _to_response_model(self, db_obj: LoanDB) -> LoanModel:
        return self._loan_to_model(db_obj)

    def _notify_admins(self, outbox: NotificationOutbox, **kwargs) -> None:
        outbox.add_many(self.user_repo.admin_ids(), **kwargs)

    # === Eligibility ===

    def can_user_borrow(self, user_id: int, book_id: int) -> EligibilityResult:
        """
        Read-only answer to "may ``user_id`` request ``book_id`` now?".

        Unknown and deactivated accounts get ``code="user_not_found"``.
        """
        try:
            self.user_repo.get_active(user_id)
        except UserNotFound:
            return EligibilityResult(
                can_borrow=False,
                reason="User not found or inactive",
                code="user_not_found",
                loans_remaining=0,
            )
        return evaluate_borrow_eligibility(self._borrow_facts(user_id, book_id), self.policy)

    def check_loan_eligibility(self, user_id: int, book_id: int) -> EligibilityResult:
        return self.can_user_borrow(user_id, book_id)

    # === Lifecycle ===

    def create_loan(
        self,
        user_id: int,
        book_id: int,
        notes: str | None = None,
        duration_days: int | None = None,
    ) -> LoanModel:
        """
        Record a loan request. No copy is taken until an admin validates it.

        Raises:
            UserNotFound: If the user does not exist or is inactive
            BookNotFound: If the book does not exist or was deleted
            BookUnavailable: If no copy is on the shelf
            LoanLimitExceeded: If the user already holds the maximum
            DuplicateActiveLoan: If the user already has this book, or a
                pending request for it
        """
        duration = self.policy.loan_period_days if duration_days is None else duration_days
        if duration < 1:
            raise ValueError("duration_days must be >= 1")

        outbox = NotificationOutbox()
        with self._transaction("create loan"):
            user = self.user_repo.get_active(user_id, for_update=True)
            result = evaluate_borrow_eligibility(
                self._borrow_facts(user_id, book_id), self.policy
            )
            if not result.can_borrow:
                if result.code == "book_not_found":
                    raise BookNotFound(book_id)
                raise _ELIGIBILITY_ERRORS.get(result.code, PolicyViolation)(result.reason)

            today = self.clock()
            loan = LoanDB(
                user_id=user_id,
                book_id=book_id,
                status=LoanStatus.PENDING,
                loan_date=today,
                due_date=today + timedelta(days=duration),
                notes=notes,
            )
            self.session.add(loan)
            try:
                self.session.flush()
            except IntegrityError as e:
                raise DuplicateActiveLoan("You already have an open loan for this book") from e

            title = loan.book.title
            outbox.add(
                user_id,
                type=NotificationType.LOAN_REQUESTED,
                title="Loan request submitted",
                message=f'Your request for "{title}" is awaiting validation.',
                related_entity_type="loan",
                related_entity_id=loan.id,
            )
            self._notify_admins(
                outbox,
                type=NotificationType.LOAN_REQUESTED_ADMIN,
                title="New loan request",
                message=f'{user.full_name} requested "{title}".',
                related_entity_type="loan",
                related_entity_id=loan.id,
            )

        logger.info("Loan %s requested by user %s for book %s", loan.id, user_id, book_id)
        self.notification_repo.dispatch(outbox)
        return self._loan_to_model(loan)

    def validate_loan(self, loan_id: int, actor: Actor) -> LoanModel:
        """
        Approve a pending request and take a copy off the shelf.

        Raises:
            AuthorizationError: If the actor is not an admin
            LoanNotFound: If the loan does not exist
            InvalidStateTransition: If the loan is not pending
            LoanLimitExceeded: If the borrower reached the limit meanwhile
            NoCopyAvailable: If the last copy went to someone else
        """
        self._require_admin(actor, "validate loans")

        outbox = NotificationOutbox()
        with self._transaction("validate loan"):
            loan = self._lock_loan(loan_id)
            transition(loan.status, LoanEvent.VALIDATE, loan.id)

            # Borrower before book: the loan cap is counted under this lock.
            self.user_repo._get_db_obj(loan.user_id, for_update=True)
            if self._count_outstanding(loan.user_id) >= self.policy.max_loans_per_user:
                raise LoanLimitExceeded(
                    f"User {loan.user_id} already has {self.policy.max_loans_per_user} loans"
                )
            if not self.book_repo.reserve_quantity(loan.book_id):
                raise NoCopyAvailable(f'No copy of "{loan.book.title}" is available')

            today = self.clock()
            self._apply_transition(
                loan,
                LoanEvent.VALIDATE,
                loan_date=today,
                due_date=today + timedelta(days=self.policy.loan_period_days),
                processed_by=actor.id,
            )

            title = loan.book.title
            outbox.add(
                loan.user_id,
                type=NotificationType.LOAN_VALIDATED,
                title="Loan approved",
                message=f'Your loan of "{title}" is approved. Due back on {loan.due_date}.',
                related_entity_type="loan",
                related_entity_id=loan.id,
            )
            self._notify_admins(
                outbox,
                type=NotificationType.LOAN_VALIDATED_ADMIN,
                title="Loan validated",
                message=f'Loan {loan.id} of "{title}" to {loan.user.full_name} was validated.',
                priority=NotificationPriority.LOW,
                related_entity_type="loan",
                related_entity_id=loan.id,
            )

        logger.info("Loan %s validated by admin %s", loan_id, actor.id)
        self.notification_repo.dispatch(outbox)
        return self._loan_to_model(loan)

    def refuse_loan(self, loan_id: int, actor: Actor, reason: str | None = None) -> LoanModel:
        """Turn down a pending request. Inventory is untouched."""
        self._require_admin(actor, "refuse loans")

        outbox = NotificationOutbox()
        with self._transaction("refuse loan"):
            loan = self._lock_loan(loan_id)
            self._apply_transition(loan, LoanEvent.REFUSE, processed_by=actor.id)

            message = f'Your request for "{loan.book.title}" was refused.'
            if reason:
                message = f"{message} Reason: {reason}"
            outbox.add(
                loan.user_id,
                type=NotificationType.LOAN_REFUSED,
                title="Loan request refused",
                message=message,
                related_entity_type="loan",
                related_entity_id=loan.id,
            )

        logger.info("Loan %s refused by admin %s", loan_id, actor.id)
        self.notification_repo.dispatch(outbox)
        return self._loan_to_model(loan)

    def cancel_loan(self, loan_id: int, actor: Actor) -> LoanModel:
        """Withdraw a pending request (borrower or admin). Inventory is untouched."""
        with self._transaction("cancel loan"):
            loan = self._lock_loan(loan_id)
            self._require_owner_or_admin(actor, loan, "cancel")
            self._apply_transition(loan, LoanEvent.CANCEL)

        logger.info("Loan %s cancelled by user %s", loan_id, actor.id)
        return self._loan_to_model(loan)

    def return_book(
        self,
        loan_id: int,
        actor: Actor,
        condition: str = "good",
        notes: str | None = None,
    ) -> ReturnResult:
        """
        Close an active or overdue loan and put the copy back.

        Raises:
            AlreadyReturned: If the loan was returned before
            InvalidStateTransition: If the loan never went out
        """
        outbox = NotificationOutbox()
        with self._transaction("return book"):
            loan = self._lock_loan(loan_id)
            self._require_owner_or_admin(actor, loan, "return")

            today = self.clock()
            values = {"return_date": today, "return_condition": condition, "returned_by": actor.id}
            if notes is not None:
                values["notes"] = notes
            self._apply_transition(loan, LoanEvent.RETURN, **values)

            if not self.book_repo.release_quantity(loan.book_id):
                logger.error(
                    "Book %s already had every copy on the shelf when loan %s came back",
                    loan.book_id,
                    loan.id,
                )

            late_days = max(0, (today - loan.due_date).days)
            message = f'Thank you for returning "{loan.book.title}".'
            if late_days:
                message = f"{message} It was returned {late_days} day(s) late."
            outbox.add(
                loan.user_id,
                type=NotificationType.LOAN_RETURNED,
                title="Book returned",
                message=message,
                priority=NotificationPriority.LOW,
                related_entity_type="loan",
                related_entity_id=loan.id,
            )

        logger.info("Loan %s returned (%d day(s) late)", loan_id, late_days)
        self.notification_repo.dispatch(outbox)
        return ReturnResult(
            loan=self._loan_to_model(loan), is_late=late_days > 0, late_days=late_days
        )

    def renew_loan(
        self, loan_id: int, actor: Actor, extension_days: int | None = None
    ) -> LoanModel:
        """
        Push the due date back. Overdue loans become active again.

        Raises:
            AuthorizationError: If the actor is not an admin
            LoanNotActive: If the loan is not active or overdue
            RenewalLimitExceeded: If the loan was renewed the maximum times
        """
        self._require_admin(actor, "renew loans")
        extension = (
            self.policy.renewal_extension_days if extension_days is None else extension_days
        )
        if extension < 1:
            raise ValueError("extension_days must be >= 1")

        outbox = NotificationOutbox()
        with self._transaction("renew loan"):
            loan = self._lock_loan(loan_id)
            transition(loan.status, LoanEvent.RENEW, loan.id)
            if not can_renew(loan.renewal_count, self.policy):
                raise RenewalLimitExceeded(
                    f"Loan {loan.id} has reached the maximum of {self.policy.max_renewals} renewals"
                )

            count = loan.renewal_count
            self._apply_transition(
                loan,
                LoanEvent.RENEW,
                LoanDB.renewal_count == count,
                due_date=loan.due_date + timedelta(days=extension),
                renewal_count=count + 1,
                reminder_sent=False,
                overdue_notified=False,
            )

            outbox.add(
                loan.user_id,
                type=NotificationType.LOAN_RENEWED,
                title="Loan renewed",
                message=f'"{loan.book.title}" is now due on {loan.due_date}.',
                related_entity_type="loan",
                related_entity_id=loan.id,
            )

        logger.info("Loan %s renewed until %s", loan_id, loan.due_date)
        self.notification_repo.dispatch(outbox)
        return self._loan_to_model(loan)

    def mark_overdue_loans(self, today: date | None = None) -> int:
        """
        Relabel every active loan past its due date as overdue.

        Safe to run repeatedly and alongside returns/renewals: the UPDATE only
        touches rows that are still active and still late.

        Returns:
            Number of loans relabelled
        """
        today = today or self.clock()
        target = transition(LoanStatus.ACTIVE, LoanEvent.MARK_OVERDUE)
        stmt = (
            update(LoanDB)
            .where(LoanDB.status.in_(allowed_sources(LoanEvent.MARK_OVERDUE)), LoanDB.due_date < today)
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        with self._transaction("mark overdue loans"):
            result = safe_query(
                self.session, lambda s: s.execute(stmt), "Failed to mark overdue loans"
            )

        if result.rowcount:
            logger.info("Marked %d loan(s) overdue", result.rowcount)
        return result.rowcount

    def mark_as_overdue(
        self,
        loan_id: int,
        actor: Actor,
        penalty_amount: float | None = None,
        notes: str | None = None,
    ) -> LoanModel:
        """Admin override: flag one late active loan as overdue right away."""
        self._require_admin(actor, "mark loans overdue")

        with self._transaction("mark loan overdue"):
            loan = self._lock_loan(loan_id)
            transition(loan.status, LoanEvent.MARK_OVERDUE, loan.id)
            if loan.due_date >= self.clock():
                raise PolicyViolation(f"Loan {loan.id} is not past its due date ({loan.due_date})")

            values = {}
            if penalty_amount is not None:
                if penalty_amount < 0:
                    raise ValueError("penalty_amount must be >= 0")
                values["penalty_amount"] = penalty_amount
            if notes is not None:
                values["notes"] = notes
            self._apply_transition(loan, LoanEvent.MARK_OVERDUE, **values)

        logger.info("Loan %s marked overdue by admin %s", loan_id, actor.id)
        return self._loan_to_model(loan)

    # === Penalties ===

    def calculate_penalty(self, loan_id: int, actor: Actor | None = None) -> PenaltyQuote:
        """
        Quote the late penalty for a loan without changing anything.

        Returned loans are measured at their return date, outstanding loans
        at today; loans that never went out owe nothing.
        """
        loan = self._get_db_obj(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)
        if actor is not None:
            self._require_owner_or_admin(actor, loan, "view penalties on")

        if loan.status == LoanStatus.RETURNED:
            as_of = loan.return_date
        elif loan.status in OUTSTANDING_STATUSES:
            as_of = self.clock()
        else:
            as_of = loan.due_date
        return quote_penalty(loan.due_date, as_of, self.policy, loan_id=loan.id)

    def apply_penalty(
        self,
        loan_id: int,
        actor: Actor,
        amount: float | None = None,
        reason: str | None = None,
        waive: bool = False,
    ) -> LoanModel:
        """
        Record a penalty on a loan. Status is never changed.

        Args:
            amount: Penalty to record; the calculated amount when omitted
            reason: Free-text justification
            waive: Record the penalty as waived (amount 0)
        """
        self._require_admin(actor, "apply penalties")

        penalised = (*OUTSTANDING_STATUSES, LoanStatus.RETURNED)
        with self._transaction("apply penalty"):
            loan = self._lock_loan(loan_id)
            if loan.status not in penalised:
                raise InvalidStateTransition("apply penalty to", penalised, loan.status)

            if waive:
                amount = 0.0
            elif amount is None:
                amount = self.calculate_penalty(loan_id).amount
            elif amount < 0:
                raise ValueError("amount must be >= 0")

            loan.penalty_amount = amount
            loan.penalty_reason = reason
            loan.penalty_waived = waive
            self.session.flush()

        logger.info(
            "Penalty on loan %s set to %.2f by admin %s%s",
            loan_id,
            amount,
            actor.id,
            " (waived)" if waive else "",
        )
        return self._loan_to_model(loan)

    # === Queries ===

    def get_loan(self, loan_id: int, actor: Actor | None = None) -> LoanModel:
        loan = self._get_db_obj(loan_id)
        if loan is None:
            raise LoanNotFound(loan_id)
        if actor is not None:
            self._require_owner_or_admin(actor, loan, "view")
        return self._loan_to_model(loan)

    def get_user_loans(
        self,
        user_id: int,
        status: LoanStatus | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[LoanModel]:
        query = (
            select(LoanDB)
            .where(LoanDB.user_id == user_id)
            .order_by(LoanDB.created_at.desc(), LoanDB.id.desc())
        )
        if status is not None:
            query = query.where(LoanDB.status == status)
        return self._paginate(query, pagination or PaginationParams())

    def get_all_loans(
        self,
        actor: Actor,
        filters: LoanFilters | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[LoanModel]:
        self._require_admin(actor, "list all loans")
        filters = filters or LoanFilters()

        conditions = []
        if filters.status is not None:
            conditions.append(LoanDB.status == filters.status)
        if filters.user_id is not None:
            conditions.append(LoanDB.user_id == filters.user_id)
        if filters.book_id is not None:
            conditions.append(LoanDB.book_id == filters.book_id)
        if filters.due_before is not None:
            conditions.append(LoanDB.due_date < filters.due_before)
        if filters.due_after is not None:
            conditions.append(LoanDB.due_date > filters.due_after)

        query = select(LoanDB).order_by(LoanDB.created_at.desc(), LoanDB.id.desc())
        if conditions:
            query = query.where(and_(*conditions))
        return self._paginate(query, pagination or PaginationParams())

    def get_overdue_loans(
        self,
        min_days_overdue: int = 1,
        user_id: int | None = None,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[LoanModel]:
        """Outstanding loans at least ``min_days_overdue`` days late, most late first."""
        cutoff = self.clock() - timedelta(days=max(1, min_days_overdue))
        query = (
            select(LoanDB)
            .where(LoanDB.status.in_(OUTSTANDING_STATUSES), LoanDB.due_date <= cutoff)
            .order_by(LoanDB.due_date.asc(), LoanDB.id)
        )
        if user_id is not None:
            query = query.where(LoanDB.user_id == user_id)
        return self._paginate(query, pagination or PaginationParams())

    def get_user_loan_summary(self, user_id: int) -> LoanSummary:
        self.user_repo.get(user_id)

        counts_query = (
            select(LoanDB.status, func.count())
            .where(LoanDB.user_id == user_id)
            .group_by(LoanDB.status)
        )
        counts = {
            LoanStatus(status).value: count
            for status, count in safe_query(
                self.session, lambda s: s.execute(counts_query).all(), "Failed to summarise loans"
            )
        }

        totals_query = select(
            func.min(LoanDB.due_date).filter(LoanDB.status.in_(OUTSTANDING_STATUSES)),
            func.coalesce(func.sum(LoanDB.penalty_amount), 0.0),
        ).where(LoanDB.user_id == user_id)
        next_due, penalties = safe_query(
            self.session, lambda s: s.execute(totals_query).one(), "Failed to summarise loans"
        )

        outstanding = counts.get("active", 0) + counts.get("overdue", 0)
        return LoanSummary(
            user_id=user_id,
            loans_remaining=max(0, self.policy.max_loans_per_user - outstanding),
            next_due_date=next_due,
            outstanding_penalties=float(penalties or 0.0),
            **counts,
        )

    # === Maintenance helpers ===

    def loans_due_on(self, day: date, unreminded_only: bool = True) -> list[LoanModel]:
        query = select(LoanDB).where(LoanDB.status == LoanStatus.ACTIVE, LoanDB.due_date == day)
        if unreminded_only:
            query = query.where(LoanDB.reminder_sent.is_(False))
        loans = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to list due loans"
        )
        return [self._loan_to_model(loan) for loan in loans]

    def overdue_loans_to_notify(self) -> list[LoanModel]:
        query = (
            select(LoanDB)
            .where(LoanDB.status == LoanStatus.OVERDUE, LoanDB.overdue_notified.is_(False))
            .order_by(LoanDB.id)
        )
        loans = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to list overdue loans"
        )
        return [self._loan_to_model(loan) for loan in loans]

    def flag_loans(self, loan_ids: list[int], **flags: bool) -> int:
        """Set ``reminder_sent`` / ``overdue_notified`` on the given loans."""
        unknown = set(flags) - {"reminder_sent", "overdue_notified"}
        if unknown:
            raise ValueError(f"Unknown loan flags: {sorted(unknown)}")
        if not loan_ids:
            return 0
        stmt = (
            update(LoanDB)
            .where(LoanDB.id.in_(loan_ids))
            .values(**flags)
            .execution_options(synchronize_session=False)
        )
        with self._transaction("flag loans"):
            result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to flag loans")
        return result.rowcount

