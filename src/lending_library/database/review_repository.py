"""Review repository: ratings left by users who borrowed a book."""

import logging

from sqlalchemy import exists, func, select
from sqlalchemy.exc import IntegrityError

from ..errors import BookNotFound, DuplicateError, ReviewNotAllowed
from ..models.book import BookStatus
from ..models.loan import LoanStatus
from ..models.notification import NotificationPriority, NotificationType
from ..models.review import Review as ReviewModel, ReviewCreate
from .notification_repository import NotificationOutbox, NotificationRepository
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import Book as BookDB, Loan as LoanDB, Review as ReviewDB
from .session import safe_commit, safe_query
from .user_repository import UserRepository

logger = logging.getLogger(__name__)

# Loans that let a user review the book
_REVIEWABLE_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE, LoanStatus.RETURNED)


class ReviewRepository(BaseRepository[ReviewDB, ReviewModel]):
    @property
    def model_class(self):
        return ReviewDB

    @property
    def response_schema(self):
        return ReviewModel

    def _to_response_model(self, db_obj: ReviewDB) -> ReviewModel:
        review = ReviewModel.model_validate(db_obj, from_attributes=True)
        review.user_name = db_obj.user.full_name if db_obj.user else None
        review.book_title = db_obj.book.title if db_obj.book else None
        return review

    def has_borrowed(self, user_id: int, book_id: int) -> bool:
        query = select(
            exists().where(
                LoanDB.user_id == user_id,
                LoanDB.book_id == book_id,
                LoanDB.status.in_(_REVIEWABLE_STATUSES),
            )
        )
        return bool(
            safe_query(self.session, lambda s: s.execute(query).scalar(), "Failed to check loans")
        )

    def create(self, user_id: int, data: ReviewCreate) -> ReviewModel:
        """
        Add a review; admins are told about it after commit.

        Raises:
            UserNotFound: If the user does not exist or is inactive
            BookNotFound: If the book does not exist
            ReviewNotAllowed: If the user never borrowed the book
            DuplicateError: If the user already reviewed the book
        """
        users = UserRepository(self.session)
        user = users.get_active(user_id)
        book = self.session.get(BookDB, data.book_id)
        if book is None or book.status == BookStatus.DELETED:
            raise BookNotFound(data.book_id)
        if not self.has_borrowed(user_id, data.book_id):
            raise ReviewNotAllowed("You can only review books you have borrowed")

        review = ReviewDB(user_id=user_id, **data.model_dump())
        self.session.add(review)
        try:
            safe_commit(self.session, "create review")
        except IntegrityError as e:
            raise DuplicateError("You have already reviewed this book") from e
        self.session.refresh(review)

        outbox = NotificationOutbox()
        outbox.add_many(
            users.admin_ids(),
            type=NotificationType.REVIEW_CREATED,
            title="New review",
            message=f'{user.full_name} rated "{book.title}" {data.rating}/5.',
            priority=NotificationPriority.LOW,
            related_entity_type="review",
            related_entity_id=review.id,
        )
        NotificationRepository(self.session).dispatch(outbox)

        logger.info("User %s reviewed book %s", user_id, data.book_id)
        return self._to_response_model(review)

    def list_for_book(
        self, book_id: int, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[ReviewModel]:
        query = (
            select(ReviewDB)
            .where(ReviewDB.book_id == book_id)
            .order_by(ReviewDB.created_at.desc(), ReviewDB.id.desc())
        )
        return self._paginate(query, pagination or PaginationParams())

    def average_rating(self, book_id: int) -> float | None:
        query = select(func.avg(ReviewDB.rating)).where(ReviewDB.book_id == book_id)
        value = safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to compute rating"
        )
        return round(float(value), 2) if value is not None else None
