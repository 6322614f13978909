"""Tests for book reviews."""

import pytest
from sqlalchemy import select

from lending_library.database.review_repository import ReviewRepository
from lending_library.database.schema import Notification as NotificationDB
from lending_library.errors import BookNotFound, DuplicateError, ReviewNotAllowed, UserNotFound
from lending_library.models.book import BookStatus
from lending_library.models.loan import LoanStatus
from lending_library.models.notification import NotificationType
from lending_library.models.review import ReviewCreate


@pytest.fixture
def review_repo(test_db_session):
    return ReviewRepository(test_db_session)


def test_borrower_can_review(review_repo, student, admin, make_book, make_loan, test_db_session):
    book = make_book(title="Middlemarch")
    make_loan(student, book, status=LoanStatus.RETURNED)

    review = review_repo.create(student.id, ReviewCreate(book_id=book.id, rating=4, comment="Long"))

    assert review.rating == 4
    assert review.user_name == "Sam Student"
    assert review.book_title == "Middlemarch"
    notice = test_db_session.execute(
        select(NotificationDB).where(NotificationDB.type == NotificationType.REVIEW_CREATED)
    ).scalar_one()
    assert notice.user_id == admin.id
    assert notice.related_entity_id == review.id


def test_active_loan_is_enough(review_repo, student, make_book, make_loan):
    book = make_book()
    make_loan(student, book, status=LoanStatus.ACTIVE)
    assert review_repo.create(student.id, ReviewCreate(book_id=book.id, rating=5)).id


@pytest.mark.parametrize("status", [LoanStatus.PENDING, LoanStatus.REFUSED, LoanStatus.CANCELLED])
def test_loans_that_never_went_out_do_not_count(review_repo, student, make_book, make_loan, status):
    book = make_book()
    make_loan(student, book, status=status)
    with pytest.raises(ReviewNotAllowed):
        review_repo.create(student.id, ReviewCreate(book_id=book.id, rating=3))


def test_one_review_per_book(review_repo, student, make_book, make_loan):
    book = make_book()
    make_loan(student, book, status=LoanStatus.RETURNED)
    review_repo.create(student.id, ReviewCreate(book_id=book.id, rating=2))

    with pytest.raises(DuplicateError):
        review_repo.create(student.id, ReviewCreate(book_id=book.id, rating=5))


def test_unknown_user_or_book(review_repo, student, make_book):
    with pytest.raises(UserNotFound):
        review_repo.create(999, ReviewCreate(book_id=make_book().id, rating=3))
    with pytest.raises(BookNotFound):
        review_repo.create(student.id, ReviewCreate(book_id=999, rating=3))
    with pytest.raises(BookNotFound):
        deleted = make_book(status=BookStatus.DELETED)
        review_repo.create(student.id, ReviewCreate(book_id=deleted.id, rating=3))


def test_rating_range():
    with pytest.raises(ValueError):
        ReviewCreate(book_id=1, rating=6)


def test_listing_and_average(review_repo, student, other_student, make_book, make_loan):
    book = make_book()
    make_loan(student, book, status=LoanStatus.RETURNED)
    make_loan(other_student, book, status=LoanStatus.RETURNED)
    assert review_repo.average_rating(book.id) is None

    review_repo.create(student.id, ReviewCreate(book_id=book.id, rating=5))
    review_repo.create(other_student.id, ReviewCreate(book_id=book.id, rating=2))

    assert review_repo.list_for_book(book.id).total == 2
    assert review_repo.average_rating(book.id) == 3.5
