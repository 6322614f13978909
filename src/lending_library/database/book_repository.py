"""
Book repository: the catalog and the per-title copy counter.

This is the only code that writes ``books.available_copies``. The two
counter operations, ``reserve_quantity`` and ``release_quantity``, run
inside the caller's transaction and never commit: the loan lifecycle engine
decides when to commit, so a failed validation never leaves a copy taken.

Each counter write is a guarded UPDATE (``available_copies >= qty`` to take,
``available_copies + qty <= total_copies`` to give back) issued after the row
has been locked with ``SELECT ... FOR UPDATE``. On PostgreSQL the lock
serializes concurrent validations of the same title; on SQLite the lock is a
no-op and the guard alone keeps the counter from going negative.
"""

import logging
from enum import Enum

from pydantic import BaseModel, Field
from sqlalchemy import and_, exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import func

from ..errors import BookNotFound, DuplicateError, PolicyViolation
from ..models.book import (
    CIRCULATING_STATUSES,
    Book as BookModel,
    BookAvailability,
    BookCreate,
    BookStatus,
)
from ..models.loan import OUTSTANDING_STATUSES
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import Book as BookDB, Loan as LoanDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class BookSortOptions(str, Enum):
    TITLE = "title"
    AUTHOR = "author"
    AVAILABILITY = "availability"
    CREATED_AT = "created_at"


class BookSearchParams(BaseModel):
    """Catalog search filters."""

    query: str | None = Field(None, description="Matches title, author or ISBN")
    title: str | None = None
    author: str | None = None
    category: str | None = None
    isbn: str | None = None
    available_only: bool = False
    include_deleted: bool = False


class BookRepository(BaseRepository[BookDB, BookModel]):
    """Catalog reads and writes plus the copy counter."""

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    # === Copy counter ===

    def _lock_book(self, book_id: int) -> BookDB:
        book = self._get_db_obj(book_id, for_update=True)
        if book is None:
            raise BookNotFound(book_id)
        return book

    def reserve_quantity(self, book_id: int, qty: int = 1) -> bool:
        """
        Take ``qty`` copies off the shelf.

        Returns:
            True if the copies were taken, False if too few were available

        Raises:
            BookNotFound: If the book does not exist
        """
        if qty < 1:
            raise ValueError("qty must be >= 1")

        book = self._lock_book(book_id)
        if book.status == BookStatus.DELETED:
            return False

        stmt = (
            update(BookDB)
            .where(BookDB.id == book_id, BookDB.available_copies >= qty)
            .values(available_copies=BookDB.available_copies - qty, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        result = safe_query(
            self.session, lambda s: s.execute(stmt), "Failed to reserve book copy"
        )
        if result.rowcount == 0:
            logger.info("No copy of book %s left to reserve", book_id)
            return False

        self._sync_status(book)
        logger.debug("Reserved %d copy(ies) of book %s", qty, book_id)
        return True

    def release_quantity(self, book_id: int, qty: int = 1) -> bool:
        """
        Put ``qty`` copies back on the shelf, never above ``total_copies``.

        Returns:
            True if the copies were released, False if that would exceed the total
        """
        if qty < 1:
            raise ValueError("qty must be >= 1")

        book = self._lock_book(book_id)

        stmt = (
            update(BookDB)
            .where(BookDB.id == book_id, BookDB.available_copies + qty <= BookDB.total_copies)
            .values(available_copies=BookDB.available_copies + qty, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        result = safe_query(
            self.session, lambda s: s.execute(stmt), "Failed to release book copy"
        )
        if result.rowcount == 0:
            logger.warning("Release of book %s would exceed total copies", book_id)
            return False

        self._sync_status(book)
        logger.debug("Released %d copy(ies) of book %s", qty, book_id)
        return True

    def _sync_status(self, book: BookDB) -> None:
        """Reload the counter and flip available/borrowed to match it."""
        self.session.refresh(book)
        if book.status not in CIRCULATING_STATUSES:
            return
        book.status = BookStatus.BORROWED if book.available_copies == 0 else BookStatus.AVAILABLE
        self.session.flush()

    def check_availability(self, book_id: int) -> BookAvailability:
        book = self._get_db_obj(book_id)
        if book is None:
            raise BookNotFound(book_id)
        return BookAvailability(
            book_id=book.id,
            title=book.title,
            status=book.status,
            total_copies=book.total_copies,
            available_copies=book.available_copies,
            lent_copies=self._count_lent(book_id),
        )

    def _count_lent(self, book_id: int) -> int:
        query = (
            select(func.count())
            .select_from(LoanDB)
            .where(LoanDB.book_id == book_id, LoanDB.status.in_(OUTSTANDING_STATUSES))
        )
        return safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to count lent copies"
        ) or 0

    # === Catalog ===

    def get(self, book_id: int) -> BookModel:
        book = self.get_by_id(book_id)
        if book is None:
            raise BookNotFound(book_id)
        return book

    def create(self, data: BookCreate) -> BookModel:
        """
        Add a title to the catalog with all copies on the shelf.

        Raises:
            DuplicateError: If the ISBN is already catalogued
        """
        book = BookDB(
            **data.model_dump(),
            available_copies=data.total_copies,
            status=BookStatus.AVAILABLE if data.total_copies > 0 else BookStatus.BORROWED,
        )
        self.session.add(book)
        try:
            safe_commit(self.session, "create book")
        except IntegrityError as e:
            raise DuplicateError(f"Book with ISBN {data.isbn} already exists") from e
        self.session.refresh(book)
        logger.info("Catalogued book %s: %s", book.id, book.title)
        return self._to_response_model(book)

    def search(
        self,
        search_params: BookSearchParams,
        pagination: PaginationParams | None = None,
        sort_by: BookSortOptions = BookSortOptions.TITLE,
        sort_desc: bool = False,
    ) -> PaginatedResponse[BookModel]:
        query = select(BookDB)
        filters = []

        if search_params.query:
            term = f"%{search_params.query}%"
            filters.append(
                or_(BookDB.title.ilike(term), BookDB.author.ilike(term), BookDB.isbn.like(term))
            )
        if search_params.title:
            filters.append(BookDB.title.ilike(f"%{search_params.title}%"))
        if search_params.author:
            filters.append(BookDB.author.ilike(f"%{search_params.author}%"))
        if search_params.category:
            filters.append(BookDB.category.ilike(search_params.category))
        if search_params.isbn:
            filters.append(BookDB.isbn == search_params.isbn.replace("-", ""))
        if search_params.available_only:
            filters.append(BookDB.available_copies > 0)
        if not search_params.include_deleted:
            filters.append(BookDB.status != BookStatus.DELETED)

        if filters:
            query = query.where(and_(*filters))

        sort_field = {
            BookSortOptions.TITLE: BookDB.title,
            BookSortOptions.AUTHOR: BookDB.author,
            BookSortOptions.AVAILABILITY: BookDB.available_copies,
            BookSortOptions.CREATED_AT: BookDB.created_at,
        }.get(sort_by, BookDB.title)
        query = query.order_by(sort_field.desc() if sort_desc else sort_field.asc(), BookDB.id)

        return self._paginate(query, pagination or PaginationParams())

    def update_total_copies(self, book_id: int, total_copies: int) -> BookModel:
        """
        Change how many copies the library owns.

        The shelf count moves by the same delta; the new total may not drop
        below the number of copies currently lent out.
        """
        if total_copies < 0:
            raise ValueError("total_copies must be >= 0")

        book = self._lock_book(book_id)
        lent = book.total_copies - book.available_copies
        if total_copies < lent:
            raise PolicyViolation(
                f"Cannot set total copies to {total_copies}: {lent} copies are on loan"
            )

        book.total_copies = total_copies
        book.available_copies = total_copies - lent
        if book.status in CIRCULATING_STATUSES:
            book.status = BookStatus.BORROWED if book.available_copies == 0 else BookStatus.AVAILABLE
        safe_commit(self.session, "update book copies")
        self.session.refresh(book)
        return self._to_response_model(book)

    def set_status(self, book_id: int, status: BookStatus) -> BookModel:
        """
        Take a title out of (or back into) circulation: maintenance, lost...

        Circulating statuses are recomputed from the copy count, so asking for
        ``available`` on a title with every copy out yields ``borrowed``.

        Raises:
            BookNotFound: If the book does not exist or was deleted
            PolicyViolation: If ``status`` is ``deleted``; use ``delete``
        """
        if status == BookStatus.DELETED:
            raise PolicyViolation("Use book deletion to remove a title from the catalog")
        book = self._lock_book(book_id)
        if book.status == BookStatus.DELETED:
            raise BookNotFound(book_id)
        if status in CIRCULATING_STATUSES:
            status = BookStatus.BORROWED if book.available_copies == 0 else BookStatus.AVAILABLE
        book.status = status
        safe_commit(self.session, "update book status")
        self.session.refresh(book)
        return self._to_response_model(book)

    def delete(self, book_id: int) -> bool:
        """
        Remove a title from the catalog.

        Books referenced by any loan are soft-deleted (status ``deleted``) so
        loan history keeps its join target; others are removed outright.

        Returns:
            True if the row was physically deleted, False if soft-deleted
        """
        book = self._lock_book(book_id)
        has_loans = safe_query(
            self.session,
            lambda s: s.execute(select(exists().where(LoanDB.book_id == book_id))).scalar(),
            "Failed to check book loans",
        )
        outstanding = self._count_lent(book_id)
        if outstanding:
            raise PolicyViolation(f"Cannot delete book {book_id}: {outstanding} copies are on loan")

        if has_loans:
            book.status = BookStatus.DELETED
            safe_commit(self.session, "soft delete book")
            logger.info("Soft-deleted book %s", book_id)
            return False

        self.session.delete(book)
        safe_commit(self.session, "delete book")
        logger.info("Deleted book %s", book_id)
        return True
