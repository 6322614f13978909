"""Test configuration and fixtures for the Lending Library.

Every test gets its own SQLite file, a fresh configuration and a fixed
clock. Tool handler tests patch ``get_session`` in the tool modules so the
handlers run against the test session.
"""

from collections.abc import Callable, Generator
from contextlib import contextmanager
from datetime import date, timedelta
from pathlib import Path

import logfire
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from lending_library.config import reset_config
from lending_library.database.loan_repository import LoanRepository
from lending_library.database.schema import Base, Book, Loan, User
from lending_library.database.session import reset_db_manager
from lending_library.models.book import BookStatus
from lending_library.models.loan import LoanStatus
from lending_library.models.user import Actor, UserRole
from lending_library.policies import DEFAULT_POLICY

TOOL_MODULES = [
    "lending_library.tools.loans",
    "lending_library.tools.catalog",
    "lending_library.tools.notifications",
    "lending_library.tools.reviews",
    "lending_library.tools.users",
]


def pytest_configure(config):  # noqa: ARG001
    logfire.configure(send_to_logfire=False, console=False)


class FixedClock:
    """A ``date.today`` replacement that tests can move forward."""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today

    def advance(self, days: int) -> date:
        self.today += timedelta(days=days)
        return self.today


# === Environment ===


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch) -> Generator[None, None, None]:
    """Point configuration at a temporary database and drop cached singletons."""
    for key in ("DEBUG", "LOG_LEVEL", "DATABASE_URL", "TRANSPORT"):
        monkeypatch.delenv(f"LENDING_LIBRARY_{key}", raising=False)
    monkeypatch.setenv("LENDING_LIBRARY_DATABASE_PATH", str(tmp_path / "config_library.db"))
    reset_config()
    reset_db_manager()
    yield
    reset_db_manager()
    reset_config()


# === Database ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_library.db"


@pytest.fixture
def test_database_url(test_db_path: Path) -> str:
    return f"sqlite:///{test_db_path}"


@pytest.fixture
def test_engine(test_database_url: str) -> Generator[Engine, None, None]:
    engine = create_engine(
        test_database_url,
        echo=False,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(test_engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=test_engine, autocommit=False, autoflush=False, expire_on_commit=False
    )


@pytest.fixture
def test_db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def mock_get_session(test_db_session: Session, monkeypatch) -> Session:
    """Make every tool handler use the test session."""

    @contextmanager
    def _mock_get_session():
        yield test_db_session

    for module in TOOL_MODULES:
        monkeypatch.setattr(f"{module}.get_session", _mock_get_session)
    return test_db_session


# === Clock and repositories ===


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(date(2024, 1, 1))


@pytest.fixture
def loan_repo(test_db_session: Session, clock: FixedClock) -> LoanRepository:
    return LoanRepository(test_db_session, policy=DEFAULT_POLICY, clock=clock)


# === Data ===


@pytest.fixture
def make_user(test_db_session: Session) -> Callable[..., User]:
    counter = iter(range(1, 10_000))

    def _make_user(role: UserRole = UserRole.STUDENT, is_active: bool = True, **kwargs) -> User:
        n = next(counter)
        user = User(
            first_name=kwargs.pop("first_name", f"User{n}"),
            last_name=kwargs.pop("last_name", "Test"),
            email=kwargs.pop("email", f"user{n}@example.com"),
            role=role,
            is_active=is_active,
            **kwargs,
        )
        test_db_session.add(user)
        test_db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_book(test_db_session: Session) -> Callable[..., Book]:
    counter = iter(range(1, 10_000))

    def _make_book(total_copies: int = 1, available_copies: int | None = None, **kwargs) -> Book:
        n = next(counter)
        available = total_copies if available_copies is None else available_copies
        book = Book(
            title=kwargs.pop("title", f"Book {n}"),
            author=kwargs.pop("author", f"Author {n}"),
            isbn=kwargs.pop("isbn", f"978000000{n:04d}"),
            category=kwargs.pop("category", "Fiction"),
            total_copies=total_copies,
            available_copies=available,
            status=kwargs.pop(
                "status", BookStatus.AVAILABLE if available > 0 else BookStatus.BORROWED
            ),
            **kwargs,
        )
        test_db_session.add(book)
        test_db_session.commit()
        return book

    return _make_book


@pytest.fixture
def make_loan(test_db_session: Session) -> Callable[..., Loan]:
    """Insert a loan row directly, taking a copy for outstanding statuses."""

    def _make_loan(
        user: User,
        book: Book,
        status: LoanStatus = LoanStatus.ACTIVE,
        loan_date: date = date(2024, 1, 1),
        due_date: date | None = None,
        **kwargs,
    ) -> Loan:
        loan = Loan(
            user_id=user.id,
            book_id=book.id,
            status=status,
            loan_date=loan_date,
            due_date=due_date or loan_date + timedelta(days=14),
            **kwargs,
        )
        if status in (LoanStatus.ACTIVE, LoanStatus.OVERDUE):
            book.available_copies -= 1
            if book.available_copies == 0:
                book.status = BookStatus.BORROWED
        test_db_session.add(loan)
        test_db_session.commit()
        return loan

    return _make_loan


@pytest.fixture
def admin(make_user) -> User:
    return make_user(role=UserRole.ADMIN, first_name="Ada", last_name="Admin")


@pytest.fixture
def student(make_user) -> User:
    return make_user(first_name="Sam", last_name="Student")


@pytest.fixture
def other_student(make_user) -> User:
    return make_user(first_name="Olive", last_name="Other")


@pytest.fixture
def admin_actor(admin: User) -> Actor:
    return Actor(id=admin.id, role=UserRole.ADMIN)


@pytest.fixture
def student_actor(student: User) -> Actor:
    return Actor(id=student.id, role=UserRole.STUDENT)
