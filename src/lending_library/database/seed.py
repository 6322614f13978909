"""
Sample data for development databases.

Generates users, books and a loan history that respects the same rules as
the lifecycle engine: copy counts match the outstanding loans, nobody holds
two open loans for one title and nobody goes over the loan limit.
"""

import logging
import random
from datetime import date, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from ..models.book import BookStatus
from ..models.loan import LoanStatus
from ..models.user import UserRole
from ..policies import DEFAULT_POLICY, LoanPolicy, quote_penalty
from .schema import Book, Loan, User

logger = logging.getLogger(__name__)

CATEGORIES = [
    "Fiction",
    "Science Fiction",
    "Mystery",
    "History",
    "Biography",
    "Science",
    "Philosophy",
    "Poetry",
    "Computer Science",
    "Mathematics",
]

RETURN_CONDITIONS = ["excellent", "good", "good", "good", "fair"]


def generate_isbn13(rng: random.Random) -> str:
    """Generate a valid ISBN-13 number."""
    body = f"978{rng.randint(0, 9)}{rng.randint(1000, 9999)}{rng.randint(1000, 9999)}"
    total = sum(int(digit) * (3 if i % 2 else 1) for i, digit in enumerate(body))
    return f"{body}{(10 - total % 10) % 10}"


def generate_users(fake: Faker, rng: random.Random, num_users: int = 40) -> list[User]:
    users = [
        User(first_name="Ada", last_name="Admin", email="admin@example.com", role=UserRole.ADMIN)
    ]
    emails = {users[0].email}
    while len(users) < num_users:
        first, last = fake.first_name(), fake.last_name()
        local = "".join(c for c in f"{first}.{last}" if c.isalnum() or c == ".")
        email = f"{local}{rng.randint(1, 999)}@example.com".lower()
        if email in emails:
            continue
        emails.add(email)
        users.append(
            User(
                first_name=first,
                last_name=last,
                email=email,
                role=UserRole.LIBRARIAN if rng.random() < 0.1 else UserRole.STUDENT,
                is_active=rng.random() > 0.05,
            )
        )
    return users


def generate_books(fake: Faker, rng: random.Random, num_books: int = 150) -> list[Book]:
    books = []
    isbns: set[str] = set()
    for _ in range(num_books):
        isbn = generate_isbn13(rng)
        if isbn in isbns:
            continue
        isbns.add(isbn)
        copies = rng.choice([1, 1, 2, 2, 3, 5])
        books.append(
            Book(
                title=fake.catch_phrase().title(),
                author=fake.name(),
                isbn=isbn,
                category=rng.choice(CATEGORIES),
                description=fake.paragraph(nb_sentences=3),
                total_copies=copies,
                available_copies=copies,
                status=BookStatus.AVAILABLE,
            )
        )
    return books


def generate_loans(
    users: list[User],
    books: list[Book],
    rng: random.Random,
    num_loans: int = 300,
    today: date | None = None,
    policy: LoanPolicy = DEFAULT_POLICY,
) -> list[Loan]:
    """
    Build a loan history: mostly returned loans, plus open ones.

    Users and books must already have ids. Book copy counts are updated in
    place for every active or overdue loan created.
    """
    today = today or date.today()
    admin = next(u for u in users if u.role == UserRole.ADMIN)
    borrowers = [u for u in users if u.is_active and u.role != UserRole.ADMIN]
    open_pairs: set[tuple[int, int]] = set()
    outstanding: dict[int, int] = {u.id: 0 for u in borrowers}
    loans = []

    for _ in range(int(num_loans * 0.7)):
        user, book = rng.choice(borrowers), rng.choice(books)
        loan_date = today - timedelta(days=rng.randint(60, 700))
        due_date = loan_date + timedelta(days=policy.loan_period_days)
        late_days = rng.randint(1, 30) if rng.random() < 0.2 else 0
        return_date = (
            due_date + timedelta(days=late_days)
            if late_days
            else loan_date + timedelta(days=rng.randint(1, policy.loan_period_days))
        )
        loans.append(
            Loan(
                user_id=user.id,
                book_id=book.id,
                status=LoanStatus.RETURNED,
                loan_date=loan_date,
                due_date=due_date,
                return_date=return_date,
                return_condition=rng.choice(RETURN_CONDITIONS),
                returned_by=user.id,
                processed_by=admin.id,
                penalty_amount=quote_penalty(due_date, return_date, policy).amount,
                reminder_sent=True,
                overdue_notified=bool(late_days),
            )
        )

    for _ in range(int(num_loans * 0.3)):
        user, book = rng.choice(borrowers), rng.choice(books)
        if (user.id, book.id) in open_pairs:
            continue
        if outstanding[user.id] >= policy.max_loans_per_user:
            continue

        roll = rng.random()
        if roll < 0.25:
            loans.append(
                Loan(
                    user_id=user.id,
                    book_id=book.id,
                    status=LoanStatus.PENDING,
                    loan_date=today,
                    due_date=today + timedelta(days=policy.loan_period_days),
                )
            )
            open_pairs.add((user.id, book.id))
            continue

        if book.available_copies <= 0:
            continue

        loan_date = today - timedelta(days=rng.randint(0, 30))
        due_date = loan_date + timedelta(days=policy.loan_period_days)
        status = LoanStatus.OVERDUE if due_date < today else LoanStatus.ACTIVE
        loans.append(
            Loan(
                user_id=user.id,
                book_id=book.id,
                status=status,
                loan_date=loan_date,
                due_date=due_date,
                processed_by=admin.id,
                renewal_count=0,
            )
        )
        open_pairs.add((user.id, book.id))
        outstanding[user.id] += 1
        book.available_copies -= 1
        if book.available_copies == 0:
            book.status = BookStatus.BORROWED

    return loans


def seed_database(session: Session, seed: int = 42, today: date | None = None) -> dict[str, int]:
    """Insert sample users, books and loans; returns row counts."""
    fake = Faker()
    Faker.seed(seed)
    rng = random.Random(seed)

    users = generate_users(fake, rng)
    session.add_all(users)
    books = generate_books(fake, rng)
    session.add_all(books)
    session.flush()

    loans = generate_loans(users, books, rng, today=today)
    session.add_all(loans)
    session.commit()

    counts = {"users": len(users), "books": len(books), "loans": len(loans)}
    logger.info("Seeded database: %s", counts)
    return counts
