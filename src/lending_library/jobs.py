"""
Maintenance jobs.

- overdue sweep: relabel late active loans, then tell each borrower once
- due-date reminders: warn borrowers a few days before the due date
- notification cleanup: drop old read notifications

Each job takes a session so it can run inside a test transaction or a
script; ``run_all_jobs`` and ``run_periodic`` open their own sessions.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import date, timedelta

from pydantic import BaseModel
from sqlalchemy.orm import Session

from .config import get_config
from .database.loan_repository import LoanRepository
from .database.notification_repository import NotificationOutbox, NotificationRepository
from .database.session import get_session
from .models.notification import NotificationPriority, NotificationType
from .observability import trace_job

logger = logging.getLogger(__name__)


class JobReport(BaseModel):
    marked_overdue: int = 0
    overdue_notices: int = 0
    reminders: int = 0
    notifications_deleted: int = 0


@trace_job("overdue_sweep")
def run_overdue_sweep(session: Session, today: date | None = None) -> int:
    """
    Mark late loans overdue and notify each borrower once per loan.

    Returns:
        Number of overdue notices sent
    """
    repo = LoanRepository(session, clock=(lambda: today) if today else date.today)
    repo.mark_overdue_loans()

    outbox = NotificationOutbox()
    notified = []
    for loan in repo.overdue_loans_to_notify():
        quote = repo.calculate_penalty(loan.id)
        outbox.add(
            loan.user_id,
            type=NotificationType.LOAN_OVERDUE,
            title="Loan overdue",
            message=(
                f'"{loan.book_title}" is {quote.days_overdue} day(s) overdue. '
                f"Penalty so far: {quote.amount:.2f}"
            ),
            priority=NotificationPriority.HIGH,
            related_entity_type="loan",
            related_entity_id=loan.id,
        )
        notified.append(loan.id)

    # Flagged before dispatch; a failed notice is not retried
    repo.flag_loans(notified, overdue_notified=True)
    return NotificationRepository(session).dispatch(outbox)


@trace_job("due_date_reminders")
def send_due_date_reminders(
    session: Session, days_ahead: int | None = None, today: date | None = None
) -> int:
    """Remind borrowers whose active loan is due in exactly ``days_ahead`` days."""
    if days_ahead is None:
        days_ahead = get_config().reminder_days_ahead
    due_day = (today or date.today()) + timedelta(days=days_ahead)
    repo = LoanRepository(session)

    outbox = NotificationOutbox()
    reminded = []
    for loan in repo.loans_due_on(due_day):
        outbox.add(
            loan.user_id,
            type=NotificationType.LOAN_REMINDER,
            title="Due date reminder",
            message=f'"{loan.book_title}" is due back in {days_ahead} day(s), on {loan.due_date}.',
            related_entity_type="loan",
            related_entity_id=loan.id,
        )
        reminded.append(loan.id)

    repo.flag_loans(reminded, reminder_sent=True)
    return NotificationRepository(session).dispatch(outbox)


@trace_job("notification_cleanup")
def cleanup_notifications(session: Session, days_old: int | None = None) -> int:
    if days_old is None:
        days_old = get_config().notification_retention_days
    return NotificationRepository(session).delete_old(days_old)


def run_all_jobs(
    today: date | None = None, session_factory: Callable[[], Session] = get_session
) -> JobReport:
    """Run every job once, each in its own session."""
    report = JobReport()

    with session_factory() as session:
        report.marked_overdue = LoanRepository(
            session, clock=(lambda: today) if today else date.today
        ).mark_overdue_loans()
    with session_factory() as session:
        report.overdue_notices = run_overdue_sweep(session, today=today)
    with session_factory() as session:
        report.reminders = send_due_date_reminders(session, today=today)
    with session_factory() as session:
        report.notifications_deleted = cleanup_notifications(session)

    logger.info("Maintenance run complete: %s", report.model_dump())
    return report


async def run_periodic(
    interval_seconds: int | None = None,
    stop_event: asyncio.Event | None = None,
) -> None:
    """
    Run ``run_all_jobs`` every ``interval_seconds`` until ``stop_event`` is set.

    Job failures are logged and the loop carries on with the next tick.
    """
    interval = interval_seconds
    if interval is None:
        interval = get_config().overdue_sweep_interval_seconds
    stop_event = stop_event or asyncio.Event()

    logger.info("Starting maintenance loop (every %ss)", interval)
    while not stop_event.is_set():
        try:
            await asyncio.to_thread(run_all_jobs)
        except Exception:
            logger.exception("Maintenance run failed")

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except TimeoutError:
            continue
    logger.info("Maintenance loop stopped")
