"""Tests for the maintenance jobs."""

import asyncio
from datetime import date, datetime

from sqlalchemy import select

from lending_library import jobs
from lending_library.database.schema import Loan as LoanDB
from lending_library.database.schema import Notification as NotificationDB
from lending_library.errors import TransientInfrastructureError
from lending_library.models.loan import LoanStatus
from lending_library.models.notification import NotificationPriority, NotificationType

TODAY = date(2024, 1, 1)


def notices(session, type: NotificationType) -> list[NotificationDB]:
    return list(
        session.execute(select(NotificationDB).where(NotificationDB.type == type)).scalars()
    )


class TestOverdueSweep:
    def test_marks_and_notifies_once(self, test_db_session, student, make_book, make_loan):
        loan = make_loan(student, make_book(), loan_date=date(2023, 12, 1), due_date=date(2023, 12, 22))

        assert jobs.run_overdue_sweep(test_db_session, today=TODAY) == 1

        row = test_db_session.get(LoanDB, loan.id, populate_existing=True)
        assert row.status == LoanStatus.OVERDUE
        assert row.overdue_notified is True
        [notice] = notices(test_db_session, NotificationType.LOAN_OVERDUE)
        assert notice.user_id == student.id
        assert notice.priority == NotificationPriority.HIGH
        assert "10 day(s) overdue" in notice.message
        assert "2.50" in notice.message

        assert jobs.run_overdue_sweep(test_db_session, today=date(2024, 1, 5)) == 0
        assert len(notices(test_db_session, NotificationType.LOAN_OVERDUE)) == 1

    def test_loans_marked_elsewhere_are_still_notified(
        self, test_db_session, student, make_book, make_loan
    ):
        make_loan(
            student,
            make_book(),
            status=LoanStatus.OVERDUE,
            loan_date=date(2023, 12, 1),
            due_date=date(2023, 12, 20),
        )
        assert jobs.run_overdue_sweep(test_db_session, today=TODAY) == 1

    def test_nothing_late(self, test_db_session, student, make_book, make_loan):
        make_loan(student, make_book(), loan_date=TODAY)
        assert jobs.run_overdue_sweep(test_db_session, today=TODAY) == 0


class TestDueDateReminders:
    def test_reminds_loans_due_in_window(self, test_db_session, student, other_student, make_book, make_loan):
        due_soon = make_loan(student, make_book(), loan_date=date(2023, 12, 21), due_date=date(2024, 1, 4))
        make_loan(other_student, make_book(), loan_date=date(2023, 12, 22), due_date=date(2024, 1, 5))
        make_loan(other_student, make_book(), status=LoanStatus.PENDING, due_date=date(2024, 1, 4))

        assert jobs.send_due_date_reminders(test_db_session, days_ahead=3, today=TODAY) == 1

        [reminder] = notices(test_db_session, NotificationType.LOAN_REMINDER)
        assert reminder.user_id == student.id
        assert reminder.related_entity_id == due_soon.id
        assert "2024-01-04" in reminder.message

    def test_each_loan_is_reminded_once(self, test_db_session, student, make_book, make_loan):
        make_loan(student, make_book(), loan_date=date(2023, 12, 21), due_date=date(2024, 1, 4))

        assert jobs.send_due_date_reminders(test_db_session, days_ahead=3, today=TODAY) == 1
        assert jobs.send_due_date_reminders(test_db_session, days_ahead=3, today=TODAY) == 0

    def test_zero_days_ahead_means_due_today(self, test_db_session, student, make_book, make_loan):
        make_loan(student, make_book(), loan_date=date(2023, 12, 18), due_date=TODAY)
        make_loan(student, make_book(), loan_date=date(2023, 12, 21), due_date=date(2024, 1, 4))

        assert jobs.send_due_date_reminders(test_db_session, days_ahead=0, today=TODAY) == 1

        [reminder] = notices(test_db_session, NotificationType.LOAN_REMINDER)
        assert "in 0 day(s)" in reminder.message


class TestCleanup:
    def test_removes_old_read_notifications(self, test_db_session, student):
        old_read = NotificationDB(
            user_id=student.id,
            type=NotificationType.SYSTEM,
            title="Old",
            message="Read long ago",
            is_read=True,
            created_at=datetime(2020, 1, 1),
        )
        old_unread = NotificationDB(
            user_id=student.id,
            type=NotificationType.SYSTEM,
            title="Old",
            message="Never read",
            created_at=datetime(2020, 1, 1),
        )
        test_db_session.add_all([old_read, old_unread])
        test_db_session.commit()

        assert jobs.cleanup_notifications(test_db_session, days_old=30) == 1

        remaining = list(test_db_session.execute(select(NotificationDB.message)).scalars())
        assert remaining == ["Never read"]


class TestRunAllJobs:
    def test_report(self, session_factory, student, other_student, make_book, make_loan):
        make_loan(student, make_book(), loan_date=date(2023, 12, 1), due_date=date(2023, 12, 20))
        make_loan(other_student, make_book(), loan_date=date(2023, 12, 21), due_date=date(2024, 1, 4))

        report = jobs.run_all_jobs(today=TODAY, session_factory=session_factory)

        assert report.marked_overdue == 1
        assert report.overdue_notices == 1
        assert report.reminders == 1
        assert report.notifications_deleted == 0


class TestRunPeriodic:
    async def test_keeps_running_after_a_failed_run(self, monkeypatch, caplog):
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()
        calls = []

        def fake_run_all_jobs():
            calls.append(1)
            if len(calls) == 1:
                raise TransientInfrastructureError("database unavailable")
            loop.call_soon_threadsafe(stop_event.set)
            return jobs.JobReport()

        monkeypatch.setattr(jobs, "run_all_jobs", fake_run_all_jobs)

        await asyncio.wait_for(jobs.run_periodic(interval_seconds=1, stop_event=stop_event), timeout=10)

        assert len(calls) == 2
        assert "Maintenance run failed" in caplog.text

    async def test_unexpected_errors_do_not_end_the_loop(self, monkeypatch, caplog):
        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()
        calls = []

        def fake_run_all_jobs():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("unexpected row shape")
            loop.call_soon_threadsafe(stop_event.set)
            return jobs.JobReport()

        monkeypatch.setattr(jobs, "run_all_jobs", fake_run_all_jobs)

        await asyncio.wait_for(jobs.run_periodic(interval_seconds=1, stop_event=stop_event), timeout=10)

        assert len(calls) == 2
        [record] = [r for r in caplog.records if r.exc_info]
        assert record.exc_info[0] is RuntimeError

    async def test_stops_immediately_when_already_stopped(self, monkeypatch):
        stop_event = asyncio.Event()
        stop_event.set()
        calls = []
        monkeypatch.setattr(jobs, "run_all_jobs", lambda: calls.append(1))

        await jobs.run_periodic(interval_seconds=1, stop_event=stop_event)

        assert calls == []
