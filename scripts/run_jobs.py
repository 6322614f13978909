#!/usr/bin/env python3
"""
Run the Lending Library maintenance jobs.

Usage:
    python scripts/run_jobs.py overdue [--today YYYY-MM-DD]
    python scripts/run_jobs.py reminders [--days-ahead N] [--today YYYY-MM-DD]
    python scripts/run_jobs.py cleanup [--days-old N]
    python scripts/run_jobs.py all [--today YYYY-MM-DD]
    python scripts/run_jobs.py loop [--interval SECONDS]
"""

import argparse
import asyncio
import logging
import sys
from datetime import date

from lending_library.database import get_db_manager, session_scope
from lending_library.errors import LibraryError
from lending_library.jobs import (
    cleanup_notifications,
    run_all_jobs,
    run_overdue_sweep,
    run_periodic,
    send_due_date_reminders,
)
from lending_library.observability import initialize_observability

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Run Lending Library maintenance jobs")
    parser.add_argument(
        "job", choices=["overdue", "reminders", "cleanup", "all", "loop"], help="Job to run"
    )
    parser.add_argument("--today", type=date.fromisoformat, help="Reference date (YYYY-MM-DD)")
    parser.add_argument("--days-ahead", type=int, help="Reminder horizon in days")
    parser.add_argument("--days-old", type=int, help="Age of read notifications to delete")
    parser.add_argument("--interval", type=int, help="Seconds between runs in loop mode")
    args = parser.parse_args()

    initialize_observability()

    try:
        if args.job == "overdue":
            with session_scope() as session:
                sent = run_overdue_sweep(session, today=args.today)
            logger.info("Sent %d overdue notice(s)", sent)
        elif args.job == "reminders":
            with session_scope() as session:
                sent = send_due_date_reminders(
                    session, days_ahead=args.days_ahead, today=args.today
                )
            logger.info("Sent %d reminder(s)", sent)
        elif args.job == "cleanup":
            with session_scope() as session:
                deleted = cleanup_notifications(session, days_old=args.days_old)
            logger.info("Deleted %d notification(s)", deleted)
        elif args.job == "all":
            report = run_all_jobs(today=args.today)
            logger.info("Report: %s", report.model_dump())
        else:
            asyncio.run(run_periodic(interval_seconds=args.interval))
    except KeyboardInterrupt:
        logger.info("Stopped by user")
    except LibraryError:
        logger.exception("Maintenance job failed")
        sys.exit(1)
    finally:
        get_db_manager().close()


if __name__ == "__main__":
    main()
