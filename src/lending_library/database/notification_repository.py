"""
Notification repository and post-commit dispatch.

Lifecycle operations do not write notifications inside their own
transaction. They collect ``NotificationIntent`` objects in a
``NotificationOutbox`` and, once the loan change has committed, hand the
outbox to ``NotificationRepository.dispatch``. Each notification is then
written in its own short transaction; a failure is logged and skipped, and
never undoes the loan change that triggered it.
"""

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from ..errors import LibraryError, NotificationNotFound
from ..models.notification import (
    Notification as NotificationModel,
    NotificationIntent,
    NotificationPriority,
    NotificationType,
)
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import Notification as NotificationDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class NotificationOutbox:
    """Notifications waiting for the surrounding transaction to commit."""

    def __init__(self) -> None:
        self._intents: list[NotificationIntent] = []

    def add(
        self,
        user_id: int,
        type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        related_entity_type: str | None = None,
        related_entity_id: int | None = None,
    ) -> None:
        self._intents.append(
            NotificationIntent(
                user_id=user_id,
                type=type,
                title=title,
                message=message,
                priority=priority,
                related_entity_type=related_entity_type,
                related_entity_id=related_entity_id,
            )
        )

    def add_many(self, user_ids: Iterable[int], **kwargs) -> None:
        for user_id in user_ids:
            self.add(user_id, **kwargs)

    def clear(self) -> None:
        self._intents.clear()

    def __iter__(self) -> Iterator[NotificationIntent]:
        return iter(list(self._intents))

    def __len__(self) -> int:
        return len(self._intents)


class NotificationRepository(BaseRepository[NotificationDB, NotificationModel]):
    @property
    def model_class(self):
        return NotificationDB

    @property
    def response_schema(self):
        return NotificationModel

    def dispatch(self, outbox: NotificationOutbox) -> int:
        """
        Write every intent in ``outbox``, one transaction each.

        Must be called after the triggering change has committed.

        Returns:
            Number of notifications written
        """
        sent = 0
        for intent in outbox:
            try:
                self.create(intent)
                sent += 1
            except (LibraryError, SQLAlchemyError):
                self.session.rollback()
                logger.exception(
                    "Failed to send %s notification to user %s", intent.type.value, intent.user_id
                )
        outbox.clear()
        return sent

    def create(self, intent: NotificationIntent) -> NotificationModel:
        notification = NotificationDB(**intent.model_dump())
        self.session.add(notification)
        safe_commit(self.session, "create notification")
        self.session.refresh(notification)
        return self._to_response_model(notification)

    def list_for_user(
        self,
        user_id: int,
        unread_only: bool = False,
        pagination: PaginationParams | None = None,
    ) -> PaginatedResponse[NotificationModel]:
        query = (
            select(NotificationDB)
            .where(NotificationDB.user_id == user_id)
            .order_by(NotificationDB.created_at.desc(), NotificationDB.id.desc())
        )
        if unread_only:
            query = query.where(NotificationDB.is_read.is_(False))
        return self._paginate(query, pagination or PaginationParams())

    def unread_count(self, user_id: int) -> int:
        query = select(func.count()).where(
            NotificationDB.user_id == user_id, NotificationDB.is_read.is_(False)
        )
        return safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to count notifications"
        ) or 0

    def mark_as_read(self, notification_id: int, user_id: int) -> NotificationModel:
        """
        Mark one of ``user_id``'s notifications as read.

        Raises:
            NotificationNotFound: If it does not exist or belongs to someone else
        """
        notification = self._get_db_obj(notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotificationNotFound(notification_id)

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now()
            safe_commit(self.session, "mark notification read")
        return self._to_response_model(notification)

    def mark_all_as_read(self, user_id: int) -> int:
        stmt = (
            update(NotificationDB)
            .where(NotificationDB.user_id == user_id, NotificationDB.is_read.is_(False))
            .values(is_read=True, read_at=datetime.now())
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to mark notifications")
        safe_commit(self.session, "mark all notifications read")
        return result.rowcount

    def delete(self, notification_id: int, user_id: int) -> None:
        notification = self._get_db_obj(notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotificationNotFound(notification_id)
        self.session.delete(notification)
        safe_commit(self.session, "delete notification")

    def delete_old(self, days_old: int = 30, now: datetime | None = None) -> int:
        """Delete read notifications older than ``days_old`` days."""
        cutoff = (now or datetime.now()) - timedelta(days=days_old)
        stmt = (
            delete(NotificationDB)
            .where(NotificationDB.is_read.is_(True), NotificationDB.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(
            self.session, lambda s: s.execute(stmt), "Failed to delete old notifications"
        )
        safe_commit(self.session, "delete old notifications")
        logger.info("Deleted %d notifications older than %d days", result.rowcount, days_old)
        return result.rowcount
