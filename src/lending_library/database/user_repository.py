"""User repository: account lookups used by the lending workflow."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateError, UserNotFound
from ..models.user import User as UserModel, UserCreate, UserRole
from .repository import BaseRepository, PaginatedResponse, PaginationParams
from .schema import User as UserDB
from .session import safe_commit, safe_query

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[UserDB, UserModel]):
    @property
    def model_class(self):
        return UserDB

    @property
    def response_schema(self):
        return UserModel

    def create(self, data: UserCreate) -> UserModel:
        """
        Create an account.

        Raises:
            DuplicateError: If the email is already registered
        """
        user = UserDB(**data.model_dump())
        self.session.add(user)
        try:
            safe_commit(self.session, "create user")
        except IntegrityError as e:
            raise DuplicateError(f"User with email {data.email} already exists") from e
        self.session.refresh(user)
        logger.info("Created user %s (%s)", user.id, user.role.value)
        return self._to_response_model(user)

    def get(self, user_id: int) -> UserModel:
        user = self.get_by_id(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return user

    def get_by_email(self, email: str) -> UserModel | None:
        query = select(UserDB).where(UserDB.email == email.strip().lower())
        user = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get user by email",
        )
        return self._to_response_model(user) if user else None

    def get_active(self, user_id: int, for_update: bool = False) -> UserDB:
        """
        Return the row for an active account, or raise ``UserNotFound``.

        With ``for_update`` the row stays locked until the transaction ends;
        loan requests and validations for the same user are serialized on it.
        """
        user = self._get_db_obj(user_id, for_update=for_update)
        if user is None or not user.is_active:
            raise UserNotFound(user_id)
        return user

    def admin_ids(self) -> list[int]:
        query = (
            select(UserDB.id)
            .where(UserDB.role == UserRole.ADMIN, UserDB.is_active.is_(True))
            .order_by(UserDB.id)
        )
        return list(
            safe_query(self.session, lambda s: s.execute(query).scalars().all(), "Failed to list admins")
        )

    def list_users(
        self, role: UserRole | None = None, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[UserModel]:
        query = select(UserDB).order_by(UserDB.last_name, UserDB.first_name, UserDB.id)
        if role is not None:
            query = query.where(UserDB.role == role)
        return self._paginate(query, pagination or PaginationParams())

    def deactivate(self, user_id: int) -> UserModel:
        user = self._get_db_obj(user_id)
        if user is None:
            raise UserNotFound(user_id)
        user.is_active = False
        safe_commit(self.session, "deactivate user")
        return self._to_response_model(user)
