"""
Persistence operations used by the authentication flow.

Every method returns ``Valid`` or ``Invalid`` and never raises; database
errors are logged here and reported to the caller as an ``Invalid`` with a
short description.
"""

import logging
from typing import Optional
from uuid import UUID

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from marketplace.db.database import DatabaseSessionManager
from marketplace.db.tables import Sessions, Users, utcnow
from marketplace.models import Session, User, UserCreate, UserStatus, UserType
from marketplace.validation import ValidOrInvalid, invalid, valid

logger = logging.getLogger(__name__)


class Connection:
    def __init__(self, manager: DatabaseSessionManager):
        self.manager = manager

    # =========================================================================
    # Users
    # =========================================================================

    async def find_one_user_by_type_and_username(
        self, user_type: UserType, idp_username: str
    ) -> ValidOrInvalid[Optional[User], str]:
        query = (
            sa.select(Users)
            .where(Users.type == user_type.value)
            .where(Users.idp_username == idp_username)
        )
        try:
            async with self.manager.session() as session:
                row = (await session.execute(query)).scalars().first()
                return valid(User.model_validate(row) if row is not None else None)
        except SQLAlchemyError as e:
            logger.error(
                f"Unable to look up user: {e}",
                extra={"user_type": user_type.value, "idp_username": idp_username},
            )
            return invalid("Unable to look up user")

    async def read_one_user(self, user_id: UUID) -> ValidOrInvalid[Optional[User], str]:
        try:
            async with self.manager.session() as session:
                row = await session.get(Users, user_id)
                return valid(User.model_validate(row) if row is not None else None)
        except SQLAlchemyError as e:
            logger.error(f"Unable to read user: {e}", extra={"user_id": str(user_id)})
            return invalid("Unable to read user")

    async def create_user(self, user: UserCreate) -> ValidOrInvalid[User, str]:
        try:
            async with self.manager.session() as session:
                async with session.begin():
                    row = Users(**user.model_dump(mode="json"))
                    session.add(row)
                return valid(User.model_validate(row))
        except IntegrityError as e:
            logger.warning(
                f"User already exists: {e.orig}",
                extra={"user_type": user.type.value, "idp_username": user.idp_username},
            )
            return invalid("User already exists")
        except SQLAlchemyError as e:
            logger.error(f"Unable to create user: {e}", extra={"idp_username": user.idp_username})
            return invalid("Unable to create user")

    async def update_user(self, user_id: UUID, status: UserStatus) -> ValidOrInvalid[User, str]:
        try:
            async with self.manager.session() as session:
                async with session.begin():
                    row = await session.get(Users, user_id)
                    if row is None:
                        return invalid("User not found")
                    row.status = status.value
                    row.updated_at = utcnow()
                return valid(User.model_validate(row))
        except SQLAlchemyError as e:
            logger.error(f"Unable to update user: {e}", extra={"user_id": str(user_id)})
            return invalid("Unable to update user")

    # =========================================================================
    # Sessions
    # =========================================================================

    async def create_session(self, access_token: str, user_id: UUID) -> ValidOrInvalid[Session, str]:
        try:
            async with self.manager.session() as session:
                async with session.begin():
                    row = Sessions(access_token=access_token, user_id=user_id)
                    session.add(row)
                return valid(Session.model_validate(row))
        except SQLAlchemyError as e:
            logger.error(f"Unable to create session: {e}", extra={"user_id": str(user_id)})
            return invalid("Unable to create session")

    async def read_one_session(self, session_id: UUID) -> ValidOrInvalid[Optional[Session], str]:
        try:
            async with self.manager.session() as session:
                row = await session.get(Sessions, session_id)
                return valid(Session.model_validate(row) if row is not None else None)
        except SQLAlchemyError as e:
            logger.error(f"Unable to read session: {e}", extra={"session_id": str(session_id)})
            return invalid("Unable to read session")

    async def delete_session(self, session_id: UUID) -> ValidOrInvalid[Optional[Session], str]:
        """Delete a session, returning the removed record (``None`` if it did not exist)."""
        try:
            async with self.manager.session() as session:
                async with session.begin():
                    row = await session.get(Sessions, session_id)
                    if row is None:
                        return valid(None)
                    deleted = Session.model_validate(row)
                    await session.delete(row)
                return valid(deleted)
        except SQLAlchemyError as e:
            logger.error(f"Unable to delete session: {e}", extra={"session_id": str(session_id)})
            return invalid("Unable to delete session")
