"""
User store - the application's view of user accounts.

The session handler and authenticator never touch the users table
directly; they go through UserStore. Applications with their own user
model subclass it and override the lookups and the pre/post
authentication hooks.
"""

import logging
import time
from typing import Callable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from websession.core.settings import settings
from websession.models import REAL_USER_TYPES, User, UserType, UserVisit

logger = logging.getLogger(__name__)


class LoginRejected(Exception):
    """Raised by an authentication hook to refuse a login."""

    pass


class UserStore:
    """Database-backed user lookups and login bookkeeping."""

    def __init__(
        self,
        db: Session,
        anonymous_id: int = None,
        track_last_visit: bool = None,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.anonymous_id = settings.anonymous_user_id if anonymous_id is None else anonymous_id
        self.track_last_visit = (
            bool(settings.lastvisit_table) if track_last_visit is None else track_last_visit
        )
        self.clock = clock

    @property
    def anonymous_user(self) -> int:
        return self.anonymous_id

    def _query_user(self, *criteria, only_real: bool = False) -> Optional[User]:
        stmt = select(User).where(*criteria)
        if only_real:
            stmt = stmt.where(User.user_type.in_([int(t) for t in REAL_USER_TYPES]))
        return self.db.execute(stmt).scalars().first()

    def get_user_by_id(self, user_id: int, only_real: bool = False) -> Optional[User]:
        """
        Look up a user by id.

        Args:
            user_id: The user's id
            only_real: Only return normal or admin users

        Returns:
            User if found, None otherwise
        """
        return self._query_user(User.user_id == user_id, only_real=only_real)

    def get_user(self, username: str, only_real: bool = False) -> Optional[User]:
        """Look up a user by username, ignoring case."""
        if not username:
            return None
        return self._query_user(
            func.lower(User.username) == username.lower(), only_real=only_real
        )

    def get_user_by_actcode(self, actcode: str) -> Optional[User]:
        """Look up the user holding an activation code."""
        if not actcode:
            return None
        return self._query_user(User.actcode == actcode)

    def user_disabled(self, username: str) -> bool:
        """True if the user exists and is neither a normal nor an admin user."""
        user = self.get_user(username)
        return bool(user) and not user.is_real

    def get_user_authmethod(self, username: str) -> Optional[int]:
        user = self.get_user(username)
        return user.user_auth if user else None

    def set_user_authmethod(self, username: str, method_id: int) -> bool:
        """
        Record the auth method that last authenticated this user.

        Returns:
            True if exactly one user was updated
        """
        try:
            result = self.db.execute(
                update(User)
                .where(func.lower(User.username) == username.lower())
                .values(user_auth=method_id)
                .execution_options(synchronize_session="fetch")
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if result.rowcount != 1:
            logger.warning(f"Unable to update auth method for unknown user {username}")
        return result.rowcount == 1

    def pre_authenticate(self, username: str) -> bool:
        """Hook run before any auth method is tried. Return False to refuse."""
        return True

    def post_authenticate(self, username: str) -> User:
        """
        Hook run after credentials have been accepted.

        Users authenticated by a remote method may not have a local record
        yet, so one is created. The user's last login time is updated.

        Raises:
            LoginRejected: If the login must be refused
        """
        now = int(self.clock())
        user = self.get_user(username)
        try:
            if user is None:
                user = User(
                    username=username,
                    user_type=UserType.NORMAL,
                    created=now,
                    last_login=now,
                )
                self.db.add(user)
                self.db.flush()
                logger.info(f"Created local user record for {username}")
            else:
                user.last_login = now
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if not user.is_real:
            raise LoginRejected("This user account has been disabled.")

        return user

    def get_last_visit(self, user_id: int) -> Optional[int]:
        if not self.track_last_visit:
            return None
        return self.db.execute(
            select(UserVisit.last_visit).where(UserVisit.user_id == user_id)
        ).scalar_one_or_none()

    def set_last_visit(self, user_id: int, when: int) -> bool:
        """
        Best-effort last visit update. Failures are logged, not raised.

        Returns:
            True if the value was stored
        """
        if not self.track_last_visit:
            return False

        try:
            self.db.merge(UserVisit(user_id=user_id, last_visit=int(when)))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Unable to update last visit for user {user_id}: {e}")
            return False
        return True
