"""
Database password authentication.

Passwords are stored as bcrypt hashes ("$2b$<cost>$<salt><hash>") in a
column of a user table. Checking a password rehashes it with the stored
salt and cost and compares the result with the stored hash.

The same table carries the account lifecycle columns: the pending
activation code, the activation time, the time of the last password
change, whether the current password was system-allocated, and the
count of consecutive failed logins.
"""

import logging
import secrets
from typing import Optional, Tuple

import bcrypt
from sqlalchemy import column, func, select, table, update
from sqlalchemy.exc import SQLAlchemyError

from websession.core.settings import settings

from .base import AuthMethod, PasswordPolicyError, param_flag

logger = logging.getLogger(__name__)

COST_DEFAULT = 14
ACTCODE_BYTES = 32

LIFECYCLE_COLUMNS = ("actcode", "activated", "passchange", "force_passchange", "loginfail")

TEMPORARY_PASSWORD_REASON = "temporary"
EXPIRED_PASSWORD_REASON = "expired"


def generate_settings(cost: int = COST_DEFAULT) -> str:
    """Generate a bcrypt settings string ("$2b$<cost>$<22-char salt>")."""
    return bcrypt.gensalt(rounds=int(cost)).decode("ascii")


def hash_password(password: str, hash_settings: Optional[str] = None, cost: int = COST_DEFAULT) -> str:
    """
    Hash a password with bcrypt.

    Args:
        password: Plaintext password
        hash_settings: Existing hash or settings string whose salt and
            cost should be reused. A new salt is generated if not given.
        cost: bcrypt cost for a new salt

    Returns:
        The bcrypt hash string
    """
    salt = (hash_settings or generate_settings(cost)).encode("ascii")
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("ascii")


def generate_actcode() -> str:
    return secrets.token_hex(ACTCODE_BYTES)


class DatabaseAuthMethod(AuthMethod):
    """Authenticate against bcrypt hashes stored in a database table."""

    def __init__(self, context, **params):
        super().__init__(context, **params)

        self.table_name = params.get("table") or settings.users_table
        self.userfield = params.get("userfield") or "username"
        self.passfield = params.get("passfield") or "password"
        self.idfield = params.get("idfield") or "user_id"
        self.bcrypt_cost = int(params.get("bcrypt_cost") or settings.bcrypt_cost or COST_DEFAULT)
        self.activation = param_flag(params.get("activate"))
        if self.limits["policy_max_loginfail"] and not self.activation:
            logger.warning("policy_max_loginfail has no effect unless activate is set")

        self.user_table = table(
            self.table_name,
            column(self.idfield),
            column(self.userfield),
            column(self.passfield),
            *(column(name) for name in LIFECYCLE_COLUMNS),
        )

    def get_hash(self, username: str) -> Optional[str]:
        stmt = select(self.user_table.c[self.passfield]).where(
            func.lower(self.user_table.c[self.userfield]) == username.lower()
        )
        return self.db.execute(stmt).scalars().first()

    def authenticate(self, username: str, password: str) -> bool:
        if not username or password is None:
            return False

        stored = self.get_hash(username)
        if not stored:
            return False

        try:
            return hash_password(password, stored) == stored
        except ValueError as e:
            logger.warning(f"Unusable password hash stored for {username}: {e}")
            return False

    def capabilities(self) -> dict:
        return {
            "activate": self.activation,
            "recover": True,
            "passchange": True,
            "failcount": True,
        }

    def _get_row(self, user_id: int, *fields: str):
        stmt = select(*(self.user_table.c[name] for name in fields)).where(
            self.user_table.c[self.idfield] == user_id
        )
        return self.db.execute(stmt).first()

    def _update_user(self, user_id: int, values: dict) -> bool:
        try:
            result = self.db.execute(
                update(self.user_table)
                .where(self.user_table.c[self.idfield] == user_id)
                .values(values)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        return result.rowcount == 1

    def _store_password(self, user_id: int, password: str, temporary: bool) -> bool:
        return self._update_user(user_id, {
            self.passfield: hash_password(password, cost=self.bcrypt_cost),
            "passchange": self.now(),
            "force_passchange": temporary,
            "loginfail": 0,
        })

    def set_password(self, user_id: int, password: str) -> bool:
        """
        Hash and store a new password for the user.

        Raises:
            PasswordPolicyError: If the password fails the policy
        """
        failures = self.apply_policy(password)
        if failures:
            raise PasswordPolicyError(failures)

        return self._store_password(user_id, password, temporary=False)

    def reset_password(self, user_id: int) -> Optional[str]:
        """
        Replace the user's password with a random one they must change.

        Returns:
            The new plaintext password, or None if the user does not exist
        """
        password = self.generate_password()
        if not self._store_password(user_id, password, temporary=True):
            return None
        return password

    def generate_actcode(self, user_id: int) -> Optional[str]:
        actcode = generate_actcode()
        if not self._update_user(user_id, {"actcode": actcode}):
            return None
        return actcode

    def reset_password_actcode(self, user_id: int) -> Optional[Tuple[str, str]]:
        """
        Deactivate the account with a new random password and activation code.

        Returns:
            (password, actcode), or None if the user does not exist
        """
        password = self.generate_password()
        actcode = generate_actcode()
        stored = self._update_user(user_id, {
            self.passfield: hash_password(password, cost=self.bcrypt_cost),
            "passchange": self.now(),
            "force_passchange": True,
            "loginfail": 0,
            "actcode": actcode,
            "activated": None,
        })
        return (password, actcode) if stored else None

    def activated(self, user_id: int) -> bool:
        if not self.activation:
            return True

        row = self._get_row(user_id, "activated")
        return bool(row and row.activated)

    def activate_user(self, user_id: int) -> bool:
        """Mark the account active and clear its activation code."""
        return self._update_user(user_id, {"activated": self.now(), "actcode": None})

    def force_passchange(self, user_id: int) -> str:
        row = self._get_row(user_id, "passchange", "force_passchange")
        if row is None:
            return ""

        if row.force_passchange:
            return TEMPORARY_PASSWORD_REASON

        max_age = self.limits["policy_max_passwordage"]
        if max_age and self.now() - (row.passchange or 0) > max_age:
            return EXPIRED_PASSWORD_REASON

        return ""

    def mark_loginfail(self, user_id: int) -> Tuple[int, int]:
        """
        Count a failed login, deactivating the account at the limit.

        A deactivated account gets a new activation code and stays locked
        until activate_user() is called for it.
        """
        row = self._get_row(user_id, "loginfail")
        if row is None:
            return (0, 0)

        allowed = self.limits["policy_max_loginfail"]
        failures = (row.loginfail or 0) + 1
        values = {"loginfail": failures}
        if allowed and failures >= allowed:
            logger.warning(f"User {user_id} reached {failures} failed logins; deactivating account")
            values.update(activated=None, actcode=generate_actcode())

        self._update_user(user_id, values)
        return (failures, allowed)

    def reset_loginfail(self, user_id: int) -> bool:
        return self._update_user(user_id, {"loginfail": 0})
