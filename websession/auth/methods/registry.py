"""
Auth method registry.

Auth methods are configured in the database: each row names an
implementation by key, gives it a priority and says whether it is
enabled, and a side table holds its parameters. Implementations are
looked up in a static map of key -> class populated at import time.
"""

import logging
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from websession.models import AuthMethodParam, AuthMethodRow

from .base import AuthMethod, AuthMethodError, MethodContext
from .database import DatabaseAuthMethod
from .ldap import LDAPAuthMethod, LDAPSAuthMethod
from .ssh import SSHAuthMethod

logger = logging.getLogger(__name__)

METHOD_FACTORIES: dict[str, Callable[..., AuthMethod]] = {
    "database": DatabaseAuthMethod,
    "ldap": LDAPAuthMethod,
    "ldaps": LDAPSAuthMethod,
    "ssh": SSHAuthMethod,
}


def register_method(key: str, factory: Callable[..., AuthMethod]) -> None:
    """Make an implementation available under the given key."""
    METHOD_FACTORIES[key] = factory


class AuthMethodRegistry:
    """Lists configured auth methods and instantiates them on demand."""

    def __init__(self, db: Session, context: Optional[MethodContext] = None):
        self.db = db
        self.context = context or MethodContext(db=db)

    def available_methods(self, active_only: bool = False) -> list[int]:
        """
        Get the ids of the configured auth methods.

        Args:
            active_only: Only include enabled methods

        Returns:
            Method ids, highest priority (lowest value) first
        """
        stmt = select(AuthMethodRow.id).order_by(AuthMethodRow.priority.asc(), AuthMethodRow.id.asc())
        if active_only:
            stmt = stmt.where(AuthMethodRow.enabled.is_(True))
        return list(self.db.execute(stmt).scalars().all())

    def get_params(self, method_id: int) -> dict[str, str]:
        rows = self.db.execute(
            select(AuthMethodParam.name, AuthMethodParam.value).where(
                AuthMethodParam.method_id == method_id
            )
        ).all()
        return {name: value for name, value in rows}

    def load_method(self, method_id: int) -> Optional[AuthMethod]:
        """
        Create an instance of the given auth method.

        Returns:
            The method, or None if the method exists but is disabled

        Raises:
            AuthMethodError: If the method id or implementation is unknown,
                or the implementation rejects its parameters
        """
        row = self.db.get(AuthMethodRow, method_id)
        if row is None:
            raise AuthMethodError(f"Unknown auth method requested in load_method({method_id})")

        if not row.enabled:
            return None

        factory = METHOD_FACTORIES.get(row.module)
        if factory is None:
            raise AuthMethodError(f"No implementation registered for auth method '{row.module}'")

        params = self.get_params(method_id)
        try:
            return factory(self.context, **params)
        except AuthMethodError:
            raise
        except (TypeError, ValueError) as e:
            raise AuthMethodError(f"Unable to load auth method '{row.module}': {e}") from e
