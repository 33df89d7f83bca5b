"""Authentication service - credential validation across auth methods."""

import hashlib
import logging
import os
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from websession.core.site_config import AuthConfig, SiteConfig
from websession.models import User

from .methods import AuthMethod, AuthMethodError, AuthMethodRegistry, MethodContext
from .users import LoginRejected, UserStore

logger = logging.getLogger(__name__)

# Attempts at claiming the next unique id before settling for a
# possibly-shared counter value. The random part keeps ids unique anyway.
UNIQUE_ID_ATTEMPTS = 5
UNIQUE_ID_RANDOM_BYTES = 24

INVALID_LOGIN_MESSAGE = "Invalid username or password specified."
DISABLED_MESSAGE = "This user account has been disabled."


class AuthenticationError(Exception):
    """Raised when authentication cannot be attempted at all."""

    pass


class LoginFailure(Enum):
    DISABLED = "disabled"
    PRE_AUTH = "pre_auth"
    INVALID_CREDENTIALS = "invalid_credentials"
    REJECTED = "rejected"


@dataclass
class LoginResult:
    """Outcome of validate_user(): a user on success, a reason otherwise."""

    user: Optional[User] = None
    reason: Optional[LoginFailure] = None
    message: Optional[str] = None
    method_id: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.user is not None

    @classmethod
    def failed(cls, reason: LoginFailure, message: str) -> "LoginResult":
        return cls(reason=reason, message=message)


def md5_hex(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


class AuthService:
    """Service for validating users and issuing unique ids."""

    def __init__(
        self,
        db: Session,
        site_config: SiteConfig,
        users: Optional[UserStore] = None,
        methods: Optional[AuthMethodRegistry] = None,
        config: Optional[AuthConfig] = None,
    ):
        if db is None:
            raise AuthenticationError("db object not set")
        if site_config is None:
            raise AuthenticationError("site config object not set")

        self.db = db
        self.site_config = site_config
        self.users = users or UserStore(db)
        self.methods = methods or AuthMethodRegistry(
            db, MethodContext(db=db, users=self.users, settings=site_config)
        )
        self.config = config or AuthConfig.from_site_config(site_config)

    @property
    def enable_fallback(self) -> bool:
        return self.config.enable_fallback

    @property
    def anonymous_user(self) -> int:
        return self.users.anonymous_user

    def unique_id(self, extra: str = "") -> str:
        """
        Generate an id that should be unique across requests and processes.

        The id combines a counter kept in the settings table, the process
        id, 24 random bytes, and any caller-supplied extra text. The
        counter is advanced with a compare-and-set; if that keeps losing
        to concurrent requests the current value is used anyway and the
        random bytes keep the result unique.
        """
        counter = self.site_config.get_int("Auth:unique_id", 0)
        for _ in range(UNIQUE_ID_ATTEMPTS):
            if self.site_config.compare_and_set("Auth:unique_id", counter, counter + 1):
                counter += 1
                break
            counter = self.site_config.get_int("Auth:unique_id", 0)
        else:
            logger.debug("Unique id counter contended; relying on random component")

        return f"{counter}{os.getpid()}{secrets.token_hex(UNIQUE_ID_RANDOM_BYTES)}{extra}"

    def get_user_by_id(self, user_id: int, only_real: bool = False) -> Optional[User]:
        return self.users.get_user_by_id(user_id, only_real)

    def get_user(self, username: str, only_real: bool = False) -> Optional[User]:
        return self.users.get_user(username, only_real)

    def get_authmethod(self, method_id: int) -> Optional[AuthMethod]:
        """
        Load an auth method, treating load failures as "not available".
        """
        try:
            return self.methods.load_method(method_id)
        except AuthMethodError as e:
            logger.warning(f"Auth implementation load failed: {e}")
            return None

    def get_user_authmethod(self, username: str) -> Optional[AuthMethod]:
        """
        Get the auth method assigned to a user, or the base AuthMethod
        (which supports nothing) if none is assigned or it cannot be loaded.
        """
        method_id = self.users.get_user_authmethod(username)
        method = self.get_authmethod(method_id) if method_id else None
        return method or AuthMethod(self.methods.context)

    def validate_user(self, username: str, password: str) -> LoginResult:
        """
        Check a username and password.

        1. Refuse disabled accounts without trying any method
        2. Try the method the user last authenticated with, if any
        3. If there is none, it cannot be loaded, or fallback is enabled
           and it failed, try every enabled method in priority order
        4. On success record the method and run the post-auth hook

        Returns:
            LoginResult; the specific failure reason is for logging and
            should not be shown to the user verbatim.
        """
        if self.users.user_disabled(username):
            logger.warning(f"Login attempt for disabled user: {username}")
            return LoginResult.failed(LoginFailure.DISABLED, DISABLED_MESSAGE)

        if not self.users.pre_authenticate(username):
            logger.warning(f"Login refused before authentication for user: {username}")
            return LoginResult.failed(LoginFailure.PRE_AUTH, INVALID_LOGIN_MESSAGE)

        valid = False
        method_id = self.users.get_user_authmethod(username)
        method = None

        if method_id:
            method = self.get_authmethod(method_id)
            if method is not None:
                valid = method.authenticate(username, password)

        if not valid and (not method_id or method is None or self.enable_fallback):
            tried = method_id if method is not None else None
            for candidate in self.methods.available_methods(active_only=True):
                if candidate == tried:
                    continue

                impl = self.get_authmethod(candidate)
                if impl is None:
                    continue

                if impl.authenticate(username, password):
                    valid = True
                    method_id = candidate
                    break

        if not valid:
            logger.warning(f"Login failed for user: {username}")
            return LoginResult.failed(LoginFailure.INVALID_CREDENTIALS, INVALID_LOGIN_MESSAGE)

        try:
            user = self.users.post_authenticate(username)
        except LoginRejected as e:
            logger.warning(f"Login rejected after authentication for {username}: {e}")
            return LoginResult.failed(LoginFailure.REJECTED, str(e))

        self.users.set_user_authmethod(user.username, method_id)

        logger.info(f"Successfully authenticated user: {username}")
        return LoginResult(user=user, method_id=method_id)

    # Account lifecycle. These go through the user's own auth method so
    # that callers never need to know which method manages an account.

    def require_activate(self, username: str) -> bool:
        return self.get_user_authmethod(username).require_activate()

    def supports_recovery(self, username: str) -> bool:
        return self.get_user_authmethod(username).supports_recovery()

    def activated(self, username: str) -> bool:
        """True if the user exists and their account has been activated."""
        user = self.get_user(username)
        if user is None:
            return False
        return self.get_user_authmethod(username).activated(user.user_id)

    def activate_user(self, actcode: str) -> Optional[User]:
        """
        Activate the account holding an activation code.

        Returns:
            The activated user, or None if no account holds the code or its
            auth method does not support activation
        """
        user = self.users.get_user_by_actcode(actcode)
        if user is None:
            logger.warning("Activation attempted with an unknown code")
            return None

        if not self.get_user_authmethod(user.username).activate_user(user.user_id):
            logger.warning(f"Activation failed for user: {user.username}")
            return None

        logger.info(f"Activated user: {user.username}")
        return user

    def generate_actcode(self, username: str) -> Optional[str]:
        user = self.get_user(username)
        if user is None:
            return None
        return self.get_user_authmethod(username).generate_actcode(user.user_id)

    def set_password(self, username: str, password: str) -> bool:
        """
        Set the user's password through their auth method.

        Raises:
            PasswordPolicyError: If the password fails the method's policy
        """
        user = self.get_user(username)
        if user is None:
            return False
        return self.get_user_authmethod(username).set_password(user.user_id, password)

    def reset_password(self, username: str) -> Optional[str]:
        """Give the user a random temporary password and return it."""
        user = self.get_user(username)
        if user is None:
            return None
        return self.get_user_authmethod(username).reset_password(user.user_id)

    def reset_password_actcode(self, username: str) -> Optional[Tuple[str, str]]:
        user = self.get_user(username)
        if user is None:
            return None
        return self.get_user_authmethod(username).reset_password_actcode(user.user_id)

    def force_passchange(self, username: str) -> str:
        user = self.get_user(username)
        if user is None:
            return ""
        return self.get_user_authmethod(username).force_passchange(user.user_id)

    def mark_loginfail(self, username: str) -> Tuple[int, int]:
        user = self.get_user(username)
        if user is None:
            return (0, 0)
        return self.get_user_authmethod(username).mark_loginfail(user.user_id)
