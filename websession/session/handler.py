"""
Cookie-based session handling.

SessionHandler maintains user state across HTTP requests. For each
request it either validates and touches the session named by the
browser's cookies, or creates a new one: anonymous by default,
authenticated when a valid autologin key is presented or the
application logs a user in. The handler always ends up holding exactly
one current session.

The browser holds three cookies, all prefixed with the configured cookie
name: the session id (_sid), the user id the session claims to belong to
(_u), and, for persistent logins, the plaintext autologin key (_k). Only
an md5 of the key is stored server side, and keys are rotated every time
they are used.

Some steps take precautions against cookie hijacking (the claimed user
must match the session, optional partial IP matching, session ids are
never reused), but as with any cookie-based scheme, the cookies are
bearer credentials.
"""

import base64
import binascii
import logging
import re
import time
from typing import Callable, Optional

from sqlalchemy import and_, delete, false, func, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from websession.auth.service import AuthService, md5_hex
from websession.core.settings import settings
from websession.core.site_config import AuthConfig, SiteConfig
from websession.models import REAL_USER_TYPES, User

from .cookies import DAY_SECONDS, CookieSpec
from .models import SessionKey, SessionRow, SessionVariable
from .request import RequestContext

logger = logging.getLogger(__name__)

# Sessions are touched at most once per this many seconds
TOUCH_INTERVAL = 60

# Added to every expiry limit to absorb the touch granularity
EXPIRY_GRACE = 60

# Cookie lifetime when no max autologin time is configured
DEFAULT_COOKIE_DAYS = 365

MAX_VARIABLE_NAME = 80


class SessionError(Exception):
    """Raised when session state cannot be read or persisted."""

    pass


class SessionConfigError(SessionError):
    """Raised when the handler is missing something it needs to work."""

    pass


def _parse_user_id(value: Optional[str]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class SessionHandler:
    """Creates, validates, renews and removes sessions for one request."""

    def __init__(
        self,
        db: Session,
        request: RequestContext,
        auth: AuthService,
        config: AuthConfig,
        site_config: Optional[SiteConfig] = None,
        variables_enabled: Optional[bool] = None,
        clock: Callable[[], float] = time.time,
    ):
        if db is None:
            raise SessionConfigError("db object not set")
        if request is None:
            raise SessionConfigError("request object not set")
        if auth is None:
            raise SessionConfigError("auth object not set")
        if config is None:
            raise SessionConfigError("config object not set")

        self.db = db
        self.request = request
        self.auth = auth
        self.config = config
        self.site_config = site_config or auth.site_config
        self.users = auth.users
        self.anonymous_id = auth.anonymous_user
        self.variables_enabled = (
            bool(settings.session_variables_table) if variables_enabled is None else variables_enabled
        )
        self.clock = clock

        self.session: Optional[SessionRow] = None
        self.sessid: Optional[str] = None
        self.sessuser: Optional[int] = None
        self.autokey: Optional[str] = None
        self.session_time: Optional[int] = None
        self.last_visit: Optional[int] = None
        self._cookies: Optional[list[CookieSpec]] = None

    @classmethod
    def initialize(
        cls,
        db: Session,
        request: RequestContext,
        auth: AuthService,
        config: AuthConfig,
        site_config: Optional[SiteConfig] = None,
        **kwargs,
    ) -> "SessionHandler":
        """Create a handler and establish the session for this request."""
        handler = cls(db, request, auth, config, site_config, **kwargs)
        handler.start()
        return handler

    # ------------------------------------------------------------------
    #  Session lifecycle

    def _now(self) -> int:
        return int(self.clock())

    @property
    def remote_addr(self) -> str:
        return self.request.remote_addr or ""

    @property
    def session_id(self) -> Optional[str]:
        return self.sessid

    @property
    def user_id(self) -> Optional[int]:
        return self.sessuser

    @property
    def is_anonymous(self) -> bool:
        return self.sessuser is None or self.sessuser == self.anonymous_id

    @property
    def user(self) -> Optional[User]:
        if self.sessuser is None:
            return None
        return self.users.get_user_by_id(self.sessuser)

    def start(self) -> SessionRow:
        """
        Validate the session named in the request, or create a new one.

        Returns:
            The current session
        """
        self.collect_garbage()

        base = self.config.cookie_name
        self.sessid = self.request.cookie(f"{base}_sid") or self.request.param("sid")
        self.sessuser = _parse_user_id(self.request.cookie(f"{base}_u"))
        self.autokey = self.request.cookie(f"{base}_k")

        if self.sessid:
            session = self.get_session(self.sessid)
            if session is not None and self._session_valid(session) and self.touch_session(session):
                self.session = session
                self.sessuser = session.session_user_id
                self.session_time = session.session_time
                return session

        return self.create_session()

    def _session_valid(self, session: SessionRow) -> bool:
        """Apply the user, IP and expiry checks to a stored session."""
        if self.sessuser != session.session_user_id:
            logger.debug(
                f"Session {session.session_id[:8]}... claimed by user {self.sessuser}, "
                f"belongs to {session.session_user_id}"
            )
            return False

        if session.session_user_id != self.anonymous_id:
            if self.users.get_user_by_id(session.session_user_id, only_real=True) is None:
                logger.debug(f"Session user {session.session_user_id} is missing or blocked")
                return False

        if not self.ip_matches(self.remote_addr, session.session_ip):
            logger.debug(f"Session {session.session_id[:8]}... IP mismatch")
            return False

        if self.is_expired(session):
            logger.debug(f"Session {session.session_id[:8]}... has expired")
            return False

        return True

    def get_session(self, sessid: str) -> Optional[SessionRow]:
        """Fetch the stored session with the given id, if there is one."""
        return self.db.execute(
            select(SessionRow).where(SessionRow.session_id == sessid)
        ).scalar_one_or_none()

    def touch_session(self, session: SessionRow) -> bool:
        """
        Update the session's last activity time, if it has not been
        touched within the last minute.

        Returns:
            False if the session disappeared before it could be touched
        """
        now = self._now()
        if now - session.session_time <= TOUCH_INTERVAL:
            return True

        try:
            result = self.db.execute(
                update(SessionRow)
                .where(SessionRow.session_id == session.session_id)
                .values(session_time=now)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SessionError(f"Unable to touch session: {e}") from e

        if result.rowcount == 0:
            logger.debug(f"Session {session.session_id[:8]}... vanished before touch")
            return False

        set_committed_value(session, "session_time", now)
        self.session_time = now
        return True

    def _get_autologin_user(self, user_id: int, key: str) -> Optional[User]:
        """The real user owning this autologin key, if the key is valid."""
        return self.db.execute(
            select(User)
            .join(SessionKey, SessionKey.user_id == User.user_id)
            .where(
                User.user_id == user_id,
                User.user_type.in_([int(t) for t in REAL_USER_TYPES]),
                SessionKey.key_id == md5_hex(key),
            )
        ).scalars().first()

    def create_session(
        self,
        user_id: Optional[int] = None,
        persist: bool = False,
        variables: Optional[dict] = None,
    ) -> SessionRow:
        """
        Create a new session, replacing the current one.

        The session belongs to the user named by a valid autologin key if
        the browser sent one, otherwise to user_id, otherwise to the
        anonymous user.

        Args:
            user_id: Optional user to attach the session to
            persist: Issue an autologin key, if autologins are allowed and
                the user is a real, non-anonymous user
            variables: Optional session variables to store

        Returns:
            The new session

        Raises:
            SessionConfigError: If the anonymous user cannot be loaded
            SessionError: If the session cannot be stored
        """
        self._cookies = None
        now = self._now()

        if not self.config.allow_autologin:
            self.autokey = None
            persist = False

        self.last_visit = now

        user = None
        if self.autokey and self.sessuser and self.sessuser != self.anonymous_id:
            user = self._get_autologin_user(self.sessuser, self.autokey)
            if user is None:
                self.autokey = None

        if user is None and user_id:
            self.autokey = None
            user = self.users.get_user_by_id(user_id, only_real=True)

        if user is None:
            self.autokey = None
            self.sessuser = self.anonymous_id
            user = self.users.get_user_by_id(self.anonymous_id)
            if user is None:
                raise SessionConfigError(f"Unable to load the anonymous user ({self.anonymous_id})")
        else:
            self.sessuser = user.user_id
            last_visit = self.users.get_last_visit(user.user_id)
            if last_visit:
                self.last_visit = last_visit

        is_registered = user.user_id != self.anonymous_id and user.is_real
        persist = bool((self.autokey or persist) and is_registered)

        new_id = md5_hex(self.auth.unique_id())

        try:
            # An anonymous session being replaced is of no further use
            if self.sessid:
                self.db.execute(
                    delete(SessionRow).where(
                        SessionRow.session_id == self.sessid,
                        SessionRow.session_user_id == self.anonymous_id,
                    )
                )

            session = SessionRow(
                session_id=new_id,
                session_user_id=self.sessuser,
                session_start=now,
                session_time=now,
                session_ip=self.remote_addr,
                session_autologin=persist,
            )
            self.db.add(session)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SessionError(f"Unable to perform session creation: {e}") from e

        self.sessid = new_id
        self.session = session
        self.session_time = now

        if persist:
            self.set_login_key()

        if variables:
            for name, value in variables.items():
                self.set_variable(name, value)

        if is_registered:
            logger.info(f"Created session for user {self.sessuser} (persistent: {persist})")

        return session

    def delete_session(self) -> SessionRow:
        """
        Log out: remove the current session and any autologin key tied to
        it, then start a new anonymous session.

        Returns:
            The new anonymous session
        """
        now = self._now()
        was_user = self.sessuser is not None and self.sessuser != self.anonymous_id

        try:
            if self.sessid:
                self.db.execute(
                    delete(SessionRow).where(
                        SessionRow.session_id == self.sessid,
                        SessionRow.session_user_id == self.sessuser,
                    )
                )

            if was_user and self.autokey:
                self.db.execute(
                    delete(SessionKey).where(
                        SessionKey.key_id == md5_hex(self.autokey),
                        SessionKey.user_id == self.sessuser,
                    )
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SessionError(f"Unable to remove session: {e}") from e

        if was_user:
            self.users.set_last_visit(self.sessuser, self.session_time or now)
            logger.info(f"User {self.sessuser} logged out")

        self.session = None
        self.sessuser = self.sessid = self.autokey = self.session_time = None

        return self.create_session()

    def set_login_key(self) -> str:
        """
        Issue or rotate the autologin key for the current session user.

        Returns:
            The new plaintext key (also stored in self.autokey)
        """
        old_key = self.autokey
        new_key = self.auth.unique_id(self.sessid[:8])
        now = self._now()

        values = {
            "key_id": md5_hex(new_key),
            "user_id": self.sessuser,
            "last_ip": self.remote_addr,
            "last_login": now,
        }

        try:
            updated = 0
            if old_key:
                updated = self.db.execute(
                    update(SessionKey)
                    .where(
                        SessionKey.user_id == self.sessuser,
                        SessionKey.key_id == md5_hex(old_key),
                    )
                    .values(key_id=values["key_id"], last_ip=values["last_ip"], last_login=now)
                    .execution_options(synchronize_session=False)
                ).rowcount

            if not updated:
                self.db.execute(insert(SessionKey).values(**values))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SessionError(f"Unable to store autologin key: {e}") from e

        self.autokey = new_key
        self._cookies = None
        return new_key

    # ------------------------------------------------------------------
    #  Policies

    def ip_matches(self, user_ip: str, session_ip: str) -> bool:
        """
        Check whether the client's IP is close enough to the session's.

        The ip_check setting gives the number of leading address segments
        that must match: 0 disables the check, 4 requires the full
        dotted-decimal address.
        """
        segments = self.config.ip_check
        if segments == 0:
            return True

        if not user_ip or not session_ip:
            return False

        sep = ":" if ":" in session_ip else "."
        user_parts = user_ip.split(sep)
        session_parts = session_ip.split(sep)
        if len(session_parts) < segments or len(user_parts) < segments:
            return user_ip == session_ip

        return user_parts[:segments] == session_parts[:segments]

    def is_expired(self, session: SessionRow) -> bool:
        """
        Determine whether the session has expired.

        Normal sessions expire session_length seconds after their last
        touch. Persistent sessions expire when autologins are disabled, or
        max_autologin_time days after their last touch if that is set.
        """
        now = self._now()

        if not session.session_autologin:
            return session.session_time < now - (self.config.session_length + EXPIRY_GRACE)

        if not self.config.allow_autologin:
            return True

        max_days = self.config.max_autologin_time
        return bool(max_days) and session.session_time < now - (DAY_SECONDS * max_days + EXPIRY_GRACE)

    def _expired_clause(self, now: int):
        """SQL equivalent of is_expired()."""
        normal = and_(
            SessionRow.session_autologin.is_(False),
            SessionRow.session_time < now - (self.config.session_length + EXPIRY_GRACE),
        )

        if not self.config.allow_autologin:
            persistent = SessionRow.session_autologin.is_(True)
        elif self.config.max_autologin_time:
            persistent = and_(
                SessionRow.session_autologin.is_(True),
                SessionRow.session_time
                < now - (DAY_SECONDS * self.config.max_autologin_time + EXPIRY_GRACE),
            )
        else:
            persistent = false()

        return or_(normal, persistent)

    def collect_garbage(self, force: bool = False) -> bool:
        """
        Remove expired sessions, at most once per session_gc seconds.

        The last collection time is claimed before sweeping, so concurrent
        requests do not all sweep at once.

        Args:
            force: Sweep even if a collection ran recently

        Returns:
            True if a sweep was performed
        """
        now = self._now()
        if not force and not self.site_config.get_int("Session:lastgc", 0) < now - self.config.session_gc:
            return False

        claimed = self.site_config.get("Session:lastgc", "0")
        if not self.site_config.compare_and_set("Session:lastgc", claimed, now):
            logger.debug("Garbage collection already claimed by another request")
            return False

        expired = self._expired_clause(now)

        try:
            expired_users = self.db.execute(
                select(SessionRow.session_user_id, func.max(SessionRow.session_time))
                .where(expired, SessionRow.session_user_id != self.anonymous_id)
                .group_by(SessionRow.session_user_id)
            ).all()
        except SQLAlchemyError as e:
            raise SessionError(f"Unable to obtain expired session list: {e}") from e

        for user_id, last_time in expired_users:
            self.users.set_last_visit(user_id, last_time)

        try:
            removed = self.db.execute(
                delete(SessionRow).where(SessionRow.session_user_id == self.anonymous_id, expired)
            ).rowcount
            for user_id, _ in expired_users:
                removed += self.db.execute(
                    delete(SessionRow).where(SessionRow.session_user_id == user_id, expired)
                ).rowcount

            if self.config.allow_autologin and self.config.max_autologin_time:
                self.db.execute(
                    delete(SessionKey).where(
                        SessionKey.last_login < now - DAY_SECONDS * self.config.max_autologin_time
                    )
                )

            if self.variables_enabled:
                live = select(SessionRow.session_id)
                self.db.execute(
                    delete(SessionVariable)
                    .where(SessionVariable.session_id.not_in(live))
                    .execution_options(synchronize_session=False)
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SessionError(f"Unable to remove expired sessions: {e}") from e

        logger.info(f"Session garbage collection removed {removed} expired sessions")
        return True

    # ------------------------------------------------------------------
    #  Cookies

    def _make_cookie(self, name: str, value: str, max_age: int) -> CookieSpec:
        return CookieSpec(
            name=name,
            value=value,
            max_age=max_age,
            path=self.config.cookie_path,
            domain=self.config.cookie_domain,
            secure=self.config.cookie_secure,
        )

    def session_cookies(self) -> list[CookieSpec]:
        """
        The cookies describing the current session.

        All cookies live for max_autologin_time days (365 if unset) even
        for non-persistent sessions. The key cookie is cleared unless the
        session belongs to a user and has an autologin key.
        """
        if self._cookies is None:
            max_age = (self.config.max_autologin_time or DEFAULT_COOKIE_DAYS) * DAY_SECONDS
            base = self.config.cookie_name

            cookies = [
                self._make_cookie(f"{base}_sid", self.sessid or "", max_age),
                self._make_cookie(f"{base}_u", str(self.sessuser), max_age),
            ]
            if not self.is_anonymous and self.autokey:
                cookies.append(self._make_cookie(f"{base}_k", self.autokey, max_age))
            else:
                cookies.append(self._make_cookie(f"{base}_k", "", 0))

            self._cookies = cookies

        return list(self._cookies)

    # ------------------------------------------------------------------
    #  Session variables

    def _require_variables(self) -> None:
        if not self.variables_enabled:
            raise SessionConfigError("Session variables table is not configured")

    def get_variable(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Read a session variable for the current session."""
        self._require_variables()
        if not self.sessid:
            return default

        value = self.db.execute(
            select(SessionVariable.var_value).where(
                SessionVariable.session_id == self.sessid,
                SessionVariable.var_name == name,
            )
        ).scalar_one_or_none()
        return default if value is None else value

    def set_variable(self, name: str, value: Optional[str] = None) -> Optional[str]:
        """
        Set or, if value is None, delete a session variable.

        Returns:
            The previous value, or None if it was not set
        """
        self._require_variables()
        if not name or len(name) > MAX_VARIABLE_NAME:
            raise ValueError(f"Session variable names must be 1 to {MAX_VARIABLE_NAME} characters")

        previous = self.get_variable(name)

        try:
            self.db.execute(
                delete(SessionVariable)
                .where(
                    SessionVariable.session_id == self.sessid,
                    SessionVariable.var_name == name,
                )
                .execution_options(synchronize_session=False)
            )
            if value is not None:
                self.db.execute(
                    insert(SessionVariable).values(
                        session_id=self.sessid, var_name=name, var_value=str(value)
                    )
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SessionError(f"Unable to store session variable {name}: {e}") from e

        return previous

    # ------------------------------------------------------------------
    #  Query string carry-over

    @staticmethod
    def encode_querystring(query: str, nofix: bool = False) -> str:
        """
        Encode a query string so it can be carried in a hidden form field.

        Unless nofix is set, ';' separators are converted to '&'.
        """
        if not nofix:
            query = query.replace(";", "&")
        return base64.b64encode(query.encode("utf-8")).decode("ascii")

    @staticmethod
    def decode_querystring(query: Optional[str]) -> str:
        """Reverse encode_querystring(). Invalid input decodes to ''."""
        if not query or re.search(r"[^A-Za-z0-9+/=]", query):
            return ""
        try:
            return base64.b64decode(query).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return ""
