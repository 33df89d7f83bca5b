"""
Database-backed site configuration.

Site settings live in a name/value table so that every request handler
sees the same values, and so that bookkeeping values (the unique id
counter, the last garbage collection time) can be shared between
processes. AuthConfig is the typed view of the settings that the session
handler and authenticator actually use.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from websession.models import SiteSetting

logger = logging.getLogger(__name__)

# Seeded by `init-db`; mirrors the settings a fresh install starts with.
DEFAULT_SETTINGS = {
    "cookie_name": "webappname",
    "cookie_path": "/",
    "cookie_domain": "",
    "cookie_secure": "0",
    "Auth:allow_autologin": "1",
    "Auth:max_autologin_time": "30",
    "Auth:ip_check": "4",
    "Auth:session_length": "3600",
    "Auth:session_gc": "0",
    "Auth:unique_id": "1",
    "Auth:enable_fallback": "0",
    "Session:lastgc": "0",
}


class ConfigError(Exception):
    """Raised when the site configuration is unusable."""

    pass


class SiteConfig:
    """Name/value settings loaded from the settings table."""

    def __init__(self, db: Session):
        self.db = db
        self.values: dict[str, str] = {}
        self.load()

    def load(self) -> None:
        """(Re)load every setting from the database."""
        rows = self.db.execute(select(SiteSetting.name, SiteSetting.value)).all()
        self.values = {name: value for name, value in rows}

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(name, default)

    def get_int(self, name: str, default: int = 0) -> int:
        value = self.values.get(name)
        if value is None or value == "":
            return default
        try:
            return int(value)
        except ValueError:
            raise ConfigError(f"Setting {name} must be an integer, got {value!r}")

    def get_bool(self, name: str, default: bool = False) -> bool:
        value = self.values.get(name)
        if value is None or value == "":
            return default
        return value.strip().lower() not in ("0", "false", "no", "off")

    def set(self, name: str, value) -> None:
        """Store a setting, creating the row if needed, and commit."""
        value = str(value)
        try:
            self.db.merge(SiteSetting(name=name, value=value))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.values[name] = value

    def compare_and_set(self, name: str, expected, value) -> bool:
        """
        Change a setting only if it still holds the expected value.

        Returns True if this call made the change. When the row does not
        exist yet it is created, and the call succeeds.
        """
        expected = str(expected)
        value = str(value)
        try:
            if name not in self.values:
                self.db.merge(SiteSetting(name=name, value=value))
                self.db.commit()
                self.values[name] = value
                return True

            result = self.db.execute(
                update(SiteSetting)
                .where(SiteSetting.name == name, SiteSetting.value == expected)
                .values(value=value)
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if result.rowcount == 1:
            self.values[name] = value
            return True

        # Someone else changed it; pick up their value
        current = self.db.execute(
            select(SiteSetting.value).where(SiteSetting.name == name)
        ).scalar_one_or_none()
        if current is not None:
            self.values[name] = current
        return False

    def seed_defaults(self, defaults: Optional[dict[str, str]] = None) -> int:
        """Insert any missing default settings. Returns the number added."""
        added = 0
        for name, value in (defaults or DEFAULT_SETTINGS).items():
            if name not in self.values:
                self.db.add(SiteSetting(name=name, value=value))
                self.values[name] = value
                added += 1
        self.db.commit()
        return added


@dataclass
class AuthConfig:
    """
    Typed session/authentication configuration.

    Times are in seconds except max_autologin_time, which is in days
    (0 means persistent sessions never expire on age).
    """

    allow_autologin: bool = True
    max_autologin_time: int = 30
    ip_check: int = 4
    session_length: int = 3600
    session_gc: int = 0
    enable_fallback: bool = False
    cookie_name: str = "webappname"
    cookie_path: str = "/"
    cookie_domain: str = ""
    cookie_secure: bool = False

    def __post_init__(self):
        if not 0 <= self.ip_check <= 4:
            raise ConfigError(f"ip_check must be between 0 and 4, got {self.ip_check}")
        if self.session_length < 0 or self.session_gc < 0 or self.max_autologin_time < 0:
            raise ConfigError("Session times must not be negative")
        if not self.cookie_name:
            raise ConfigError("Unable to determine session cookie name")

    @classmethod
    def from_site_config(cls, config: SiteConfig) -> "AuthConfig":
        return cls(
            allow_autologin=config.get_bool("Auth:allow_autologin", True),
            max_autologin_time=config.get_int("Auth:max_autologin_time", 30),
            ip_check=config.get_int("Auth:ip_check", 4),
            session_length=config.get_int("Auth:session_length", 3600),
            session_gc=config.get_int("Auth:session_gc", 0),
            enable_fallback=config.get_bool("Auth:enable_fallback", False),
            cookie_name=config.get("cookie_name", "") or "",
            cookie_path=config.get("cookie_path", "/") or "/",
            cookie_domain=config.get("cookie_domain", "") or "",
            cookie_secure=config.get_bool("cookie_secure", False),
        )
