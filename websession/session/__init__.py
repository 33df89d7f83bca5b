"""Cookie-based session tracking."""

from .cookies import CookieSpec
from .handler import SessionConfigError, SessionError, SessionHandler
from .models import SessionKey, SessionRow, SessionVariable
from .request import RequestContext

__all__ = [
    "CookieSpec",
    "RequestContext",
    "SessionConfigError",
    "SessionError",
    "SessionHandler",
    "SessionKey",
    "SessionRow",
    "SessionVariable",
]
