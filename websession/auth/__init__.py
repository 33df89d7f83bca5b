"""
Authentication: user store, auth methods and the authenticator.

The FastAPI adapter lives in websession.auth.router and
websession.auth.deps; it is not imported here because it depends on the
session handler, which itself depends on this package.
"""

from .service import AuthService, AuthenticationError, LoginFailure, LoginResult
from .users import LoginRejected, UserStore

__all__ = [
    "AuthService",
    "AuthenticationError",
    "LoginFailure",
    "LoginRejected",
    "LoginResult",
    "UserStore",
]
