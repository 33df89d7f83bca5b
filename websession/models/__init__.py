from __future__ import annotations

from .models import (
    AuthMethodParam,
    AuthMethodRow,
    Base,
    SiteSetting,
    User,
    UserType,
    UserVisit,
    REAL_USER_TYPES,
)

__all__ = [
    "Base",
    "User",
    "UserType",
    "UserVisit",
    "SiteSetting",
    "AuthMethodRow",
    "AuthMethodParam",
    "REAL_USER_TYPES",
]
