"""
Base class for authentication methods.

An AuthMethod answers one question: do this username and password
identify a user? Subclasses implement authenticate() and may support
password changes and the account lifecycle (activation, recovery,
password ageing and login failure limits). Method-specific parameters
come from the auth method parameter table and arrive as keyword
arguments.

The base class supports none of the lifecycle operations. Its answers
are the ones that leave an account usable: every user is activated, no
password change is forced and login failures are never counted.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

POLICY_KEYS = (
    "policy_min_length",
    "policy_min_lowercase",
    "policy_min_uppercase",
    "policy_min_digits",
    "policy_min_others",
)

# Limits applied to accounts rather than to password text
LIMIT_KEYS = (
    "policy_max_passwordage",
    "policy_max_loginfail",
)

CAPABILITIES = ("activate", "recover", "passchange", "failcount")

GENERATED_PASSWORD_LENGTH = 12
PASSWORD_OTHERS = "!#$%*+-=?@^_"


class AuthMethodError(Exception):
    """Raised when an auth method cannot be found or constructed."""

    pass


class PasswordPolicyError(ValueError):
    """Raised when a new password does not satisfy the method's policy."""

    def __init__(self, failures: dict):
        self.failures = failures
        names = ", ".join(sorted(failures))
        super().__init__(f"Password does not meet policy: {names}")


@dataclass
class MethodContext:
    """
    Shared objects handed to every auth method.

    Methods look things up through this handle; they do not own it.
    """

    db: Session
    users: Any = None
    settings: Any = None


def param_flag(value: Optional[str]) -> bool:
    """Interpret a parameter table value as a boolean."""
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


class AuthMethod:
    """Authentication method that never authenticates anybody."""

    # Parameters that must be present in the parameter table
    required_params: tuple = ()

    def __init__(self, context: MethodContext, **params: str):
        self.context = context
        self.params = params

        missing = [name for name in self.required_params if not params.get(name)]
        if missing:
            raise AuthMethodError(
                f"{type(self).__name__} missing {', '.join(repr(m) for m in missing)} parameter"
            )

        self.policy = {}
        for key in POLICY_KEYS:
            value = params.get(key)
            if value:
                self.policy[key] = int(value)

        self.limits = {key: int(params.get(key) or 0) for key in LIMIT_KEYS}

    @property
    def db(self) -> Session:
        return self.context.db

    def now(self) -> int:
        """Current unix time, from the user store's clock when there is one."""
        clock = getattr(self.context.users, "clock", None) or time.time
        return int(clock())

    def authenticate(self, username: str, password: str) -> bool:
        """
        Determine whether the user's credentials are valid.

        Returns:
            True if the credentials are valid, False otherwise. Failures
            are never raised: callers cannot tell "wrong password" from
            "this method does not know the user".
        """
        return False

    def capabilities(self) -> dict:
        return {name: False for name in CAPABILITIES}

    def unsupported_message(self, capability: str) -> str:
        """
        Text to show a user who asks for an operation this method lacks.

        A `no<capability>_message` parameter overrides the default.
        """
        return self.params.get(f"no{capability}_message") or (
            f"This account's authentication method does not support {capability}."
        )

    def require_activate(self) -> bool:
        """True if new accounts must be activated before they can log in."""
        return self.capabilities()["activate"]

    def supports_recovery(self) -> bool:
        return self.capabilities()["recover"]

    def activated(self, user_id: int) -> bool:
        """Every account is active unless the method tracks activation."""
        return True

    def generate_actcode(self, user_id: int) -> Optional[str]:
        return None

    def activate_user(self, user_id: int) -> bool:
        return False

    def set_password(self, user_id: int, password: str) -> bool:
        """Change a user's password. Not supported by this method."""
        return False

    def reset_password(self, user_id: int) -> Optional[str]:
        return None

    def reset_password_actcode(self, user_id: int) -> Optional[Tuple[str, str]]:
        return None

    def force_passchange(self, user_id: int) -> str:
        """
        Why the user must change their password before continuing.

        Returns:
            A reason string, or "" if no change is required
        """
        return ""

    def mark_loginfail(self, user_id: int) -> Tuple[int, int]:
        """
        Record a failed login.

        Returns:
            (failures recorded, failures allowed); an allowance of 0 means
            failures are not limited
        """
        return (0, 0)

    def reset_loginfail(self, user_id: int) -> bool:
        return False

    def get_policy(self) -> Optional[dict]:
        """The password policy in force, or None if there is none."""
        return dict(self.policy) if self.policy else None

    def apply_policy(self, password: str) -> Optional[dict]:
        """
        Check a password against the policy.

        Returns:
            None if the password passes, otherwise a dict mapping each
            failed policy to a (required, actual) tuple
        """
        failures = {}

        lower = sum(1 for c in password if "a" <= c <= "z")
        upper = sum(1 for c in password if "A" <= c <= "Z")
        digits = sum(1 for c in password if "0" <= c <= "9")
        others = max(len(password) - (lower + upper + digits), 0)

        counts = {
            "policy_min_length": len(password),
            "policy_min_lowercase": lower,
            "policy_min_uppercase": upper,
            "policy_min_digits": digits,
            "policy_min_others": others,
        }
        for key, required in self.policy.items():
            if counts[key] < required:
                failures[key] = (required, counts[key])

        return failures or None

    def generate_password(self) -> str:
        """A random password that satisfies the policy."""
        rng = secrets.SystemRandom()
        classes = {
            "policy_min_lowercase": string.ascii_lowercase,
            "policy_min_uppercase": string.ascii_uppercase,
            "policy_min_digits": string.digits,
            "policy_min_others": PASSWORD_OTHERS,
        }

        chars = []
        for key, alphabet in classes.items():
            chars.extend(rng.choice(alphabet) for _ in range(self.policy.get(key, 0)))

        length = max(GENERATED_PASSWORD_LENGTH, self.policy.get("policy_min_length", 0))
        filler = string.ascii_letters + string.digits
        chars.extend(rng.choice(filler) for _ in range(length - len(chars)))

        rng.shuffle(chars)
        return "".join(chars)
