"""Pluggable authentication methods."""

from .base import AuthMethod, AuthMethodError, MethodContext, PasswordPolicyError
from .database import DatabaseAuthMethod, hash_password
from .ldap import LDAPAuthMethod, LDAPSAuthMethod
from .registry import METHOD_FACTORIES, AuthMethodRegistry, register_method
from .ssh import SSHAuthMethod

__all__ = [
    "AuthMethod",
    "AuthMethodError",
    "AuthMethodRegistry",
    "DatabaseAuthMethod",
    "LDAPAuthMethod",
    "LDAPSAuthMethod",
    "MethodContext",
    "METHOD_FACTORIES",
    "PasswordPolicyError",
    "SSHAuthMethod",
    "hash_password",
    "register_method",
]
