from enum import IntEnum
from typing import Optional

from sqlalchemy import Boolean, Index, Integer, PrimaryKeyConstraint, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from websession.core.settings import settings


class Base(DeclarativeBase):
    pass


class UserType(IntEnum):
    NORMAL = 0
    INACTIVE = 1
    BOT = 2
    ADMIN = 3


# Only these user types may hold sessions for a real account or persist logins.
REAL_USER_TYPES = (UserType.NORMAL, UserType.ADMIN)


class User(Base):
    __tablename__ = settings.users_table
    __table_args__ = (
        PrimaryKeyConstraint('user_id', name='users_pk'),
        Index('users_username_uk', 'username', unique=True),
        Index('users_email_i', 'email'),
        Index('users_actcode_i', 'actcode'),
        {'comment': 'Stores the local user data for each user in the system'}
    )

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_auth: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="Id of the user's auth method")
    user_type: Mapped[int] = mapped_column(Integer, nullable=False, default=UserType.NORMAL, comment='The user type, 0 = normal, 1 = inactive, 2 = bot/anonymous, 3 = admin')
    username: Mapped[str] = mapped_column(String(32), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    password: Mapped[Optional[str]] = mapped_column(String(60), nullable=True, comment='bcrypt hash, when the database auth method is used')
    created: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment='The unix time at which this user was created')
    last_login: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="The unix time of the user's last login")
    actcode: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, comment='Pending activation code, if any')
    activated: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment='The unix time at which the account was activated, NULL if it is not active')
    passchange: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment='The unix time of the last password change')
    force_passchange: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, comment='Set when the user holds a system-allocated password')
    loginfail: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment='Consecutive failed logins')

    @property
    def is_real(self) -> bool:
        return self.user_type in REAL_USER_TYPES

    def __repr__(self) -> str:
        return f"<User {self.user_id} {self.username!r} type={self.user_type}>"


class UserVisit(Base):
    __tablename__ = settings.lastvisit_table or 'user_visits'
    __table_args__ = (
        PrimaryKeyConstraint('user_id', name='user_visits_pk'),
        {'comment': 'Last visit time for each user, updated on logout and garbage collection'}
    )

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_visit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SiteSetting(Base):
    __tablename__ = settings.settings_table
    __table_args__ = (
        PrimaryKeyConstraint('name', name='settings_pk'),
        {'comment': 'Site settings'}
    )

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False, default='')


class AuthMethodRow(Base):
    __tablename__ = settings.auth_methods_table
    __table_args__ = (
        PrimaryKeyConstraint('id', name='auth_methods_pk'),
        Index('auth_methods_priority_i', 'priority'),
        {'comment': 'Stores the authentication methods supported by the system'}
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module: Mapped[str] = mapped_column(String(100), nullable=False, comment='Registry key of the implementation, e.g. "database" or "ssh"')
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment='Lower values are tried first')
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, comment='Is this auth method usable?')


class AuthMethodParam(Base):
    __tablename__ = settings.auth_params_table
    __table_args__ = (
        PrimaryKeyConstraint('method_id', 'name', name='auth_methods_params_pk'),
        {'comment': 'Stores the settings for each auth method'}
    )

    method_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(40), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False, default='')
