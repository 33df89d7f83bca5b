"""SQLAlchemy models for session tracking."""

from sqlalchemy import Boolean, Index, Integer, PrimaryKeyConstraint, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from websession.core.settings import settings
from websession.models import Base


class SessionRow(Base):
    """
    One row per live session.

    session_time is the last touch time; it is refreshed at most once a
    minute while the session is in use.
    """

    __tablename__ = settings.sessions_table
    __table_args__ = (
        PrimaryKeyConstraint("session_id", name="sessions_pk"),
        Index("sessions_time_i", "session_time"),
        Index("sessions_user_id_i", "session_user_id"),
        {"comment": "Website sessions"},
    )

    session_id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        comment="md5 hex digest of a unique id",
    )
    session_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    session_start: Mapped[int] = mapped_column(Integer, nullable=False)
    session_time: Mapped[int] = mapped_column(Integer, nullable=False)
    session_ip: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    session_autologin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<SessionRow {self.session_id} user={self.session_user_id}>"


class SessionKey(Base):
    """
    Autologin keys. key_id holds the md5 of the key value sent in the
    cookie; the plaintext is never stored.
    """

    __tablename__ = settings.session_keys_table
    __table_args__ = (
        PrimaryKeyConstraint("key_id", "user_id", name="session_keys_pk"),
        Index("session_keys_last_login_i", "last_login"),
        {"comment": "Autologin keys"},
    )

    key_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_ip: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    last_login: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class SessionVariable(Base):
    """Free-form per-session values, read and written directly."""

    __tablename__ = settings.session_variables_table or "session_variables"
    __table_args__ = (
        PrimaryKeyConstraint("session_id", "var_name", name="session_variables_pk"),
        {"comment": "Session-related variables"},
    )

    session_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    var_name: Mapped[str] = mapped_column(String(80), primary_key=True)
    var_value: Mapped[str] = mapped_column(Text, nullable=False, default="")
