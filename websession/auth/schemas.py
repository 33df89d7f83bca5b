"""Pydantic schemas for login and session endpoints."""

from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Request schema for login."""

    username: str = Field(..., min_length=1, max_length=32, description="Username (case-insensitive)")
    password: str = Field(..., min_length=1, description="Password")
    persist: bool = Field(default=False, description="Issue an autologin key")


class SessionInfo(BaseModel):
    """The current session, as seen by the client."""

    session_id: str
    user_id: int
    username: Optional[str] = None
    anonymous: bool
    persistent: bool = False
    last_visit: Optional[int] = None


class LogoutResponse(BaseModel):
    """Response schema for logout."""

    message: str = "Successfully logged out"
