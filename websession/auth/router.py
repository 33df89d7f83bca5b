"""Login, logout and session API router."""

import logging

from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse

from websession.session import SessionHandler

from .deps import CurrentSession
from .schemas import LoginRequest, LogoutResponse, SessionInfo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

# Deliberately vague: never tell the client which part was wrong
LOGIN_FAILED_DETAIL = "Invalid username or password"


def apply_session_cookies(handler: SessionHandler, response: Response) -> None:
    for cookie in handler.session_cookies():
        cookie.apply(response)


def session_info(handler: SessionHandler) -> SessionInfo:
    user = handler.user
    return SessionInfo(
        session_id=handler.session_id,
        user_id=handler.user_id,
        username=None if handler.is_anonymous or user is None else user.username,
        anonymous=handler.is_anonymous,
        persistent=bool(handler.session is not None and handler.session.session_autologin),
        last_visit=None if handler.is_anonymous else handler.last_visit,
    )


@router.post("/login", response_model=SessionInfo)
def login(login_data: LoginRequest, response: Response, handler: CurrentSession):
    """
    Check the credentials and, if they are valid, replace the current
    session with one belonging to the user.

    - **username**: case-insensitive username
    - **password**: password
    - **persist**: keep the user logged in across browser sessions
    """
    result = handler.auth.validate_user(login_data.username, login_data.password)

    if not result.ok:
        logger.warning(f"Login failed for {login_data.username}: {result.reason.value}")
        failure = JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": LOGIN_FAILED_DETAIL},
        )
        apply_session_cookies(handler, failure)
        return failure

    handler.create_session(result.user.user_id, persist=login_data.persist)
    apply_session_cookies(handler, response)

    return session_info(handler)


@router.post("/logout", response_model=LogoutResponse)
def logout(response: Response, handler: CurrentSession):
    """
    End the current session, forget its autologin key, and start a new
    anonymous session.
    """
    handler.delete_session()
    apply_session_cookies(handler, response)

    return LogoutResponse()


@router.get("/session", response_model=SessionInfo)
def get_session(response: Response, handler: CurrentSession):
    """
    Get the current session.

    Always succeeds: visitors without a valid session get a new
    anonymous one.
    """
    apply_session_cookies(handler, response)
    return session_info(handler)
