"""FastAPI dependencies for sessions and authentication."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from websession.core.site_config import SiteConfig
from websession.db.deps import get_db
from websession.session import RequestContext, SessionHandler

from .service import AuthService


def get_site_config(db: Session = Depends(get_db)) -> SiteConfig:
    return SiteConfig(db)


def get_auth_service(
    db: Session = Depends(get_db),
    site_config: SiteConfig = Depends(get_site_config),
) -> AuthService:
    return AuthService(db, site_config)


def get_session_handler(
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
) -> SessionHandler:
    """
    FastAPI dependency that establishes the session for this request.

    The returned handler has already validated or created the session;
    endpoints must apply handler.session_cookies() to their response.
    """
    return SessionHandler.initialize(
        db, RequestContext.from_request(request), auth, auth.config, auth.site_config
    )


CurrentSession = Annotated[SessionHandler, Depends(get_session_handler)]
