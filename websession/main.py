# websession/main.py
from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from websession.auth.router import router as auth_router
from websession.core.settings import settings
from websession.utils.logging_setup import setup_logging


def create_app() -> FastAPI:
    setup_logging()

    app = FastAPI(
        title="websession API",
        version="0.1.0",
    )

    # Session cookies must cross origins during development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)

    return app


# Uvicorn entrypoint: uvicorn websession.main:app --reload
app = create_app()
