"""
FastAPI application entry point for the portfolio API.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portfolio_api.config import DEFAULT_JWT_SECRET, get_settings
from portfolio_api.errors import register_exception_handlers
from portfolio_api.routes import router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not set; tokens are signed with the default key")
    if not (settings.admin_username and settings.admin_password):
        logger.warning("USER_NAME/USER_PASSWORD not set; admin login is disabled")

    app = FastAPI(title="Portfolio API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
