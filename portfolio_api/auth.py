"""
Admin login, token issuing and the bearer-token gate for protected routes.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Coroutine, Optional

import jwt
from fastapi import Depends, Header, Request, Response
from fastapi.routing import APIRoute
from pydantic import BaseModel

from portfolio_api.config import Settings, get_settings
from portfolio_api.errors import InvalidCredentials, InvalidToken, MissingToken

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


class Identity(BaseModel):
    username: str


def _matches(supplied: str, expected: Optional[str]) -> bool:
    if expected is None:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def check_credentials(username: str, password: str, settings: Settings) -> Identity:
    """
    Compare a login attempt with the configured admin account.

    Both fields are always compared so the failure path does not reveal
    which one was wrong.
    """
    username_ok = _matches(username, settings.admin_username)
    password_ok = _matches(password, settings.admin_password)
    if not (username_ok and password_ok):
        raise InvalidCredentials()
    return Identity(username=username)


def issue_token(
    identity: Identity, settings: Settings, now: Optional[datetime] = None
) -> str:
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(seconds=settings.token_ttl_seconds)
    payload = {
        "username": identity.username,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> Identity:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidToken("Token has expired")
    except jwt.InvalidTokenError:
        raise InvalidToken()

    username = payload.get("username")
    if not isinstance(username, str) or not username:
        raise InvalidToken()
    return Identity(username=username)


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
        raise MissingToken()
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token or " " in token:
        raise MissingToken()
    return token


def authenticate(
    request: Request, authorization: Optional[str], settings: Settings
) -> Identity:
    """Verify the bearer token and attach the identity to the request."""
    try:
        token = extract_bearer_token(authorization)
        identity = decode_token(token, settings)
    except (MissingToken, InvalidToken) as exc:
        logger.info(
            "Rejected %s %s: %s", request.method, request.url.path, exc.detail
        )
        raise
    request.state.identity = identity
    return identity


def require_admin(
    request: Request,
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> Identity:
    """
    Dependency guarding admin routes. The route body only runs when this
    returns; every failure is raised before it.
    """
    identity = getattr(request.state, "identity", None)
    if isinstance(identity, Identity):
        return identity
    return authenticate(request, authorization, settings)


class AdminRoute(APIRoute):
    """
    Route that checks the bearer token before FastAPI reads the request
    body, so an anonymous caller gets 401 even when the body is malformed.
    """

    def get_route_handler(self) -> Callable[[Request], Coroutine[Any, Any, Response]]:
        handler = super().get_route_handler()

        async def gated_handler(request: Request) -> Response:
            overrides = request.app.dependency_overrides
            settings = overrides.get(get_settings, get_settings)()
            authenticate(request, request.headers.get("authorization"), settings)
            return await handler(request)

        return gated_handler
