"""
JWT cookie authentication.

Token lookup order is the ``token`` cookie, then ``Authorization: Bearer``.
Every failure path clears the cookie with the same attributes it was set with,
so a browser holding a stale token is reset by the first rejected request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request, Response
from fastapi.responses import JSONResponse
from passlib.context import CryptContext

from lawyerzen.config import Settings
from lawyerzen.dependencies import get_app_settings

logger = logging.getLogger(__name__)

COOKIE_NAME = "token"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class Unauthenticated(Exception):
    """Request carries no usable credentials (HTTP 401)."""

    def __init__(self, detail: str = "Invalid or expired token"):
        super().__init__(detail)
        self.detail = detail


@dataclass(frozen=True)
class SessionIdentity:
    user_id: str
    email: str
    role: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "SessionIdentity":
        user_id = payload.get("userId")
        email = payload.get("email")
        if not user_id or not email:
            raise Unauthenticated("Invalid token payload")
        return cls(user_id=str(user_id), email=str(email), role=payload.get("role"))


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.warning(f"Auth failed: invalid password hash ({e})")
        return False


def create_access_token(
    settings: Settings, user_id: str, email: str, role: Optional[str] = None
) -> str:
    expire = datetime.now(timezone.utc) + timedelta(days=settings.jwt_expires_days)
    payload = {"userId": user_id, "email": email, "exp": expire}
    if role:
        payload["role"] = role
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(settings: Settings, token: str) -> dict:
    """Verify signature and expiry. Raises ``jwt.PyJWTError`` on failure."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def cookie_options(settings: Settings) -> dict:
    return {
        "httponly": True,
        "samesite": "lax",
        "secure": settings.is_production,
        "path": "/",
    }


def set_auth_cookie(response: Response, settings: Settings, token: str) -> None:
    response.set_cookie(
        COOKIE_NAME,
        token,
        max_age=settings.jwt_expires_days * 24 * 60 * 60,
        **cookie_options(settings),
    )


def clear_auth_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(COOKIE_NAME, **cookie_options(settings))


def extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return None


def authenticate(request: Request, settings: Settings) -> SessionIdentity:
    token = extract_token(request)
    if not token:
        raise Unauthenticated("No authentication token provided")
    try:
        payload = decode_token(settings, token)
    except jwt.PyJWTError as exc:
        logger.info("Auth middleware rejected token: %s", exc)
        raise Unauthenticated("Invalid or expired token") from exc
    return SessionIdentity.from_payload(payload)


def require_auth(
    request: Request, settings: Settings = Depends(get_app_settings)
) -> SessionIdentity:
    """Route dependency: attach the caller's identity to ``request.state.user``."""
    identity = authenticate(request, settings)
    request.state.user = identity
    return identity


def unauthenticated_handler(request: Request, exc: Unauthenticated) -> JSONResponse:
    response = JSONResponse(status_code=401, content={"detail": exc.detail})
    clear_auth_cookie(response, request.app.state.settings)
    return response
