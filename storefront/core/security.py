"""
Storefront — Password hashing, JWT issuing/verification and auth cookies
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from fastapi import Response
from jose import jwt, JWTError
from passlib.context import CryptContext

from storefront.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS
)


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


# ─── Password Hashing ─────────────────────────────────────────────────────────

def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


# ─── JWT Token Generation ──────────────────────────────────────────────────────

def _secret_for(kind: TokenKind) -> str:
    if kind is TokenKind.REFRESH:
        return settings.JWT_REFRESH_SECRET_KEY
    return settings.JWT_SECRET_KEY


def _encode(data: dict[str, Any], kind: TokenKind, lifetime: timedelta) -> str:
    payload = data.copy()
    expire = datetime.now(tz=timezone.utc) + lifetime
    payload.update({"exp": expire, "type": kind.value, "jti": str(uuid.uuid4())})
    return jwt.encode(payload, _secret_for(kind), algorithm=settings.JWT_ALGORITHM)


def create_access_token(data: dict[str, Any]) -> str:
    return _encode(
        data, TokenKind.ACCESS, timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    )


def create_refresh_token(data: dict[str, Any]) -> str:
    return _encode(
        data, TokenKind.REFRESH, timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
    )


def issue_tokens(user_id: str, email: str, role: str) -> dict[str, str]:
    """Issue an access/refresh pair; both carry the same identity claims."""
    claims = {"sub": user_id, "email": email, "role": role}
    return {
        "access_token": create_access_token(claims),
        "refresh_token": create_refresh_token(claims),
    }


def verify_token(token: str, kind: TokenKind = TokenKind.ACCESS) -> dict[str, Any] | None:
    """
    Decode and validate a JWT of the given kind.
    Returns None on any signature, expiry or type failure instead of raising.
    """
    try:
        claims = jwt.decode(token, _secret_for(kind), algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        logger.debug("Rejected %s token: %s", kind.value, exc)
        return None
    if claims.get("type") != kind.value or not claims.get("sub"):
        return None
    return claims


# ─── Cookies ───────────────────────────────────────────────────────────────────

def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    common = {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "strict",
        "path": "/",
    }
    response.set_cookie(
        settings.ACCESS_COOKIE_NAME,
        access_token,
        max_age=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        **common,
    )
    response.set_cookie(
        settings.REFRESH_COOKIE_NAME,
        refresh_token,
        max_age=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        **common,
    )


def clear_auth_cookies(response: Response) -> None:
    for name in (settings.ACCESS_COOKIE_NAME, settings.REFRESH_COOKIE_NAME):
        response.delete_cookie(
            name, path="/", httponly=True, secure=settings.cookie_secure, samesite="strict"
        )
