"""
Storefront — Auth API routes
"""
import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import get_settings
from storefront.core.errors import InvalidToken, Unauthenticated, UserInactive
from storefront.core.responses import success_response
from storefront.core.security import (
    TokenKind,
    clear_auth_cookies,
    issue_tokens,
    set_auth_cookies,
    verify_password,
    verify_token,
)
from storefront.db import user_ops
from storefront.db.database import get_db
from storefront.models import User
from storefront.schemas.auth import (
    AuthResponse,
    AuthUser,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
)

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_for(user: User) -> dict[str, str]:
    return issue_tokens(user.id, user.email, user.role.value)


def _auth_payload(user: User, tokens: dict[str, str]) -> AuthResponse:
    return AuthResponse(user=AuthUser.model_validate(user), **tokens)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create a customer account and sign it in."""
    user = await user_ops.create_user(db, payload)
    tokens = _issue_for(user)
    response = success_response(
        _auth_payload(user, tokens), "User registered successfully", status.HTTP_201_CREATED
    )
    set_auth_cookies(response, tokens["access_token"], tokens["refresh_token"])
    return response


@router.post("/login")
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Validate credentials and issue an access/refresh pair (body + cookies)."""
    user = await user_ops.get_by_email(db, payload.email)
    if user is None or not verify_password(payload.password, user.hashed_password):
        raise Unauthenticated("Invalid email or password")
    if not user.is_active:
        raise UserInactive()

    await user_ops.touch_login(db, user)
    tokens = _issue_for(user)
    logger.info("User %s logged in", user.id)
    response = success_response(_auth_payload(user, tokens), "Login successful")
    set_auth_cookies(response, tokens["access_token"], tokens["refresh_token"])
    return response


@router.post("/logout")
async def logout():
    response = success_response(message="Logged out successfully")
    clear_auth_cookies(response)
    return response


@router.post("/refresh")
async def refresh(
    request: Request,
    payload: RefreshRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Rotate tokens using the refresh cookie, or a refreshToken in the body."""
    token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    if not token and payload is not None:
        token = payload.refresh_token
    if not token:
        raise Unauthenticated("Refresh token required")

    claims = verify_token(token, TokenKind.REFRESH)
    if claims is None:
        raise InvalidToken("Invalid or expired refresh token")

    user = await db.get(User, claims["sub"])
    if user is None or not user.is_active:
        raise InvalidToken("Invalid or expired refresh token")

    tokens = _issue_for(user)
    response = success_response(TokenPair(**tokens), "Token refreshed")
    set_auth_cookies(response, tokens["access_token"], tokens["refresh_token"])
    return response
