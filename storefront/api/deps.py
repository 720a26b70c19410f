"""
Storefront — Authorization gate

One gate for every protected route: the access token comes from the
`Authorization: Bearer` header or, failing that, the access-token cookie.
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import get_settings
from storefront.core.errors import InsufficientRole, InvalidToken, Unauthenticated, UserInactive
from storefront.core.security import TokenKind, verify_token
from storefront.db.database import get_db
from storefront.models import Role, User
from storefront.schemas.auth import CurrentUser

settings = get_settings()


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(settings.ACCESS_COOKIE_NAME) or None


async def _resolve(token: str, db: AsyncSession) -> CurrentUser:
    claims = verify_token(token, TokenKind.ACCESS)
    if claims is None:
        raise InvalidToken()
    user = await db.get(User, claims["sub"])
    if user is None:
        raise InvalidToken()
    if not user.is_active:
        raise UserInactive()
    # role is read from the row so demotions apply before the token expires
    return CurrentUser(user_id=user.id, email=user.email, role=user.role)


async def get_current_user(
    request: Request, db: AsyncSession = Depends(get_db)
) -> CurrentUser:
    token = extract_token(request)
    if not token:
        raise Unauthenticated()
    return await _resolve(token, db)


async def get_optional_user(
    request: Request, db: AsyncSession = Depends(get_db)
) -> CurrentUser | None:
    """Like get_current_user, but anonymous callers get None instead of 401."""
    token = extract_token(request)
    if not token:
        return None
    return await _resolve(token, db)


def require_role(min_role: Role):
    """Dependency factory: caller's role rank must be at least min_role's."""

    async def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role.rank < min_role.rank:
            raise InsufficientRole()
        return user

    return checker


require_manager = require_role(Role.MANAGER)
require_admin = require_role(Role.ADMIN)
