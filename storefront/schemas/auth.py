"""
Storefront — Auth schemas
"""
from pydantic import EmailStr, Field

from storefront.models import Role
from storefront.schemas.common import CamelModel


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=32)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(CamelModel):
    refresh_token: str | None = None


class AuthUser(CamelModel):
    id: str
    email: str
    first_name: str
    last_name: str
    role: Role


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str


class AuthResponse(TokenPair):
    user: AuthUser


class CurrentUser(CamelModel):
    """Minimal authenticated identity handed to route handlers."""
    user_id: str
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
