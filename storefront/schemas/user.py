"""
Storefront — User, profile and address schemas
"""
from datetime import datetime

from pydantic import EmailStr, Field

from storefront.models import Role
from storefront.schemas.common import CamelModel


class AddressCreate(CamelModel):
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=120)
    state: str = Field(..., min_length=1, max_length=120)
    postal_code: str = Field(..., min_length=1, max_length=32)
    country: str = Field(..., min_length=1, max_length=120)
    is_default: bool = False


class AddressOut(CamelModel):
    id: str
    street: str
    city: str
    state: str
    postal_code: str
    country: str
    is_default: bool


class UserPublic(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: str
    role: Role
    profile_image: str | None = None
    is_active: bool
    created_at: datetime


class UserDetail(UserPublic):
    phone: str | None = None
    date_of_birth: datetime | None = None
    is_verified: bool
    loyalty_points: int
    last_login: datetime | None = None
    updated_at: datetime


class UserProfile(UserDetail):
    addresses: list[AddressOut] = []


class UserUpdate(CamelModel):
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=32)
    profile_image: str | None = Field(None, max_length=512)
    date_of_birth: datetime | None = None
    password: str | None = Field(None, min_length=8, max_length=128)
    role: Role | None = None
    is_active: bool | None = None


class RoleUpdate(CamelModel):
    role: Role
