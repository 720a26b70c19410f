"""
Storefront — Users, profile and address routes
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import get_current_user, get_optional_user, require_admin
from storefront.core.errors import Forbidden, NotFound
from storefront.core.responses import success_response
from storefront.db import user_ops
from storefront.db.database import get_db
from storefront.models import Role
from storefront.schemas.auth import CurrentUser
from storefront.schemas.common import PageMeta
from storefront.schemas.user import (
    AddressCreate,
    AddressOut,
    RoleUpdate,
    UserDetail,
    UserProfile,
    UserPublic,
    UserUpdate,
)

router = APIRouter(prefix="/users", tags=["users"])
profile_router = APIRouter(tags=["profile"])


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = Query(None),
    role: Role | None = Query(None),
    is_active: bool | None = Query(None, alias="isActive"),
    _: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    users, total = await user_ops.list_users(db, page, limit, search, role, is_active)
    return success_response(
        {
            "items": [UserDetail.model_validate(u) for u in users],
            "meta": PageMeta.build(total, page, limit),
        }
    )


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    caller: CurrentUser | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Anonymous callers see the public profile; owner and admins see everything."""
    if caller is None:
        user = await user_ops.get_user(db, user_id)
        if not user.is_active:
            raise NotFound("User not found")
        return success_response(UserPublic.model_validate(user))

    if caller.user_id != user_id and not caller.is_admin:
        raise Forbidden("You can only view your own profile")
    user = await user_ops.get_user(db, user_id, with_addresses=True)
    return success_response(UserProfile.model_validate(user))


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    payload: UserUpdate,
    caller: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await user_ops.update_user(db, user_id, payload, caller)
    return success_response(UserProfile.model_validate(user), "User updated successfully")


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: str,
    caller: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Soft delete: the account is deactivated, never removed."""
    user = await user_ops.deactivate_user(db, user_id, caller)
    return success_response(UserDetail.model_validate(user), "User deactivated successfully")


@router.patch("/{user_id}/role")
async def change_role(
    user_id: str,
    payload: RoleUpdate,
    caller: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await user_ops.set_role(db, user_id, payload.role, caller)
    return success_response(UserDetail.model_validate(user), "Role updated successfully")


# ─── Caller's own profile & addresses ─────────────────────────────────────────

@profile_router.get("/profile")
async def my_profile(
    caller: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await user_ops.get_user(db, caller.user_id, with_addresses=True)
    return success_response(UserProfile.model_validate(user))


@profile_router.get("/addresses")
async def my_addresses(
    caller: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    addresses = await user_ops.list_addresses(db, caller.user_id)
    return success_response([AddressOut.model_validate(a) for a in addresses])


@profile_router.post("/addresses", status_code=status.HTTP_201_CREATED)
async def add_address(
    payload: AddressCreate,
    caller: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    address = await user_ops.add_address(db, caller.user_id, payload)
    return success_response(
        AddressOut.model_validate(address), "Address added successfully", status.HTTP_201_CREATED
    )
