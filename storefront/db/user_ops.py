"""
Storefront — Accounts, profiles and addresses
"""
import logging

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from storefront.core.security import hash_password
from storefront.db.database import utcnow
from storefront.models import Address, Role, User
from storefront.schemas.auth import CurrentUser, RegisterRequest
from storefront.schemas.user import AddressCreate, UserUpdate

logger = logging.getLogger(__name__)

ADMIN_ONLY_FIELDS = {"role", "is_active"}
NON_NULLABLE_FIELDS = {"first_name", "last_name", "email", "password", "role", "is_active"}


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_by_email(db: AsyncSession, email: str) -> User | None:
    return (
        await db.execute(select(User).where(User.email == normalize_email(email)))
    ).scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: str, with_addresses: bool = False) -> User:
    stmt = select(User).where(User.id == user_id).execution_options(populate_existing=True)
    if with_addresses:
        stmt = stmt.options(selectinload(User.addresses))
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user


async def create_user(db: AsyncSession, payload: RegisterRequest) -> User:
    email = normalize_email(payload.email)
    if await get_by_email(db, email) is not None:
        raise ValidationFailed("Email already registered", {"email": "already registered"})

    user = User(
        email=email,
        hashed_password=hash_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        phone=payload.phone,
        role=Role.USER,
        last_login=utcnow(),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ValidationFailed("Email already registered", {"email": "already registered"}) from exc
    logger.info("Registered user %s", user.id)
    return user


async def touch_login(db: AsyncSession, user: User) -> None:
    user.last_login = utcnow()
    await db.commit()


async def list_users(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    role: Role | None = None,
    is_active: bool | None = None,
) -> tuple[list[User], int]:
    conditions = []
    if search:
        pattern = f"%{search}%"
        conditions.append(
            or_(User.email.ilike(pattern), User.first_name.ilike(pattern), User.last_name.ilike(pattern))
        )
    if role is not None:
        conditions.append(User.role == role)
    if is_active is not None:
        conditions.append(User.is_active.is_(is_active))

    total = (await db.execute(select(func.count()).select_from(User).where(*conditions))).scalar_one()
    stmt = (
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc(), User.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list((await db.execute(stmt)).scalars().all()), total


async def update_user(db: AsyncSession, user_id: str, payload: UserUpdate, caller: CurrentUser) -> User:
    if caller.user_id != user_id and not caller.is_admin:
        raise Forbidden("You can only update your own profile")

    changes = payload.model_dump(exclude_unset=True)
    if ADMIN_ONLY_FIELDS & changes.keys() and not caller.is_admin:
        raise Forbidden("Only administrators can change role or account status")
    if caller.user_id == user_id:
        if changes.get("role") not in (None, Role.ADMIN):
            raise ValidationFailed("Administrators cannot demote themselves", {"role": "self-demotion"})
        if changes.get("is_active") is False:
            raise ValidationFailed("Administrators cannot deactivate themselves")

    user = await get_user(db, user_id)

    if changes.get("email"):
        email = normalize_email(changes["email"])
        if email != user.email:
            taken = (
                await db.execute(select(User.id).where(User.email == email, User.id != user.id))
            ).first()
            if taken is not None:
                raise Conflict("Email already in use", {"email": "already in use"})
        changes["email"] = email

    password = changes.pop("password", None)
    if password:
        user.hashed_password = hash_password(password)

    for field, value in changes.items():
        if value is None and field in NON_NULLABLE_FIELDS:
            continue
        setattr(user, field, value)

    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("Email already in use", {"email": "already in use"}) from exc
    return await get_user(db, user_id, with_addresses=True)


async def set_role(db: AsyncSession, user_id: str, role: Role, caller: CurrentUser) -> User:
    if caller.user_id == user_id and role != Role.ADMIN:
        raise ValidationFailed("Administrators cannot demote themselves", {"role": "self-demotion"})
    user = await get_user(db, user_id)
    user.role = role
    await db.commit()
    logger.info("User %s role set to %s by %s", user_id, role.value, caller.user_id)
    return user


async def deactivate_user(db: AsyncSession, user_id: str, caller: CurrentUser) -> User:
    if caller.user_id == user_id:
        raise ValidationFailed("Administrators cannot deactivate themselves")
    user = await get_user(db, user_id)
    user.is_active = False
    await db.commit()
    logger.info("User %s deactivated by %s", user_id, caller.user_id)
    return user


# ─── Addresses ─────────────────────────────────────────────────────────────────

async def list_addresses(db: AsyncSession, user_id: str) -> list[Address]:
    stmt = select(Address).where(Address.user_id == user_id).order_by(
        Address.is_default.desc(), Address.created_at
    )
    return list((await db.execute(stmt)).scalars().all())


async def add_address(db: AsyncSession, user_id: str, payload: AddressCreate) -> Address:
    has_any = (
        await db.execute(select(Address.id).where(Address.user_id == user_id).limit(1))
    ).first() is not None
    # first address becomes the default
    make_default = payload.is_default or not has_any
    if make_default:
        await db.execute(
            update(Address)
            .where(Address.user_id == user_id, Address.is_default.is_(True))
            .values(is_default=False, updated_at=utcnow())
        )

    address = Address(user_id=user_id, **payload.model_dump(exclude={"is_default"}), is_default=make_default)
    db.add(address)
    await db.commit()
    return address
