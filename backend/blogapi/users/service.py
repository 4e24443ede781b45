import logging
from datetime import timedelta
from typing import List, Optional

from passlib.context import CryptContext
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import NotFound, ValidationError
from ..models import Pagination
from .models import User as UserModel, UserRole, utcnow
from .schema import UserCreate, UserUpdate, UserStats, RoleCounts, StatusCounts

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def like_pattern(text: str) -> str:
    """Substring pattern for ILIKE with the user's wildcards escaped."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def create_user(user_data: UserCreate, db: AsyncSession, role: UserRole = UserRole.USER) -> UserModel:
    existing_user = await get_user_by_username(user_data.username, db)
    if existing_user:
        raise ValidationError("Username already exists")

    db_user = UserModel(
        username=user_data.username,
        password_hash=pwd_context.hash(user_data.password),
        email=str(user_data.email) if user_data.email else None,
        full_name=user_data.full_name,
        role=role,
        is_active=True,
    )
    db.add(db_user)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race with a concurrent registration of the same name
        await db.rollback()
        raise ValidationError("Username already exists")
    await db.refresh(db_user)
    logger.info(f"User registered: {db_user.username} ({db_user.role.value})")
    return db_user


async def get_user_by_id(user_id: str, db: AsyncSession) -> Optional[UserModel]:
    result = await db.execute(select(UserModel).where(UserModel.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_username(username: str, db: AsyncSession) -> Optional[UserModel]:
    result = await db.execute(select(UserModel).where(UserModel.username == username))
    return result.scalar_one_or_none()


async def get_user_or_404(user_id: str, db: AsyncSession) -> UserModel:
    user = await get_user_by_id(user_id, db)
    if not user:
        raise NotFound("User not found")
    return user


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


async def list_users(
    db: AsyncSession,
    *,
    page: int = 1,
    limit: int = 10,
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
) -> tuple[List[UserModel], Pagination]:
    """Admin listing, newest accounts first."""
    conditions = []
    if role is not None:
        conditions.append(UserModel.role == role)
    if is_active is not None:
        conditions.append(UserModel.is_active == is_active)
    if search:
        pattern = like_pattern(search)
        conditions.append(or_(
            UserModel.username.ilike(pattern, escape="\\"),
            UserModel.full_name.ilike(pattern, escape="\\"),
            UserModel.email.ilike(pattern, escape="\\"),
        ))

    total = (await db.execute(
        select(func.count()).select_from(UserModel).where(*conditions)
    )).scalar_one()

    result = await db.execute(
        select(UserModel)
        .where(*conditions)
        .order_by(UserModel.created_at.desc(), UserModel.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), Pagination.build(page=page, limit=limit, total=total)


async def update_profile(db: AsyncSession, db_user: UserModel, user_in: UserUpdate) -> UserModel:
    # only the fields the client actually sent; an explicit null clears the field
    update_data = user_in.model_dump(exclude_unset=True)
    if "email" in update_data and update_data["email"] is not None:
        update_data["email"] = str(update_data["email"])

    for field, value in update_data.items():
        setattr(db_user, field, value)

    await db.commit()
    await db.refresh(db_user)
    return db_user


async def set_active(db: AsyncSession, *, admin: UserModel, target_id: str, is_active: bool) -> UserModel:
    if target_id == admin.id and not is_active:
        raise ValidationError("You cannot deactivate your own account")

    user = await get_user_or_404(target_id, db)
    user.is_active = is_active
    await db.commit()
    await db.refresh(user)
    logger.info(f"User {user.username} {'activated' if is_active else 'deactivated'} by {admin.username}")
    return user


async def get_stats(db: AsyncSession) -> UserStats:
    async def count(*conditions) -> int:
        return (await db.execute(
            select(func.count()).select_from(UserModel).where(*conditions)
        )).scalar_one()

    since = utcnow() - timedelta(days=30)
    return UserStats(
        total=await count(),
        by_role=RoleCounts(
            admin=await count(UserModel.role == UserRole.ADMIN),
            user=await count(UserModel.role == UserRole.USER),
        ),
        by_status=StatusCounts(
            active=await count(UserModel.is_active.is_(True)),
            inactive=await count(UserModel.is_active.is_(False)),
        ),
        new_this_month=await count(UserModel.created_at >= since),
    )


async def list_notification_emails(db: AsyncSession, *, exclude_user_id: Optional[str] = None) -> List[str]:
    """Email addresses of active users who should hear about new posts."""
    stmt = select(UserModel.email).where(
        UserModel.is_active.is_(True),
        UserModel.email.is_not(None),
        UserModel.email != "",
    )
    if exclude_user_id is not None:
        stmt = stmt.where(UserModel.id != exclude_user_id)
    result = await db.execute(stmt.order_by(UserModel.created_at))
    return [email for email in result.scalars().all() if email]
