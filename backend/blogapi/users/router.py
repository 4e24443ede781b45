from fastapi import APIRouter, Query

from ..database import SessionDep
from ..models import ApiResponse
from ..users.models import User as UserModel, UserRole

from .schema import UserUpdate, UserPublic, UserListData, UserStatusUpdate, UserStats
from . import service as user_service
from ..auth.dependencies import CurrentUser, ActiveUser, AdminUser

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/profile", response_model=ApiResponse[UserPublic])
async def read_profile(current_user: UserModel = CurrentUser):
    return ApiResponse(message="Profile retrieved successfully", data=UserPublic.model_validate(current_user))


@router.put("/profile", response_model=ApiResponse[UserPublic])
async def update_profile(
    db: SessionDep,
    body: UserUpdate,
    current_user: UserModel = ActiveUser,
):
    user = await user_service.update_profile(db, db_user=current_user, user_in=body)
    return ApiResponse(message="Profile updated successfully", data=UserPublic.model_validate(user))


@router.get("", response_model=ApiResponse[UserListData])
async def list_users(
    db: SessionDep,
    admin: UserModel = AdminUser,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: UserRole | None = None,
    is_active: bool | None = Query(None, alias="isActive"),
    search: str | None = None,
):
    users, pagination = await user_service.list_users(
        db, page=page, limit=limit, role=role, is_active=is_active, search=search,
    )
    return ApiResponse(
        message="Users retrieved successfully",
        data=UserListData(users=[UserPublic.model_validate(u) for u in users], pagination=pagination),
    )


@router.get("/stats", response_model=ApiResponse[UserStats])
async def user_stats(db: SessionDep, admin: UserModel = AdminUser):
    stats = await user_service.get_stats(db)
    return ApiResponse(message="User statistics retrieved successfully", data=stats)


@router.get("/{user_id}", response_model=ApiResponse[UserPublic])
async def get_user(user_id: str, db: SessionDep, admin: UserModel = AdminUser):
    user = await user_service.get_user_or_404(user_id, db)
    return ApiResponse(message="User retrieved successfully", data=UserPublic.model_validate(user))


@router.put("/{user_id}/status", response_model=ApiResponse[UserPublic])
async def update_user_status(
    user_id: str,
    body: UserStatusUpdate,
    db: SessionDep,
    admin: UserModel = AdminUser,
):
    user = await user_service.set_active(db, admin=admin, target_id=user_id, is_active=body.is_active)
    state = "activated" if body.is_active else "deactivated"
    return ApiResponse(message=f"User {state} successfully", data=UserPublic.model_validate(user))
