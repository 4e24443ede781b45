import logging

from fastapi import APIRouter, status

from ..database import SessionDep
from ..exceptions import Unauthorized
from ..models import ApiResponse
from ..users import service as user_service
from ..users.schema import UserCreate, UserPublic
from .schema import LoginRequest, TokenData
from .service import authenticate_user, create_access_token, token_lifetime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


@router.post("/register", response_model=ApiResponse[UserPublic], status_code=status.HTTP_201_CREATED)
async def register(body: UserCreate, db: SessionDep):
    user = await user_service.create_user(body, db)
    return ApiResponse(message="User registered successfully", data=UserPublic.model_validate(user))


@router.post("/login", response_model=ApiResponse[TokenData])
async def login(body: LoginRequest, db: SessionDep):
    user = await authenticate_user(db, body.username, body.password)
    if not user:
        raise Unauthorized("Invalid username or password")

    token = create_access_token(user)
    logger.info(f"User logged in: {user.username}")
    return ApiResponse(
        message="Login successful",
        data=TokenData(
            token=token,
            expires_in=int(token_lifetime().total_seconds()),
            user=UserPublic.model_validate(user),
        ),
    )
