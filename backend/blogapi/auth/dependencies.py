from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from ..database import SessionDep

from ..exceptions import Unauthorized, Forbidden
from ..users.models import User, UserRole
from ..auth import service as auth_service

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_from_access_token(
    db: SessionDep,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> User:
    if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
        raise Unauthorized("Access denied. No token provided or invalid token format.")
    return await auth_service.get_user_from_access_token(token=credentials.credentials, db=db)

CurrentUser = Depends(get_current_user_from_access_token)


def require_active(current_user: User = CurrentUser) -> User:
    if not current_user.is_active:
        raise Forbidden("Access denied. Account is deactivated.")
    return current_user

ActiveUser = Depends(require_active)


def require_role(role: UserRole):
    def checker(current_user: User = ActiveUser) -> User:
        if current_user.role != role:
            raise Forbidden(f"Access denied. {role.value.capitalize()} privileges required.")
        return current_user
    return checker


require_admin = require_role(UserRole.ADMIN)
AdminUser = Depends(require_admin)
