from pydantic import Field

from ..models import CustomModel
from ..users.schema import UserPublic


class LoginRequest(CustomModel):
    username: str = Field(..., min_length=1, json_schema_extra={"example": "alice"})
    password: str = Field(..., min_length=1, json_schema_extra={"example": "secret1"})


class TokenData(CustomModel):
    token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="token lifetime in seconds")
    user: UserPublic
