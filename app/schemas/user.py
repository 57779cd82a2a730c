from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from app.db.models.user import UserRole

USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"


class UserCreateRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=8, max_length=128)
    role: UserRole = UserRole.STAFF


class UserUpdateRequest(BaseModel):
    username: str | None = Field(default=None, min_length=1, max_length=50, pattern=USERNAME_PATTERN)
    password: str | None = Field(default=None, min_length=8, max_length=128)
    role: UserRole | None = None

    @model_validator(mode="after")
    def validate_not_empty(self) -> "UserUpdateRequest":
        if self.username is None and self.password is None and self.role is None:
            raise ValueError("no fields provided for update")
        return self


class UserResponse(BaseModel):
    id: int
    username: str
    role: UserRole
    created_at: datetime

    model_config = {"from_attributes": True}
