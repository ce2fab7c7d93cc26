from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from formsapi.models.role import Role, RoleWithPermissions


class User(BaseModel):
    id: int | None = None
    email: str
    role_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UserIn(BaseModel):
    email: str
    password: str


class UserUpdateIn(BaseModel):
    password: str | None = None
    role_id: int | None = None


class UserWithRole(User):
    role: Optional[Role] = None


class UserDetail(User):
    role: Optional[RoleWithPermissions] = None


class UserInDB(User):
    password_hash: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class UserPage(BaseModel):
    users: List[UserWithRole]
    pagination: Pagination
