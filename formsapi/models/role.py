from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class RoleIn(BaseModel):
    name: str
    code: str
    description: Optional[str] = None
    active: bool = True


class RoleUpdateIn(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None


class Role(RoleIn):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PermissionIn(BaseModel):
    name: str
    slug: str
    description: Optional[str] = None
    active: bool = True


class PermissionUpdateIn(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None


class Permission(PermissionIn):
    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RolePermissionIn(BaseModel):
    permission_id: int


class RolePermission(BaseModel):
    id: int
    role_id: int
    permission_id: int
    permission: Optional[Permission] = None


class RoleWithPermissions(Role):
    permissions: List[Permission] = []
