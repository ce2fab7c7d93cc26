import logging
from typing import Annotated, List

import sqlalchemy
from fastapi import APIRouter, Depends, HTTPException

from formsapi.cache import CacheTag, revalidate
from formsapi.database import (
    database,
    permission_table,
    role_permission_table,
    role_table,
    user_table,
)
from formsapi.models.role import (
    Permission,
    Role,
    RoleIn,
    RolePermission,
    RolePermissionIn,
    RoleUpdateIn,
    RoleWithPermissions,
)
from formsapi.models.user import UserInDB
from formsapi.permissions import fetch_role_permissions, require_admin

logger = logging.getLogger(__name__)
router = APIRouter()


async def find_role(role_id: int) -> Role:
    query = role_table.select().where(role_table.c.id == role_id)
    role = await database.fetch_one(query)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return Role(**dict(role._mapping))


async def _ensure_unique(name: str | None, code: str | None, role_id: int | None = None):
    conditions = []
    if name is not None:
        conditions.append(role_table.c.name == name)
    if code is not None:
        conditions.append(role_table.c.code == code)
    if not conditions:
        return
    q = role_table.select().where(sqlalchemy.or_(*conditions))
    if role_id is not None:
        q = q.where(role_table.c.id != role_id)
    if await database.fetch_one(q):
        raise HTTPException(status_code=400, detail="Role already exists")


@router.get("", response_model=List[Role], status_code=200)
async def list_roles(current_user: Annotated[UserInDB, Depends(require_admin)]):
    query = role_table.select().order_by(role_table.c.name)
    roles = await database.fetch_all(query)
    return [Role(**dict(r._mapping)) for r in roles]


@router.post("", response_model=Role, status_code=201)
async def create_role(role: RoleIn, current_user: Annotated[UserInDB, Depends(require_admin)]):
    await _ensure_unique(role.name, role.code)
    query = role_table.insert().values(**role.model_dump())
    logger.debug(query)
    role_id = await database.execute(query)
    revalidate(CacheTag.ROLES)
    return await find_role(role_id)


@router.get("/{role_id}", response_model=RoleWithPermissions, status_code=200)
async def get_role(role_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    role = await find_role(role_id)
    permissions = await fetch_role_permissions(database, role_id)
    return RoleWithPermissions(**role.model_dump(), permissions=permissions)


@router.put("/{role_id}", response_model=Role, status_code=200)
async def update_role(
    role_id: int,
    role: RoleUpdateIn,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await find_role(role_id)
    values = role.model_dump(exclude_unset=True)
    await _ensure_unique(values.get("name"), values.get("code"), role_id)
    if values:
        query = role_table.update().where(role_table.c.id == role_id).values(**values)
        logger.debug(query)
        await database.execute(query)
    revalidate(CacheTag.ROLE, CacheTag.ROLES)
    return await find_role(role_id)


@router.delete("/{role_id}", status_code=204)
async def delete_role(role_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    await find_role(role_id)
    async with database.transaction():
        await database.execute(
            user_table.update().where(user_table.c.role_id == role_id).values(role_id=None)
        )
        await database.execute(
            role_permission_table.delete().where(role_permission_table.c.role_id == role_id)
        )
        await database.execute(role_table.delete().where(role_table.c.id == role_id))
    logger.info(f"Role {role_id} deleted by user {current_user.id}")
    revalidate(CacheTag.ROLE, CacheTag.ROLES, CacheTag.ROLE_PERMISSIONS)


@router.get("/{role_id}/permissions", response_model=List[RolePermission], status_code=200)
async def list_role_permissions(role_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    await find_role(role_id)
    query = (
        sqlalchemy.select(
            role_permission_table.c.id.label("grant_id"),
            role_permission_table.c.role_id,
            permission_table,
        )
        .select_from(
            role_permission_table.join(
                permission_table,
                role_permission_table.c.permission_id == permission_table.c.id,
            )
        )
        .where(role_permission_table.c.role_id == role_id)
        .order_by(permission_table.c.slug)
    )
    rows = await database.fetch_all(query)
    grants = []
    for row in rows:
        data = dict(row._mapping)
        grants.append(
            RolePermission(
                id=data.pop("grant_id"),
                role_id=data.pop("role_id"),
                permission_id=data["id"],
                permission=Permission(**data),
            )
        )
    return grants


@router.post("/{role_id}/permissions", response_model=RolePermission, status_code=201)
async def grant_permission(
    role_id: int,
    grant: RolePermissionIn,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await find_role(role_id)
    permission = await database.fetch_one(
        permission_table.select().where(permission_table.c.id == grant.permission_id)
    )
    if not permission:
        raise HTTPException(status_code=404, detail="Permission not found")

    existing = await database.fetch_one(
        role_permission_table.select().where(
            role_permission_table.c.role_id == role_id,
            role_permission_table.c.permission_id == grant.permission_id,
        )
    )
    if existing:
        raise HTTPException(status_code=400, detail="Role already has this permission")

    query = role_permission_table.insert().values(role_id=role_id, permission_id=grant.permission_id)
    grant_id = await database.execute(query)
    logger.info(f"Granted permission {permission.slug} to role {role_id}")
    revalidate(CacheTag.ROLE_PERMISSIONS, CacheTag.ROLE)
    return RolePermission(
        id=grant_id,
        role_id=role_id,
        permission_id=grant.permission_id,
        permission=Permission(**dict(permission._mapping)),
    )


@router.delete("/{role_id}/permissions", status_code=204)
async def revoke_permission(
    role_id: int,
    permission_id: int,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await find_role(role_id)
    grant = role_permission_table.c.role_id == role_id, role_permission_table.c.permission_id == permission_id
    if not await database.fetch_one(role_permission_table.select().where(*grant)):
        raise HTTPException(status_code=404, detail="Permission not granted to this role")
    await database.execute(role_permission_table.delete().where(*grant))
    logger.info(f"Revoked permission {permission_id} from role {role_id}")
    revalidate(CacheTag.ROLE_PERMISSIONS, CacheTag.ROLE)
