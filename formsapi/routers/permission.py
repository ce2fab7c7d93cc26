import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException

from formsapi.cache import CacheTag, revalidate
from formsapi.database import database, permission_table, role_permission_table
from formsapi.models.role import Permission, PermissionIn, PermissionUpdateIn
from formsapi.models.user import UserInDB
from formsapi.permissions import require_admin

logger = logging.getLogger(__name__)
router = APIRouter()


async def find_permission(permission_id: int) -> Permission:
    query = permission_table.select().where(permission_table.c.id == permission_id)
    row = await database.fetch_one(query)
    if not row:
        raise HTTPException(status_code=404, detail="Permission not found")
    return Permission(**dict(row._mapping))


async def _ensure_slug_free(slug: str, permission_id: int | None = None):
    q = permission_table.select().where(permission_table.c.slug == slug)
    if permission_id is not None:
        q = q.where(permission_table.c.id != permission_id)
    if await database.fetch_one(q):
        raise HTTPException(status_code=400, detail="Permission with this slug already exists")


@router.get("", response_model=List[Permission], status_code=200)
async def list_permissions(current_user: Annotated[UserInDB, Depends(require_admin)]):
    query = permission_table.select().order_by(permission_table.c.slug)
    rows = await database.fetch_all(query)
    return [Permission(**dict(r._mapping)) for r in rows]


@router.post("", response_model=Permission, status_code=201)
async def create_permission(
    permission: PermissionIn,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await _ensure_slug_free(permission.slug)
    query = permission_table.insert().values(**permission.model_dump())
    logger.debug(query)
    permission_id = await database.execute(query)
    revalidate(CacheTag.PERMISSIONS)
    return await find_permission(permission_id)


@router.get("/{permission_id}", response_model=Permission, status_code=200)
async def get_permission(permission_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    return await find_permission(permission_id)


@router.put("/{permission_id}", response_model=Permission, status_code=200)
async def update_permission(
    permission_id: int,
    permission: PermissionUpdateIn,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await find_permission(permission_id)
    values = permission.model_dump(exclude_unset=True)
    if values.get("slug") is not None:
        await _ensure_slug_free(values["slug"], permission_id)
    if values:
        query = permission_table.update().where(permission_table.c.id == permission_id).values(**values)
        logger.debug(query)
        await database.execute(query)
    revalidate(CacheTag.PERMISSION, CacheTag.PERMISSIONS)
    return await find_permission(permission_id)


@router.delete("/{permission_id}", status_code=204)
async def delete_permission(permission_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    await find_permission(permission_id)
    async with database.transaction():
        await database.execute(
            role_permission_table.delete().where(role_permission_table.c.permission_id == permission_id)
        )
        await database.execute(permission_table.delete().where(permission_table.c.id == permission_id))
    logger.info(f"Permission {permission_id} deleted by user {current_user.id}")
    revalidate(CacheTag.PERMISSION, CacheTag.PERMISSIONS, CacheTag.ROLE_PERMISSIONS)
