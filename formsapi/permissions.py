"""Role/permission access gate.

A user holds at most one role, a role holds permissions through the
``roles_permissions`` join table, and access is a plain "does the role hold
this slug" lookup. There is no hierarchy and nothing is cached: every
protected request resolves the grant again, and a missing role reads the
same as a missing grant.
"""
import logging
from typing import Annotated, List, Optional

import databases
import sqlalchemy
from fastapi import Depends

from formsapi.config import config
from formsapi.database import (
    database,
    permission_table,
    role_permission_table,
    role_table,
    user_table,
)
from formsapi.errors import AuthorizationError
from formsapi.models.role import Permission
from formsapi.models.user import UserInDB
from formsapi.security import get_current_user

logger = logging.getLogger(__name__)


async def authorize(db: databases.Database, user_id: Optional[int], slug: str) -> bool:
    if user_id is None:
        return False
    query = (
        sqlalchemy.select(role_permission_table.c.id)
        .select_from(
            user_table
            .join(role_table, user_table.c.role_id == role_table.c.id)
            .join(role_permission_table, role_permission_table.c.role_id == role_table.c.id)
            .join(permission_table, role_permission_table.c.permission_id == permission_table.c.id)
        )
        .where(
            user_table.c.id == user_id,
            role_table.c.active == sqlalchemy.true(),
            permission_table.c.active == sqlalchemy.true(),
            permission_table.c.slug == slug,
        )
        .limit(1)
    )
    row = await db.fetch_one(query)
    allowed = row is not None
    logger.debug("Permission check", extra={"user_id": user_id, "slug": slug, "allowed": allowed})
    return allowed


def require_permission(slug: str):
    async def check_permission(current_user: Annotated[UserInDB, Depends(get_current_user)]):
        if not await authorize(database, current_user.id, slug):
            raise AuthorizationError(f"Missing permission '{slug}'")
        return current_user
    return check_permission


async def fetch_role_permissions(db: databases.Database, role_id: int) -> List[Permission]:
    query = (
        permission_table.select()
        .select_from(
            permission_table.join(
                role_permission_table,
                role_permission_table.c.permission_id == permission_table.c.id,
            )
        )
        .where(role_permission_table.c.role_id == role_id)
        .order_by(permission_table.c.slug)
    )
    rows = await db.fetch_all(query)
    return [Permission(**dict(row._mapping)) for row in rows]


require_admin = require_permission(config.ADMIN_PERMISSION)
