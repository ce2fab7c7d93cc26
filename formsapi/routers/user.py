import logging
import math
from typing import Annotated, Optional

import sqlalchemy
from fastapi import APIRouter, Depends, HTTPException, Query, status

from formsapi.config import config
from formsapi.database import (
    dashboard_table,
    database,
    form_table,
    formresponse_table,
    role_table,
    user_table,
)
from formsapi.models.role import Role, RoleWithPermissions
from formsapi.models.user import (
    Pagination,
    User,
    UserDetail,
    UserIn,
    UserInDB,
    UserPage,
    UserUpdateIn,
    UserWithRole,
)
from formsapi.permissions import authorize, fetch_role_permissions, require_admin
from formsapi.security import (
    authenticate_user,
    create_access_token,
    get_current_user,
    get_password_hash,
    get_user,
    get_user_by_id,
)

logger = logging.getLogger(__name__)
router = APIRouter()


async def load_user_detail(user: User) -> UserDetail:
    role = None
    if user.role_id is not None:
        row = await database.fetch_one(role_table.select().where(role_table.c.id == user.role_id))
        if row:
            role = RoleWithPermissions(
                **dict(row._mapping),
                permissions=await fetch_role_permissions(database, user.role_id),
            )
    return UserDetail(**user.model_dump(include=set(User.model_fields)), role=role)


@router.post("/token", status_code=200)
async def login(user: UserIn):
    user = await authenticate_user(user.email, user.password)
    access_token = create_access_token(user.email)
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/register", response_model=User, status_code=201)
async def register(user: UserIn):
    if await get_user(user.email) is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A user with that email already exists",
        )
    query = user_table.insert().values(
        email=user.email,
        password_hash=get_password_hash(user.password),
    )
    logger.debug(query)
    user_id = await database.execute(query)
    logger.info(f"Registered user {user_id}")
    return await get_user_by_id(user_id)


@router.get("/me", response_model=UserDetail, status_code=200)
async def read_me(current_user: Annotated[UserInDB, Depends(get_current_user)]):
    return await load_user_detail(current_user)


@router.get("", response_model=UserPage, status_code=200)
async def list_users(
    current_user: Annotated[UserInDB, Depends(require_admin)],
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    role: Optional[int] = None,
):
    conditions = []
    if search:
        conditions.append(user_table.c.email.ilike(f"%{search}%"))
    if role is not None:
        conditions.append(user_table.c.role_id == role)

    count_query = sqlalchemy.select(sqlalchemy.func.count()).select_from(user_table).where(*conditions)
    total = await database.fetch_val(count_query)

    query = (
        user_table.select()
        .where(*conditions)
        .order_by(user_table.c.created_at.desc(), user_table.c.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = await database.fetch_all(query)

    role_ids = {row.role_id for row in rows if row.role_id is not None}
    roles = {}
    if role_ids:
        role_rows = await database.fetch_all(role_table.select().where(role_table.c.id.in_(role_ids)))
        roles = {r.id: Role(**dict(r._mapping)) for r in role_rows}

    users = []
    for row in rows:
        u = User(**dict(row._mapping))
        users.append(UserWithRole(**u.model_dump(), role=roles.get(u.role_id)))

    total_pages = math.ceil(total / limit)
    return UserPage(
        users=users,
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        ),
    )


@router.get("/{user_id}", response_model=UserDetail, status_code=200)
async def get_specific_user(user_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    user = await get_user_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return await load_user_detail(user)


@router.put("/{user_id}", response_model=UserDetail, status_code=200)
async def update_user(
    user_id: int,
    user: UserUpdateIn,
    current_user: Annotated[UserInDB, Depends(get_current_user)],
):
    existing_user = await get_user_by_id(user_id)
    if existing_user is None:
        raise HTTPException(status_code=404, detail="User not found")

    is_self = existing_user.id == current_user.id
    is_admin = await authorize(database, current_user.id, config.ADMIN_PERMISSION)
    if not (is_self or is_admin):
        raise HTTPException(
            status_code=403,
            detail="You do not have permission to update this user",
        )

    changes = user.model_dump(exclude_unset=True)
    update_values = {}
    if changes.get("password"):
        update_values["password_hash"] = get_password_hash(changes["password"])

    # only admin
    if "role_id" in changes:
        if not is_admin:
            raise HTTPException(status_code=403, detail="Only administrators can assign roles")
        role_id = changes["role_id"]
        if role_id is not None:
            role = await database.fetch_one(role_table.select().where(role_table.c.id == role_id))
            if not role:
                raise HTTPException(status_code=400, detail="Unknown role")
        update_values["role_id"] = role_id

    if update_values:
        query = user_table.update().where(user_table.c.id == user_id).values(**update_values)
        logger.debug(query)
        await database.execute(query)
        logger.info(f"User {user_id} updated by user {current_user.id}")

    return await load_user_detail(await get_user_by_id(user_id))


@router.delete("/{user_id}", status_code=204)
async def delete_user(user_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    if await get_user_by_id(user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    forms_owned = await database.fetch_val(
        sqlalchemy.select(sqlalchemy.func.count())
        .select_from(form_table)
        .where(form_table.c.created_by == user_id)
    )
    dashboards_owned = await database.fetch_val(
        sqlalchemy.select(sqlalchemy.func.count())
        .select_from(dashboard_table)
        .where(dashboard_table.c.created_by == user_id)
    )
    if forms_owned or dashboards_owned:
        raise HTTPException(status_code=400, detail="User still owns forms or dashboards")
    async with database.transaction():
        # their past submissions stay, as anonymous responses
        await database.execute(
            formresponse_table.update()
            .where(formresponse_table.c.user_id == user_id)
            .values(user_id=None)
        )
        query = user_table.delete().where(user_table.c.id == user_id)
        logger.debug(query)
        await database.execute(query)
    logger.info(f"User {user_id} deleted by user {current_user.id}")
