import logging
from typing import Annotated, List

import sqlalchemy
from fastapi import APIRouter, Depends, HTTPException

from formsapi.aggregation import aggregate
from formsapi.cache import CacheTag, revalidate
from formsapi.database import (
    dashboard_table,
    database,
    formfield_table,
    formresponse_table,
    formresponsevalue_table,
)
from formsapi.models.dashboard import (
    Aggregation,
    Dashboard,
    DashboardData,
    DashboardIn,
    DashboardUpdateIn,
)
from formsapi.models.user import UserInDB
from formsapi.permissions import require_admin
from formsapi.store import get_owned_form

logger = logging.getLogger(__name__)
router = APIRouter()


async def find_dashboard(dashboard_id: int, user_id: int) -> Dashboard:
    query = dashboard_table.select().where(
        dashboard_table.c.id == dashboard_id,
        dashboard_table.c.created_by == user_id,
    )
    row = await database.fetch_one(query)
    if not row:
        raise HTTPException(status_code=404, detail="Dashboard not found")
    return Dashboard(**dict(row._mapping))


@router.get("", response_model=List[Dashboard], status_code=200)
async def list_dashboards(current_user: Annotated[UserInDB, Depends(require_admin)]):
    query = (
        dashboard_table.select()
        .where(dashboard_table.c.created_by == current_user.id)
        .order_by(dashboard_table.c.created_at.desc(), dashboard_table.c.id.desc())
    )
    rows = await database.fetch_all(query)
    return [Dashboard(**dict(row._mapping)) for row in rows]


@router.post("", response_model=Dashboard, status_code=201)
async def create_dashboard(
    dashboard: DashboardIn,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    if dashboard.form_id is not None:
        await get_owned_form(database, dashboard.form_id, current_user.id)
    query = dashboard_table.insert().values(
        **dashboard.model_dump(mode="json"), created_by=current_user.id
    )
    logger.debug(query)
    dashboard_id = await database.execute(query)
    revalidate(CacheTag.DASHBOARDS)
    return await find_dashboard(dashboard_id, current_user.id)


@router.get("/{dashboard_id}", response_model=Dashboard, status_code=200)
async def get_dashboard(dashboard_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    return await find_dashboard(dashboard_id, current_user.id)


@router.put("/{dashboard_id}", response_model=Dashboard, status_code=200)
async def update_dashboard(
    dashboard_id: int,
    dashboard: DashboardUpdateIn,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await find_dashboard(dashboard_id, current_user.id)
    values = dashboard.model_dump(mode="json", exclude_unset=True)
    if values.get("form_id") is not None:
        await get_owned_form(database, values["form_id"], current_user.id)
    if values:
        query = dashboard_table.update().where(dashboard_table.c.id == dashboard_id).values(**values)
        logger.debug(query)
        await database.execute(query)
    revalidate(CacheTag.DASHBOARD, CacheTag.DASHBOARDS)
    return await find_dashboard(dashboard_id, current_user.id)


@router.delete("/{dashboard_id}", status_code=204)
async def delete_dashboard(dashboard_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    await find_dashboard(dashboard_id, current_user.id)
    await database.execute(dashboard_table.delete().where(dashboard_table.c.id == dashboard_id))
    logger.info(f"Dashboard {dashboard_id} deleted by user {current_user.id}")
    revalidate(CacheTag.DASHBOARD, CacheTag.DASHBOARDS)


@router.get("/{dashboard_id}/data", response_model=DashboardData, status_code=200)
async def get_dashboard_data(
    dashboard_id: int,
    group_by: str,
    current_user: Annotated[UserInDB, Depends(require_admin)],
    aggregation: Aggregation = "count",
):
    """Aggregate the stored values of one field of the dashboard's form."""
    dashboard = await find_dashboard(dashboard_id, current_user.id)
    if dashboard.form_id is None:
        raise HTTPException(status_code=400, detail="Dashboard has no form")

    field = await database.fetch_one(
        formfield_table.select().where(
            formfield_table.c.id == group_by,
            formfield_table.c.form_id == dashboard.form_id,
        )
    )
    if not field:
        raise HTTPException(status_code=404, detail="Field not found")

    query = (
        sqlalchemy.select(
            formresponsevalue_table.c.value,
            formresponsevalue_table.c.numeric_value,
            formresponsevalue_table.c.boolean_value,
        )
        .select_from(
            formresponsevalue_table.join(
                formresponse_table,
                formresponsevalue_table.c.response_id == formresponse_table.c.id,
            )
        )
        .where(
            formresponse_table.c.form_id == dashboard.form_id,
            formresponsevalue_table.c.field_id == group_by,
        )
    )
    rows = await database.fetch_all(query)

    total_query = sqlalchemy.select(sqlalchemy.func.count()).select_from(formresponse_table).where(
        formresponse_table.c.form_id == dashboard.form_id
    )
    total = await database.fetch_val(total_query)

    return DashboardData(
        field_id=group_by,
        aggregation=aggregation,
        data=aggregate(rows, aggregation),
        total=total,
    )
