import logging
from typing import Annotated, List

import sqlalchemy
from fastapi import APIRouter, Depends

from formsapi.cache import CacheTag, revalidate
from formsapi.conditions import evaluate
from formsapi.database import (
    dashboard_table,
    database,
    form_table,
    formfield_table,
    formresponse_table,
    formresponsevalue_table,
)
from formsapi.errors import InactiveFormError, NotFoundError
from formsapi.models.form import (
    Form,
    FormIn,
    FormUpdateIn,
    PublicForm,
    ResponseIn,
    VisibilityOut,
)
from formsapi.models.user import UserInDB
from formsapi.permissions import require_admin
from formsapi.store import fetch_fields, get_form, get_owned_form

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[Form], status_code=200)
async def list_forms(current_user: Annotated[UserInDB, Depends(require_admin)]):
    query = (
        form_table.select()
        .where(form_table.c.created_by == current_user.id)
        .order_by(form_table.c.created_at.desc(), form_table.c.id.desc())
    )
    rows = await database.fetch_all(query)
    return [Form(**dict(row._mapping)) for row in rows]


@router.post("", response_model=Form, status_code=201)
async def create_form(form: FormIn, current_user: Annotated[UserInDB, Depends(require_admin)]):
    query = form_table.insert().values(**form.model_dump(), created_by=current_user.id)
    logger.debug(query)
    form_id = await database.execute(query)
    logger.info(f"Form {form_id} created by user {current_user.id}")
    revalidate(CacheTag.FORMS, CacheTag.PUBLIC_FORM)
    return await get_owned_form(database, form_id, current_user.id)


@router.get("/{form_id}", response_model=Form, status_code=200)
async def get_form_detail(form_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    return await get_owned_form(database, form_id, current_user.id)


@router.put("/{form_id}", response_model=Form, status_code=200)
async def update_form(
    form_id: int,
    form: FormUpdateIn,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await get_owned_form(database, form_id, current_user.id)
    values = form.model_dump(exclude_unset=True)
    if values:
        query = form_table.update().where(form_table.c.id == form_id).values(**values)
        logger.debug(query)
        await database.execute(query)
    revalidate(CacheTag.FORM, CacheTag.FORMS, CacheTag.PUBLIC_FORM)
    return await get_owned_form(database, form_id, current_user.id)


@router.delete("/{form_id}", status_code=204)
async def delete_form(form_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    await get_owned_form(database, form_id, current_user.id)
    response_ids = sqlalchemy.select(formresponse_table.c.id).where(
        formresponse_table.c.form_id == form_id
    )
    async with database.transaction():
        await database.execute(
            formresponsevalue_table.delete().where(
                formresponsevalue_table.c.response_id.in_(response_ids)
            )
        )
        await database.execute(
            formresponse_table.delete().where(formresponse_table.c.form_id == form_id)
        )
        await database.execute(
            formfield_table.delete().where(formfield_table.c.form_id == form_id)
        )
        await database.execute(
            dashboard_table.delete().where(dashboard_table.c.form_id == form_id)
        )
        await database.execute(form_table.delete().where(form_table.c.id == form_id))
    logger.info(f"Form {form_id} deleted by user {current_user.id}")
    revalidate(
        CacheTag.FORM,
        CacheTag.FORMS,
        CacheTag.FORM_FIELDS,
        CacheTag.FORM_RESPONSES,
        CacheTag.PUBLIC_FORM,
        CacheTag.DASHBOARDS,
    )


async def _available_form(form_id: int) -> Form:
    form = await get_form(database, form_id)
    if form is None:
        raise NotFoundError()
    if not form.active:
        raise InactiveFormError()
    return form


@router.get("/{form_id}/public", response_model=PublicForm, status_code=200)
async def get_public_form(form_id: int):
    form = await _available_form(form_id)
    fields = await fetch_fields(database, form.id, active_only=True)
    return PublicForm(form=form, fields=fields)


@router.post("/{form_id}/visibility", response_model=VisibilityOut, status_code=200)
async def preview_visibility(form_id: int, body: ResponseIn):
    """Which fields a renderer should show for a partially filled form."""
    form = await _available_form(form_id)
    fields = await fetch_fields(database, form.id, active_only=True)
    visibility = evaluate(fields, body.response_data)
    return {
        "visibility": {
            field_id: {"visible": v.visible, "required": v.required}
            for field_id, v in visibility.items()
        }
    }
