import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from formsapi.cache import CacheTag, revalidate
from formsapi.database import database
from formsapi.models.form import FieldsIn, FieldUpdateIn, FormField
from formsapi.models.user import UserInDB
from formsapi.permissions import require_admin
from formsapi.store import (
    create_field,
    delete_field,
    fetch_fields,
    get_owned_form,
    save_fields,
    update_field,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/{form_id}/fields", response_model=FieldsIn, status_code=200)
async def list_fields(form_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    await get_owned_form(database, form_id, current_user.id)
    return {"fields": await fetch_fields(database, form_id)}


@router.put("/{form_id}/fields", response_model=FieldsIn, status_code=200)
async def replace_fields(
    form_id: int,
    body: FieldsIn,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await get_owned_form(database, form_id, current_user.id)
    fields = await save_fields(database, form_id, body.fields)
    logger.info(f"Saved {len(body.fields)} fields on form {form_id}")
    revalidate(CacheTag.FORM_FIELDS, CacheTag.FORM, CacheTag.PUBLIC_FORM)
    return {"fields": fields}


@router.post("/{form_id}/fields", response_model=FormField, status_code=201)
async def add_field(
    form_id: int,
    field: FormField,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await get_owned_form(database, form_id, current_user.id)
    created = await create_field(database, form_id, field)
    revalidate(CacheTag.FORM_FIELDS, CacheTag.FORM, CacheTag.PUBLIC_FORM)
    return created


@router.put("/{form_id}/fields/{field_id}", response_model=FormField, status_code=200)
async def edit_field(
    form_id: int,
    field_id: str,
    patch: FieldUpdateIn,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await get_owned_form(database, form_id, current_user.id)
    updated = await update_field(database, form_id, field_id, patch)
    revalidate(CacheTag.FORM_FIELDS, CacheTag.FORM, CacheTag.PUBLIC_FORM)
    return updated


@router.delete("/{form_id}/fields/{field_id}", status_code=204)
async def remove_field(
    form_id: int,
    field_id: str,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await get_owned_form(database, form_id, current_user.id)
    await delete_field(database, form_id, field_id)
    logger.info(f"Field {field_id} removed from form {form_id}")
    revalidate(CacheTag.FORM_FIELDS, CacheTag.FORM, CacheTag.PUBLIC_FORM)
