import datetime
import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from formsapi.database import database, formresponse_table, formresponsevalue_table
from formsapi.models.form import (
    FormResponse,
    FormResponseDetail,
    FormResponseValue,
    ResponseIn,
    SubmittedResponse,
)
from formsapi.models.user import UserInDB
from formsapi.permissions import require_admin
from formsapi.responses import submit_response
from formsapi.security import get_optional_user
from formsapi.store import get_owned_form

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{form_id}/responses", response_model=SubmittedResponse, status_code=201)
async def create_response(
    form_id: int,
    body: ResponseIn,
    request: Request,
    current_user: Annotated[Optional[UserInDB], Depends(get_optional_user)],
):
    metadata = {
        "user_agent": request.headers.get("user-agent"),
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }
    user_id = current_user.id if current_user else None
    response = await submit_response(
        database, form_id, body.response_data, user_id=user_id, metadata=metadata
    )
    return {"response": response}


@router.get("/{form_id}/responses", response_model=List[FormResponse], status_code=200)
async def list_responses(form_id: int, current_user: Annotated[UserInDB, Depends(require_admin)]):
    await get_owned_form(database, form_id, current_user.id)
    query = (
        formresponse_table.select()
        .where(formresponse_table.c.form_id == form_id)
        .order_by(formresponse_table.c.completed_at.desc())
    )
    rows = await database.fetch_all(query)
    return [FormResponse(**dict(row._mapping)) for row in rows]


@router.get("/{form_id}/responses/{response_id}", response_model=FormResponseDetail, status_code=200)
async def get_response(
    form_id: int,
    response_id: int,
    current_user: Annotated[UserInDB, Depends(require_admin)],
):
    await get_owned_form(database, form_id, current_user.id)
    query = formresponse_table.select().where(
        formresponse_table.c.id == response_id,
        formresponse_table.c.form_id == form_id,
    )
    row = await database.fetch_one(query)
    if not row:
        raise HTTPException(status_code=404, detail="Response not found")

    values_query = (
        formresponsevalue_table.select()
        .where(formresponsevalue_table.c.response_id == response_id)
        .order_by(formresponsevalue_table.c.id)
    )
    values = await database.fetch_all(values_query)
    return FormResponseDetail(
        **dict(row._mapping),
        values=[FormResponseValue(**dict(v._mapping)) for v in values],
    )
