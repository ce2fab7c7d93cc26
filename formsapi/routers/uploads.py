import io
import logging
from typing import Annotated, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from minio import Minio
from werkzeug.utils import secure_filename

from formsapi.config import config
from formsapi.database import database
from formsapi.errors import AuthenticationRequiredError, InactiveFormError, NotFoundError
from formsapi.fields import FieldType
from formsapi.models.user import UserInDB
from formsapi.security import get_optional_user
from formsapi.storage import get_storage_client, object_url
from formsapi.store import fetch_fields, get_form

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{form_id}/uploads", status_code=201)
async def upload_file(
    form_id: int,
    current_user: Annotated[Optional[UserInDB], Depends(get_optional_user)],
    client: Annotated[Minio, Depends(get_storage_client)],
    field_id: str = Form(...),
    file: UploadFile = File(...),
):
    form = await get_form(database, form_id)
    if form is None:
        raise NotFoundError()
    if not form.active:
        raise InactiveFormError()
    if form.require_login and current_user is None:
        raise AuthenticationRequiredError()

    fields = await fetch_fields(database, form_id, active_only=True)
    if not any(f.id == field_id and f.type == FieldType.FILE for f in fields):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Field does not accept files",
        )

    if not file or not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file provided"
        )

    filename = secure_filename(file.filename)
    if not filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file name"
        )
    obj_name = f"{form_id}/{uuid4().hex}_{filename}"

    file_content = await file.read()
    file_size = len(file_content)
    if file_size > config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="File too large"
        )

    try:
        client.put_object(
            bucket_name=config.MINIO_BUCKET,
            object_name=obj_name,
            data=io.BytesIO(file_content),
            length=file_size,
            content_type=file.content_type or "application/octet-stream",
        )
    except Exception as e:
        logger.error(f"MinIO upload failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload file to storage"
        ) from e

    logger.info(f"Stored upload {obj_name} ({file_size} bytes) for form {form_id}")
    return {
        "field_id": field_id,
        "url": object_url(obj_name),
        "filename": filename,
        "content_type": file.content_type,
        "size": file_size,
    }
