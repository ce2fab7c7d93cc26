"""Response ingestion.

A submission is checked against the form's state and the submitter's
identity, every answer is coerced by its field type, and only when all
answers are valid is the response written: one ``form_responses`` row plus
one ``form_response_values`` row per normalized value, in one transaction.
"""
import datetime
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import databases
import sqlalchemy

from formsapi.cache import CacheTag, revalidate
from formsapi.conditions import evaluate
from formsapi.database import formresponse_table, formresponsevalue_table
from formsapi.errors import (
    AuthenticationRequiredError,
    InactiveFormError,
    InvalidValueError,
    NotFoundError,
    SubmissionLimitError,
    ValidationError,
)
from formsapi.fields import NormalizedValue, coerce_value, is_empty, validate_rules
from formsapi.models.form import Form, FormField, FormResponse
from formsapi.store import fetch_fields, get_form

logger = logging.getLogger(__name__)

REQUIRED_REASON = "This field is required"


def normalize_answers(
    fields: List[FormField], answers: Mapping[str, Any]
) -> List[Tuple[str, NormalizedValue]]:
    """Coerce a raw answer map against the form's active fields.

    Unanswered values and answers to unknown or hidden fields produce no
    records. Every failing field is reported, not just the first one.
    """
    by_id = {field.id: field for field in fields}
    visibility = evaluate(fields, answers)

    unknown = [field_id for field_id, raw in answers.items() if field_id not in by_id and not is_empty(raw)]
    if unknown:
        logger.warning("Ignoring answers for unknown fields: %s", ", ".join(unknown))

    errors: List[Dict[str, str]] = []
    records: List[Tuple[str, NormalizedValue]] = []
    answered = set()

    for field_id, raw in answers.items():
        field = by_id.get(field_id)
        if field is None or is_empty(raw):
            continue
        if not visibility[field_id].visible:
            logger.debug("Dropping answer for hidden field %s", field_id)
            continue
        try:
            values = coerce_value(field.type, raw)
        except InvalidValueError as e:
            errors.append({"field_id": field_id, "reason": e.reason})
            continue
        reason = validate_rules(field, values)
        if reason:
            errors.append({"field_id": field_id, "reason": reason})
            continue
        if values:
            answered.add(field_id)
        records.extend((field_id, value) for value in values)

    failed = {e["field_id"] for e in errors}
    for field in fields:
        if visibility[field.id].required and field.id not in answered and field.id not in failed:
            errors.append({"field_id": field.id, "reason": REQUIRED_REASON})

    if errors:
        raise ValidationError(errors)
    return records


async def count_user_responses(db: databases.Database, form_id: int, user_id: int) -> int:
    query = sqlalchemy.select(sqlalchemy.func.count()).select_from(formresponse_table).where(
        formresponse_table.c.form_id == form_id,
        formresponse_table.c.user_id == user_id,
    )
    return await db.fetch_val(query)


async def check_access(db: databases.Database, form: Optional[Form], user_id: Optional[int]) -> Form:
    if form is None:
        raise NotFoundError()
    if not form.active:
        raise InactiveFormError()
    if form.require_login and user_id is None:
        raise AuthenticationRequiredError()
    if form.limit_submissions and user_id is not None:
        limit = form.max_submissions_per_user or 1
        if await count_user_responses(db, form.id, user_id) >= limit:
            raise SubmissionLimitError()
    return form


async def submit_response(
    db: databases.Database,
    form_id: int,
    answers: Dict[str, Any],
    user_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> FormResponse:
    form = await check_access(db, await get_form(db, form_id), user_id)
    fields = await fetch_fields(db, form.id, active_only=True)
    records = normalize_answers(fields, answers)

    completed_at = datetime.datetime.now(datetime.timezone.utc)
    async with db.transaction():
        response_id = await db.execute(
            formresponse_table.insert().values(
                form_id=form.id,
                user_id=user_id,
                completed_at=completed_at,
                data=answers,
                metadata=metadata or {},
            )
        )
        if records:
            await db.execute_many(
                formresponsevalue_table.insert(),
                [
                    {
                        "response_id": response_id,
                        "field_id": field_id,
                        "value": value.string_value,
                        "numeric_value": value.numeric_value,
                        "boolean_value": value.boolean_value,
                    }
                    for field_id, value in records
                ],
            )

    logger.info(
        "Stored response %s for form %s with %d values", response_id, form.id, len(records)
    )
    revalidate(CacheTag.FORM_RESPONSES)
    return FormResponse(id=response_id, form_id=form.id, user_id=user_id, completed_at=completed_at)
