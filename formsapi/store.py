"""Form and field definition storage.

Field writes always re-check the conditional rules of the form's complete
field set, so a save that would introduce a self-reference, a dangling
reference or a dependency cycle is rejected before anything is written.
"""
import logging
from collections import Counter
from typing import Dict, List, Optional
from uuid import uuid4

import databases

from formsapi.conditions import check_dependencies, depends_on
from formsapi.database import form_table, formfield_table
from formsapi.errors import ConfigurationError, NotFoundError
from formsapi.models.form import FieldUpdateIn, Form, FormField

logger = logging.getLogger(__name__)


def row_to_field(row) -> FormField:
    return FormField(**dict(row._mapping))


def field_values(field: FormField) -> Dict:
    return field.model_dump(mode="json", by_alias=True, exclude={"id", "form_id"})


async def get_form(db: databases.Database, form_id: int) -> Optional[Form]:
    row = await db.fetch_one(form_table.select().where(form_table.c.id == form_id))
    return Form(**dict(row._mapping)) if row else None


async def get_owned_form(db: databases.Database, form_id: int, user_id: int) -> Form:
    """Load a form created by ``user_id``; anything else reads as not found."""
    query = form_table.select().where(
        form_table.c.id == form_id,
        form_table.c.created_by == user_id,
    )
    row = await db.fetch_one(query)
    if row is None:
        raise NotFoundError("Form not found")
    return Form(**dict(row._mapping))


async def fetch_fields(db: databases.Database, form_id: int, active_only: bool = False) -> List[FormField]:
    query = formfield_table.select().where(formfield_table.c.form_id == form_id)
    if active_only:
        query = query.where(formfield_table.c.active == True)  # noqa: E712
    query = query.order_by(
        formfield_table.c.position, formfield_table.c.created_at, formfield_table.c.id
    )
    rows = await db.fetch_all(query)
    return [row_to_field(row) for row in rows]


async def _ensure_ids_free(db: databases.Database, form_id: int, field_ids: List[str]) -> None:
    if not field_ids:
        return
    query = formfield_table.select().where(
        formfield_table.c.id.in_(field_ids),
        formfield_table.c.form_id != form_id,
    )
    taken = await db.fetch_all(query)
    if taken:
        ids = [row.id for row in taken]
        raise ConfigurationError("Field ids already used by another form", ids)


async def save_fields(db: databases.Database, form_id: int, fields: List[FormField]) -> List[FormField]:
    """Bulk upsert: fields with a known id are updated, the rest inserted."""
    existing = {f.id: f for f in await fetch_fields(db, form_id)}
    incoming: List[FormField] = []
    for field in fields:
        field_id = field.id or uuid4().hex
        incoming.append(field.model_copy(update={"id": field_id, "form_id": form_id}))

    counts = Counter(f.id for f in incoming)
    duplicates = sorted(field_id for field_id, n in counts.items() if n > 1)
    if duplicates:
        raise ConfigurationError("Duplicate field ids in one save", duplicates)

    await _ensure_ids_free(db, form_id, [f.id for f in incoming if f.id not in existing])

    merged = dict(existing)
    merged.update({f.id: f for f in incoming})
    check_dependencies(merged.values())

    async with db.transaction():
        for field in incoming:
            if field.id in existing:
                query = formfield_table.update().where(
                    formfield_table.c.id == field.id,
                    formfield_table.c.form_id == form_id,
                ).values(**field_values(field))
            else:
                query = formfield_table.insert().values(
                    id=field.id, form_id=form_id, **field_values(field)
                )
            logger.debug(query)
            await db.execute(query)

    return await fetch_fields(db, form_id)


async def create_field(db: databases.Database, form_id: int, field: FormField) -> FormField:
    field = field.model_copy(update={"id": field.id or uuid4().hex, "form_id": form_id})
    existing = await fetch_fields(db, form_id)
    if any(f.id == field.id for f in existing):
        raise ConfigurationError(f"Field '{field.id}' already exists", [field.id])
    await _ensure_ids_free(db, form_id, [field.id])
    check_dependencies(existing + [field])

    query = formfield_table.insert().values(id=field.id, form_id=form_id, **field_values(field))
    logger.debug(query)
    await db.execute(query)
    return field


async def update_field(db: databases.Database, form_id: int, field_id: str, patch: FieldUpdateIn) -> FormField:
    existing = await fetch_fields(db, form_id)
    current = next((f for f in existing if f.id == field_id), None)
    if current is None:
        raise NotFoundError("Field not found")

    data = current.model_dump(by_alias=True)
    data.update(patch.model_dump(exclude_unset=True, by_alias=True))
    updated = FormField(**data)
    check_dependencies([updated if f.id == field_id else f for f in existing])

    query = formfield_table.update().where(
        formfield_table.c.id == field_id,
        formfield_table.c.form_id == form_id,
    ).values(**field_values(updated))
    logger.debug(query)
    await db.execute(query)
    return updated


async def delete_field(db: databases.Database, form_id: int, field_id: str) -> None:
    existing = await fetch_fields(db, form_id)
    if not any(f.id == field_id for f in existing):
        raise NotFoundError("Field not found")
    dependents = [f.id for f in existing if depends_on(f) == field_id]
    if dependents:
        raise ConfigurationError(
            f"Field '{field_id}' is referenced by conditional logic of other fields",
            dependents,
        )
    query = formfield_table.delete().where(
        formfield_table.c.id == field_id,
        formfield_table.c.form_id == form_id,
    )
    await db.execute(query)
