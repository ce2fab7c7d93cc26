import logging

import pytest
import sqlalchemy

from formsapi.database import (
    form_table,
    formfield_table,
    formresponse_table,
    formresponsevalue_table,
)
from formsapi.errors import ValidationError
from formsapi.models.form import FormField
from formsapi.responses import REQUIRED_REASON, normalize_answers, submit_response


def test_normalize_answers_collects_every_invalid_field():
    fields = [
        FormField(id="age", type="number", label="Age"),
        FormField(id="mail", type="email", label="Email"),
        FormField(id="name", type="text", label="Name", required=True),
    ]
    with pytest.raises(ValidationError) as exc_info:
        normalize_answers(fields, {"age": "old", "mail": "nope"})
    assert exc_info.value.field_ids == ["age", "mail", "name"]
    assert exc_info.value.errors[2]["reason"] == REQUIRED_REASON


def test_normalize_answers_skips_unknown_and_hidden_fields(caplog):
    fields = [
        FormField(id="f1", type="radio", label="Has pet", options=["yes", "no"]),
        FormField(
            id="f2",
            type="text",
            label="Pet name",
            required=True,
            conditional_logic={"dependsOn": "f1", "condition": "equals", "value": "yes"},
        ),
    ]
    with caplog.at_level(logging.WARNING):
        records = normalize_answers(fields, {"f1": "no", "f2": "Rex", "zz": "ignored"})
    assert [(field_id, v.string_value) for field_id, v in records] == [("f1", "no")]
    assert "zz" in caplog.text


async def get_counts(db, form_id):
    responses = await db.fetch_val(
        sqlalchemy.select(sqlalchemy.func.count())
        .select_from(formresponse_table)
        .where(formresponse_table.c.form_id == form_id)
    )
    values = await db.fetch_val(
        sqlalchemy.select(sqlalchemy.func.count())
        .select_from(
            formresponsevalue_table.join(
                formresponse_table,
                formresponsevalue_table.c.response_id == formresponse_table.c.id,
            )
        )
        .where(formresponse_table.c.form_id == form_id)
    )
    return responses, values


async def add_fields(db, form_id, *fields):
    for position, f in enumerate(fields):
        await db.execute(formfield_table.insert().values(form_id=form_id, position=position, **f))


@pytest.mark.asyncio
async def test_submit_conditional_form(async_client, db, created_form):
    form_id = created_form["id"]
    await add_fields(
        db,
        form_id,
        {"id": "f1", "type": "radio", "label": "Attending", "options": [{"label": "yes", "value": "yes"}]},
        {
            "id": "f2",
            "type": "text",
            "label": "Dietary needs",
            "required": True,
            "conditional_logic": {"dependsOn": "f1", "condition": "equals", "value": "yes"},
        },
    )

    response = await async_client.post(
        f"/api/forms/{form_id}/responses", json={"response_data": {"f1": "yes"}}
    )
    assert response.status_code == 400
    assert response.json()["fields"] == [{"field_id": "f2", "reason": REQUIRED_REASON}]

    response = await async_client.post(
        f"/api/forms/{form_id}/responses",
        json={"response_data": {"f1": "yes", "f2": "vegan"}},
        headers={"User-Agent": "pytest-agent"},
    )
    assert response.status_code == 201
    body = response.json()["response"]
    assert body["form_id"] == form_id
    assert body["user_id"] is None

    row = await db.fetch_one(
        formresponse_table.select().where(formresponse_table.c.id == body["id"])
    )
    assert row._mapping["metadata"]["user_agent"] == "pytest-agent"
    assert row.data == {"f1": "yes", "f2": "vegan"}
    assert await get_counts(db, form_id) == (1, 2)


@pytest.mark.asyncio
async def test_submit_to_inactive_form(async_client, db, created_form):
    form_id = created_form["id"]
    await db.execute(form_table.update().where(form_table.c.id == form_id).values(active=False))

    response = await async_client.post(
        f"/api/forms/{form_id}/responses", json={"response_data": {}}
    )
    assert response.status_code == 404
    assert response.json() == {"error": "Form not available"}
    assert await get_counts(db, form_id) == (0, 0)


@pytest.mark.asyncio
async def test_submit_to_missing_form(async_client):
    response = await async_client.post("/api/forms/9999/responses", json={"response_data": {}})
    assert response.status_code == 404
    assert response.json() == {"error": "Form not available"}


@pytest.mark.asyncio
async def test_invalid_number_writes_nothing(async_client, db, created_form):
    form_id = created_form["id"]
    await add_fields(db, form_id, {"id": "age", "type": "number", "label": "Age"})

    response = await async_client.post(
        f"/api/forms/{form_id}/responses", json={"response_data": {"age": "not-a-number"}}
    )
    assert response.status_code == 400
    assert response.json()["fields"][0]["field_id"] == "age"
    assert await get_counts(db, form_id) == (0, 0)


@pytest.mark.asyncio
async def test_failed_value_insert_rolls_back_the_response(db, created_form, monkeypatch):
    form_id = created_form["id"]
    await add_fields(db, form_id, {"id": "name", "type": "text", "label": "Name"})

    async def broken_execute_many(query, values):
        raise RuntimeError("disk full")

    monkeypatch.setattr(db, "execute_many", broken_execute_many)
    with pytest.raises(RuntimeError):
        await submit_response(db, form_id, {"name": "Ada"})
    assert await get_counts(db, form_id) == (0, 0)


@pytest.mark.asyncio
async def test_checkbox_answer_stores_one_row_per_option(async_client, db, created_form):
    form_id = created_form["id"]
    await add_fields(
        db,
        form_id,
        {"id": "tags", "type": "checkbox", "label": "Tags"},
        {"id": "score", "type": "number", "label": "Score"},
        {"id": "ok", "type": "toggle", "label": "OK"},
    )

    response = await async_client.post(
        f"/api/forms/{form_id}/responses",
        json={"response_data": {"tags": ["a", "b", "c"], "score": "7", "ok": False}},
    )
    assert response.status_code == 201
    response_id = response.json()["response"]["id"]

    rows = await db.fetch_all(
        formresponsevalue_table.select()
        .where(formresponsevalue_table.c.response_id == response_id)
        .order_by(formresponsevalue_table.c.id)
    )
    stored = [(r.field_id, r.value, r.numeric_value, r.boolean_value) for r in rows]
    assert stored == [
        ("tags", "a", None, None),
        ("tags", "b", None, None),
        ("tags", "c", None, None),
        ("score", "7", 7.0, None),
        ("ok", "false", None, False),
    ]


@pytest.mark.asyncio
async def test_login_required(async_client, db, created_form, user_headers, plain_user):
    form_id = created_form["id"]
    await db.execute(form_table.update().where(form_table.c.id == form_id).values(require_login=True))

    response = await async_client.post(f"/api/forms/{form_id}/responses", json={"response_data": {}})
    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}

    response = await async_client.post(
        f"/api/forms/{form_id}/responses", json={"response_data": {}}, headers=user_headers
    )
    assert response.status_code == 201
    assert response.json()["response"]["user_id"] == plain_user["id"]


@pytest.mark.asyncio
async def test_bad_token_is_rejected_even_on_open_forms(async_client, created_form):
    response = await async_client.post(
        f"/api/forms/{created_form['id']}/responses",
        json={"response_data": {}},
        headers={"Authorization": "Bearer garbage"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_submission_limit(async_client, db, created_form, user_headers):
    form_id = created_form["id"]
    await db.execute(
        form_table.update()
        .where(form_table.c.id == form_id)
        .values(limit_submissions=True, max_submissions_per_user=1)
    )

    first = await async_client.post(
        f"/api/forms/{form_id}/responses", json={"response_data": {}}, headers=user_headers
    )
    assert first.status_code == 201

    second = await async_client.post(
        f"/api/forms/{form_id}/responses", json={"response_data": {}}, headers=user_headers
    )
    assert second.status_code == 429


@pytest.mark.asyncio
async def test_owner_reads_responses(async_client, db, created_form, admin_headers):
    form_id = created_form["id"]
    await add_fields(db, form_id, {"id": "name", "type": "text", "label": "Name"})
    submitted = await async_client.post(
        f"/api/forms/{form_id}/responses", json={"response_data": {"name": "Ada"}}
    )
    response_id = submitted.json()["response"]["id"]

    listing = await async_client.get(f"/api/forms/{form_id}/responses", headers=admin_headers)
    assert listing.status_code == 200
    assert [r["id"] for r in listing.json()] == [response_id]

    detail = await async_client.get(
        f"/api/forms/{form_id}/responses/{response_id}", headers=admin_headers
    )
    assert detail.status_code == 200
    assert detail.json()["data"] == {"name": "Ada"}
    assert detail.json()["values"] == [
        {"field_id": "name", "value": "Ada", "numeric_value": None, "boolean_value": None}
    ]
