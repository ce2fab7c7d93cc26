import os
from typing import AsyncGenerator

os.environ["ENV_STATE"] = "test"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from formsapi.database import (  # noqa: E402
    database,
    form_table,
    permission_table,
    role_permission_table,
    role_table,
    user_table,
)
from formsapi.main import app  # noqa: E402
from formsapi.security import create_access_token, get_password_hash  # noqa: E402

PASSWORD = "s3cret-pass"


@pytest_asyncio.fixture()
async def db() -> AsyncGenerator:
    await database.connect()
    yield database
    await database.disconnect()


@pytest_asyncio.fixture()
async def async_client(db) -> AsyncGenerator:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user(db, email: str, role_id=None) -> dict:
    user_id = await db.execute(
        user_table.insert().values(
            email=email, password_hash=get_password_hash(PASSWORD), role_id=role_id
        )
    )
    return {"id": user_id, "email": email, "role_id": role_id}


@pytest_asyncio.fixture()
async def admin_role(db) -> dict:
    role_id = await db.execute(role_table.insert().values(name="Administrator", code="admin"))
    permission_id = await db.execute(
        permission_table.insert().values(name="Admin access", slug="admin.access")
    )
    await db.execute(
        role_permission_table.insert().values(role_id=role_id, permission_id=permission_id)
    )
    return {"id": role_id, "permission_id": permission_id}


@pytest_asyncio.fixture()
async def editor_role(db) -> dict:
    role_id = await db.execute(role_table.insert().values(name="Editor", code="editor"))
    return {"id": role_id}


@pytest_asyncio.fixture()
async def admin_user(db, admin_role) -> dict:
    return await create_user(db, "admin@example.com", admin_role["id"])


@pytest_asyncio.fixture()
async def plain_user(db, editor_role) -> dict:
    return await create_user(db, "editor@example.com", editor_role["id"])


@pytest.fixture()
def admin_headers(admin_user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(admin_user['email'])}"}


@pytest.fixture()
def user_headers(plain_user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(plain_user['email'])}"}


@pytest_asyncio.fixture()
async def created_form(db, admin_user) -> dict:
    form_id = await db.execute(
        form_table.insert().values(title="Feedback", created_by=admin_user["id"])
    )
    return {"id": form_id, "created_by": admin_user["id"]}
