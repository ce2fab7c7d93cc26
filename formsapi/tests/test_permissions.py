import pytest

from formsapi.database import permission_table, role_permission_table, role_table
from formsapi.permissions import authorize
from formsapi.tests.conftest import create_user


@pytest.mark.asyncio
async def test_authorize_granted(db, admin_user):
    assert await authorize(db, admin_user["id"], "admin.access") is True


@pytest.mark.asyncio
async def test_authorize_missing_permission(db, plain_user):
    assert await authorize(db, plain_user["id"], "admin.access") is False


@pytest.mark.asyncio
async def test_authorize_user_without_role(db):
    user = await create_user(db, "norole@example.com")
    assert await authorize(db, user["id"], "admin.access") is False


@pytest.mark.asyncio
async def test_authorize_unknown_user(db):
    assert await authorize(db, 424242, "admin.access") is False
    assert await authorize(db, None, "admin.access") is False


@pytest.mark.asyncio
async def test_no_hierarchy_between_slugs(db, admin_user):
    assert await authorize(db, admin_user["id"], "admin") is False
    assert await authorize(db, admin_user["id"], "admin.access.forms") is False


@pytest.mark.asyncio
async def test_inactive_role_or_permission_denies(db, admin_user, admin_role):
    await db.execute(
        permission_table.update()
        .where(permission_table.c.id == admin_role["permission_id"])
        .values(active=False)
    )
    assert await authorize(db, admin_user["id"], "admin.access") is False

    await db.execute(
        permission_table.update()
        .where(permission_table.c.id == admin_role["permission_id"])
        .values(active=True)
    )
    await db.execute(role_table.update().where(role_table.c.id == admin_role["id"]).values(active=False))
    assert await authorize(db, admin_user["id"], "admin.access") is False


@pytest.mark.asyncio
async def test_revoking_takes_effect_on_next_request(async_client, db, admin_role, admin_headers):
    assert (await async_client.get("/api/forms", headers=admin_headers)).status_code == 200

    await db.execute(
        role_permission_table.delete().where(role_permission_table.c.role_id == admin_role["id"])
    )
    response = await async_client.get("/api/forms", headers=admin_headers)
    assert response.status_code == 403
    assert response.json() == {"error": "Missing permission 'admin.access'"}


@pytest.mark.asyncio
async def test_admin_routes_need_a_token(async_client, db):
    response = await async_client.get("/api/forms")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_admin_routes_reject_users_without_grant(async_client, user_headers):
    for path in ("/api/forms", "/api/roles", "/api/permissions", "/api/users", "/api/dashboards"):
        response = await async_client.get(path, headers=user_headers)
        assert response.status_code == 403, path
