import pytest


@pytest.mark.asyncio
async def test_role_crud(async_client, admin_headers):
    response = await async_client.post(
        "/api/roles", json={"name": "Reviewer", "code": "reviewer"}, headers=admin_headers
    )
    assert response.status_code == 201
    role = response.json()
    assert role["active"] is True

    duplicate = await async_client.post(
        "/api/roles", json={"name": "Reviewer", "code": "other"}, headers=admin_headers
    )
    assert duplicate.status_code == 400

    response = await async_client.put(
        f"/api/roles/{role['id']}", json={"description": "Reads responses"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["description"] == "Reads responses"
    assert response.json()["name"] == "Reviewer"

    names = [r["name"] for r in (await async_client.get("/api/roles", headers=admin_headers)).json()]
    assert names == ["Administrator", "Reviewer"]

    assert (await async_client.delete(f"/api/roles/{role['id']}", headers=admin_headers)).status_code == 204
    assert (await async_client.get(f"/api/roles/{role['id']}", headers=admin_headers)).status_code == 404


@pytest.mark.asyncio
async def test_permission_crud(async_client, admin_headers):
    response = await async_client.post(
        "/api/permissions",
        json={"name": "Export responses", "slug": "responses.export"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    permission = response.json()

    clash = await async_client.post(
        "/api/permissions", json={"name": "Again", "slug": "responses.export"}, headers=admin_headers
    )
    assert clash.status_code == 400

    response = await async_client.put(
        f"/api/permissions/{permission['id']}", json={"name": "Export"}, headers=admin_headers
    )
    assert response.json()["name"] == "Export"
    assert response.json()["slug"] == "responses.export"

    slugs = [p["slug"] for p in (await async_client.get("/api/permissions", headers=admin_headers)).json()]
    assert slugs == ["admin.access", "responses.export"]

    response = await async_client.delete(f"/api/permissions/{permission['id']}", headers=admin_headers)
    assert response.status_code == 204
    response = await async_client.get(f"/api/permissions/{permission['id']}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_grant_and_revoke_role_permission(async_client, admin_headers, editor_role, plain_user, user_headers):
    permission = (
        await async_client.post(
            "/api/permissions", json={"name": "Admin", "slug": "forms.manage"}, headers=admin_headers
        )
    ).json()
    role_id = editor_role["id"]

    granted = await async_client.post(
        f"/api/roles/{role_id}/permissions",
        json={"permission_id": permission["id"]},
        headers=admin_headers,
    )
    assert granted.status_code == 201
    assert granted.json()["permission"]["slug"] == "forms.manage"

    again = await async_client.post(
        f"/api/roles/{role_id}/permissions",
        json={"permission_id": permission["id"]},
        headers=admin_headers,
    )
    assert again.status_code == 400

    grants = await async_client.get(f"/api/roles/{role_id}/permissions", headers=admin_headers)
    assert [g["permission_id"] for g in grants.json()] == [permission["id"]]

    role = await async_client.get(f"/api/roles/{role_id}", headers=admin_headers)
    assert [p["slug"] for p in role.json()["permissions"]] == ["forms.manage"]

    me = await async_client.get("/api/users/me", headers=user_headers)
    assert [p["slug"] for p in me.json()["role"]["permissions"]] == ["forms.manage"]

    revoked = await async_client.delete(
        f"/api/roles/{role_id}/permissions",
        params={"permission_id": permission["id"]},
        headers=admin_headers,
    )
    assert revoked.status_code == 204
    missing = await async_client.delete(
        f"/api/roles/{role_id}/permissions",
        params={"permission_id": permission["id"]},
        headers=admin_headers,
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_grant_unknown_permission(async_client, admin_headers, editor_role):
    response = await async_client.post(
        f"/api/roles/{editor_role['id']}/permissions",
        json={"permission_id": 9999},
        headers=admin_headers,
    )
    assert response.status_code == 404
