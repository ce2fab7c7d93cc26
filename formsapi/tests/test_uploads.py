import pytest

from formsapi.main import app
from formsapi.storage import get_storage_client


class FakeMinio:
    def __init__(self, fail=False):
        self.fail = fail
        self.objects = {}

    def put_object(self, bucket_name, object_name, data, length, content_type):
        if self.fail:
            raise ConnectionError("storage offline")
        self.objects[(bucket_name, object_name)] = (data.read(), length, content_type)


@pytest.fixture()
def storage():
    fake = FakeMinio()
    app.dependency_overrides[get_storage_client] = lambda: fake
    return fake


async def form_with_file_field(client, headers):
    form = (await client.post("/api/forms", json={"title": "Applications"}, headers=headers)).json()
    fields = {"fields": [{"id": "cv", "type": "file", "label": "CV"}, {"id": "name", "type": "text", "label": "Name"}]}
    await client.put(f"/api/forms/{form['id']}/fields", json=fields, headers=headers)
    return form


@pytest.mark.asyncio
async def test_upload_file_answer(async_client, admin_headers, storage):
    form = await form_with_file_field(async_client, admin_headers)

    response = await async_client.post(
        f"/api/forms/{form['id']}/uploads",
        data={"field_id": "cv"},
        files={"file": ("../my cv.pdf", b"%PDF-1.4", "application/pdf")},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["filename"] == "my_cv.pdf"
    assert body["size"] == 8
    assert body["url"].endswith("_my_cv.pdf")

    [(bucket, name)] = storage.objects
    assert bucket == "form-uploads"
    assert name.startswith(f"{form['id']}/")
    assert storage.objects[(bucket, name)] == (b"%PDF-1.4", 8, "application/pdf")


@pytest.mark.asyncio
async def test_upload_requires_a_file_field(async_client, admin_headers, storage):
    form = await form_with_file_field(async_client, admin_headers)
    response = await async_client.post(
        f"/api/forms/{form['id']}/uploads",
        data={"field_id": "name"},
        files={"file": ("a.txt", b"hi", "text/plain")},
    )
    assert response.status_code == 400
    assert storage.objects == {}


@pytest.mark.asyncio
async def test_upload_to_missing_form(async_client, storage):
    response = await async_client.post(
        "/api/forms/9999/uploads",
        data={"field_id": "cv"},
        files={"file": ("a.txt", b"hi", "text/plain")},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_storage_failure(async_client, admin_headers):
    app.dependency_overrides[get_storage_client] = lambda: FakeMinio(fail=True)
    form = await form_with_file_field(async_client, admin_headers)
    response = await async_client.post(
        f"/api/forms/{form['id']}/uploads",
        data={"field_id": "cv"},
        files={"file": ("a.txt", b"hi", "text/plain")},
    )
    assert response.status_code == 500
    assert response.json() == {"detail": "Failed to upload file to storage"}
