import asyncio
import io
import re

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from starlette.applications import Starlette
from starlette.datastructures import Headers, UploadFile
from starlette.routing import Mount
from starlette.staticfiles import StaticFiles

from backend.app import config
from backend.app.database import Base
from backend.app.firebase_service import BlobStoreError
from backend.app.models import School
from backend.app.routes import schools

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _school_count(session_factory):
    with session_factory() as session:
        return len(session.execute(select(School)).scalars().all())


def test_add_school_creates_record(client, school_form, blob_store, session_factory):
    data, files = school_form()

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "School added successfully!"
    school = body["school"]
    assert isinstance(school["id"], int)
    assert school["contact"] == "9876543210"
    assert int(school["contact"]) == 9876543210
    assert school["email_id"] == "office@springfield.edu"
    assert school["state"] == "Oregon"
    assert school["createdAt"]
    assert re.fullmatch(r"/media/\d+-campus\.png", school["image"])

    stored_name = school["image"].rsplit("/", 1)[-1]
    assert (blob_store.media_root / stored_name).read_bytes().startswith(b"\x89PNG")
    assert blob_store.calls[0]["public_read"] is True
    assert blob_store.calls[0]["content_type"] == "image/png"
    assert _school_count(session_factory) == 1


@pytest.mark.parametrize("contact", ["1000000000", "9999999999"])
def test_contact_round_trips_as_string(client, school_form, contact):
    data, files = school_form(contact=contact)

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 201
    assert response.json()["school"]["contact"] == contact


@pytest.mark.parametrize("field", ["name", "address", "city", "state", "contact", "email_id"])
def test_missing_text_field_returns_issues(client, school_form, blob_store, session_factory, field):
    data, files = school_form(**{field: None})

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert field in body["issues"]
    assert blob_store.calls == []
    assert _school_count(session_factory) == 0


def test_missing_image_returns_issues(client, school_form, blob_store):
    data, files = school_form(image=False)

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 400
    assert response.json()["issues"] == {"image": ["Image is required"]}
    assert blob_store.calls == []


def test_gif_upload_is_rejected(client, school_form, blob_store):
    data, files = school_form(image=("anim.gif", b"GIF89a" + b"\x00" * 16, "image/gif"))

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 400
    assert response.json()["issues"]["image"] == ["Only .jpg, .png, or .webp formats are supported."]
    assert blob_store.calls == []


def test_json_body_is_invalid_form_data(client, blob_store):
    response = client.post("/api/add-school", json={"name": "Nope"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid form data"}
    assert blob_store.calls == []


def test_multipart_without_boundary_is_invalid_form_data(client):
    response = client.post(
        "/api/add-school",
        content=b"garbage",
        headers={"content-type": "multipart/form-data"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid form data"}


def test_blob_failure_returns_500_with_details_outside_production(
    client, school_form, blob_store, session_factory, monkeypatch
):
    monkeypatch.setenv("APP_ENV", "development")
    blob_store.fail_with = BlobStoreError("bucket unavailable")
    data, files = school_form()

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "An internal server error occurred."
    assert body["details"] == {"type": "BlobStoreError", "message": "bucket unavailable"}
    assert _school_count(session_factory) == 0


def test_blob_failure_hides_details_in_production(client, school_form, blob_store, monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    blob_store.fail_with = BlobStoreError("bucket unavailable")
    data, files = school_form()

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 500
    assert response.json() == {"error": "An internal server error occurred."}


def test_database_failure_leaves_uploaded_blob_behind(client, school_form, blob_store, engine):
    Base.metadata.drop_all(bind=engine)
    data, files = school_form()

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 500
    assert len(blob_store.calls) == 1
    assert list(blob_store.media_root.iterdir())


def test_uploaded_filename_is_reduced_to_its_basename(client, school_form, blob_store):
    data, files = school_form(image=("nested/dir/photo.webp", b"RIFF0000WEBP", "image/webp"))

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 201
    assert re.fullmatch(r"\d+-photo\.webp", blob_store.calls[0]["key"].rsplit("/", 1)[-1])
    assert response.json()["school"]["image"].endswith("-photo.webp")


def test_stored_image_url_is_served_for_reserved_characters(client, school_form, blob_store):
    data, files = school_form(image=("logo#1.png", PNG_BYTES, "image/png"))

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 201
    image_url = response.json()["school"]["image"]
    assert "%23" in image_url and "#" not in image_url

    media_app = Starlette(routes=[Mount("/media", app=StaticFiles(directory=str(blob_store.media_root)))])
    served = TestClient(media_app).get(image_url)
    assert served.status_code == 200
    assert served.content == PNG_BYTES


def test_oversized_upload_is_rejected(client, school_form, blob_store, session_factory):
    data, files = school_form(image=("huge.png", b"\x00" * (config.MAX_IMAGE_BYTES + 1), "image/png"))

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 400
    assert response.json()["issues"] == {"image": ["Image must be 5MB or less."]}
    assert blob_store.calls == []
    assert _school_count(session_factory) == 0


def test_upload_reader_stops_one_byte_past_the_limit():
    upload = UploadFile(
        file=io.BytesIO(b"\x00" * (config.MAX_IMAGE_BYTES + 4096)),
        filename="huge.png",
        headers=Headers({"content-type": "image/png"}),
    )

    image = asyncio.run(schools._read_upload_file(upload))

    assert image.size == config.MAX_IMAGE_BYTES + 1
    assert image.content_type == "image/png"


def test_empty_gif_upload_reports_both_image_messages(client, school_form):
    data, files = school_form(image=("blank.gif", b"", "image/gif"))

    response = client.post("/api/add-school", data=data, files=files)

    assert response.status_code == 400
    assert response.json()["issues"]["image"] == [
        "Image is required",
        "Only .jpg, .png, or .webp formats are supported.",
    ]
