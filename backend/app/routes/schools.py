from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from .. import config, school_profiles
from ..database import get_db
from ..firebase_service import BlobStore, get_blob_store
from ..schemas import ErrorResponse, SchoolCreatedResponse, SchoolListResponse, SchoolOut

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")

router = APIRouter()
pages_router = APIRouter()
templates = Jinja2Templates(directory=str(config.TEMPLATES_DIR))


def _error_response(status_code: int, error: str, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"error": error}
    body.update({key: value for key, value in extra.items() if value is not None})
    return JSONResponse(status_code=status_code, content=body)


async def _read_form(request: Request) -> Optional[FormData]:
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type not in FORM_CONTENT_TYPES:
        return None
    try:
        return await request.form()
    except (MultiPartException, StarletteHTTPException, ValueError) as exc:
        logger.info("Rejected unparsable form body: %s", exc)
        return None


async def _read_upload_file(value: Any) -> Optional[school_profiles.ImageUpload]:
    if not isinstance(value, UploadFile):
        return None
    # One byte past the limit is enough for the size rule to reject the upload.
    contents = await value.read(config.MAX_IMAGE_BYTES + 1)
    return school_profiles.ImageUpload(
        filename=value.filename or "",
        content_type=value.content_type or "application/octet-stream",
        data=contents,
    )


@router.post(
    "/add-school",
    status_code=201,
    response_model=SchoolCreatedResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def add_school(
    request: Request,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    form = await _read_form(request)
    if form is None:
        return _error_response(400, "Invalid form data")

    try:
        raw: Dict[str, Any] = {
            field: form.get(field) for field in school_profiles.SCHOOL_FIELDS if field != "image"
        }
        raw["image"] = await _read_upload_file(form.get("image"))
    finally:
        await form.close()

    try:
        payload = school_profiles.validate_school_submission(raw)
    except school_profiles.SchoolValidationError as exc:
        logger.info("School submission failed validation: %s", sorted(exc.issues))
        return _error_response(400, "Validation failed", issues=exc.issues)

    try:
        school = await run_in_threadpool(school_profiles.create_school_profile, db, blob_store, payload)
    except Exception as exc:
        logger.exception("Error in POST /api/add-school")
        details = None
        if not config.is_production():
            details = {"type": type(exc).__name__, "message": str(exc)}
        return _error_response(500, "An internal server error occurred.", details=details)

    response = SchoolCreatedResponse(
        message="School added successfully!",
        school=SchoolOut.model_validate(school),
    )
    return JSONResponse(status_code=201, content=response.model_dump(mode="json", by_alias=True))


@router.get("/schools", response_model=SchoolListResponse)
def list_schools(db: Session = Depends(get_db)):
    return SchoolListResponse(schools=school_profiles.list_school_cards(db))


@pages_router.get("/show-school", response_class=HTMLResponse)
def show_schools_page(request: Request, db: Session = Depends(get_db)):
    schools = school_profiles.list_school_cards(db)
    return templates.TemplateResponse(request, "show_school.html", {"schools": schools})


@pages_router.get("/add-school", response_class=HTMLResponse)
def add_school_page(request: Request):
    context = {
        "accepted_types": ",".join(config.ALLOWED_IMAGE_TYPES),
        "max_image_bytes": config.MAX_IMAGE_BYTES,
    }
    return templates.TemplateResponse(request, "add_school.html", context)
