from __future__ import annotations

import logging
import mimetypes
import re
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ValidationError, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError
from sqlalchemy import select
from sqlalchemy.orm import Session

from . import config
from .firebase_service import BlobStore
from .models import School
from .schemas import SchoolCard

logger = logging.getLogger(__name__)

SCHOOL_FIELDS = ("name", "address", "city", "state", "contact", "email_id", "image")
EMAIL_PATTERN = re.compile(r"\S+@\S+")

REQUIRED_MESSAGES: Dict[str, str] = {
    "name": "School name is required",
    "address": "Address is required",
    "city": "City is required",
    "state": "State is required",
    "contact": "Must be a 10-digit phone number",
    "email_id": "Email is required",
    "image": "Image is required",
}
CONTACT_RANGE_MESSAGE = "Must be a 10-digit phone number"
CONTACT_NAN_MESSAGE = "Contact must be a number"
CONTACT_FRACTION_MESSAGE = "Contact must be a whole number"
EMAIL_MESSAGE = "Invalid email address"
IMAGE_SIZE_MESSAGE = "Image must be 5MB or less."
IMAGE_TYPE_MESSAGE = "Only .jpg, .png, or .webp formats are supported."


class SchoolValidationError(ValueError):
    """Raised when a submission fails validation; ``issues`` maps field to messages."""

    def __init__(self, issues: Dict[str, List[str]]):
        super().__init__("Validation failed")
        self.issues = issues


class ImageUpload(BaseModel):
    """An uploaded image part, read fully into memory."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _field_error(field: str, message: str) -> PydanticCustomError:
    return PydanticCustomError("school_field", message, {"field": field})


def _require_text(field: str, value: Any) -> str:
    if not isinstance(value, str) or len(value) < 1:
        raise _field_error(field, REQUIRED_MESSAGES[field])
    return value


def coerce_contact(value: Any) -> int:
    """Coerce ``value`` to a contact number within the ten digit range.

    Missing or blank input coerces to zero and therefore fails the range
    check, so numbers with a leading zero are rejected as well.
    """

    if value is None or (isinstance(value, str) and not value.strip()):
        number = Decimal(0)
    elif isinstance(value, (int, Decimal)) and not isinstance(value, bool):
        number = Decimal(value)
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            raise _field_error("contact", CONTACT_NAN_MESSAGE)
    else:
        raise _field_error("contact", CONTACT_NAN_MESSAGE)

    if not number.is_finite():
        raise _field_error("contact", CONTACT_NAN_MESSAGE)
    if number < config.CONTACT_MIN or number > config.CONTACT_MAX:
        raise _field_error("contact", CONTACT_RANGE_MESSAGE)
    if number != number.to_integral_value():
        raise _field_error("contact", CONTACT_FRACTION_MESSAGE)
    return int(number)


class SchoolCreatePayload(BaseModel):
    name: str
    address: str
    city: str
    state: str
    contact: int
    email_id: str
    image: ImageUpload

    @field_validator("name", "address", "city", "state", mode="before")
    @classmethod
    def _check_text(cls, value: Any, info: ValidationInfo) -> str:
        return _require_text(info.field_name, value)

    @field_validator("contact", mode="before")
    @classmethod
    def _check_contact(cls, value: Any) -> int:
        return coerce_contact(value)

    @field_validator("email_id", mode="before")
    @classmethod
    def _check_email(cls, value: Any) -> str:
        if value is None or value == "":
            raise _field_error("email_id", REQUIRED_MESSAGES["email_id"])
        if not isinstance(value, str) or not EMAIL_PATTERN.fullmatch(value):
            raise _field_error("email_id", EMAIL_MESSAGE)
        return value

    @field_validator("image", mode="before")
    @classmethod
    def _check_image(cls, value: Any) -> ImageUpload:
        if not isinstance(value, ImageUpload):
            raise _field_error("image", REQUIRED_MESSAGES["image"])

        messages: List[str] = []
        if value.size == 0:
            messages.append(REQUIRED_MESSAGES["image"])
        if value.size > config.MAX_IMAGE_BYTES:
            messages.append(IMAGE_SIZE_MESSAGE)
        if value.content_type not in config.ALLOWED_IMAGE_TYPES:
            messages.append(IMAGE_TYPE_MESSAGE)
        if messages:
            # Every failing image rule is reported, not just the first one.
            raise PydanticCustomError(
                "school_field", messages[0], {"field": "image", "messages": messages}
            )
        return value


def _issues_from_validation_error(exc: ValidationError) -> Dict[str, List[str]]:
    issues: Dict[str, List[str]] = {}
    for error in exc.errors():
        location = error.get("loc") or ("__root__",)
        field = str(location[0])
        if error.get("type") == "missing":
            messages = [REQUIRED_MESSAGES.get(field, "This field is required")]
        else:
            messages = (error.get("ctx") or {}).get("messages") or [error.get("msg") or "Invalid value"]
        issues.setdefault(field, []).extend(messages)
    return issues


def validate_school_submission(raw: Mapping[str, Any]) -> SchoolCreatePayload:
    """Validate ``raw`` form values, collecting every failing field.

    Raises :class:`SchoolValidationError` with a field to messages map when
    any rule fails.
    """

    values = {field: raw.get(field) for field in SCHOOL_FIELDS}
    try:
        return SchoolCreatePayload(**values)
    except ValidationError as exc:
        raise SchoolValidationError(_issues_from_validation_error(exc)) from exc


def _guess_image_extension(mime_type: Optional[str]) -> str:
    """Return a friendly image extension with a default .jpg fallback."""
    if not mime_type:
        return ".jpg"
    if mime_type.lower() == "image/jpeg":
        return ".jpg"
    guessed = mimetypes.guess_extension(mime_type.split(";")[0].strip())
    return guessed or ".jpg"


def build_image_key(image: ImageUpload, timestamp_ms: Optional[int] = None) -> str:
    """Return ``<epoch-ms>-<original filename>`` for ``image``."""

    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    file_name = image.filename.replace("\\", "/").split("/")[-1].strip()
    if not file_name:
        file_name = f"image{_guess_image_extension(image.content_type)}"
    return f"{timestamp_ms}-{file_name}"


def insert_school(db: Session, payload: SchoolCreatePayload, image_url: str) -> School:
    school = School(
        name=payload.name,
        address=payload.address,
        city=payload.city,
        state=payload.state,
        contact=payload.contact,
        email_id=payload.email_id,
        image=image_url,
    )
    db.add(school)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Created school %s (%s)", school.id, school.name)
    return school


def create_school_profile(db: Session, blob_store: BlobStore, payload: SchoolCreatePayload) -> School:
    """Upload the image, then persist the school pointing at its public URL.

    The two writes are not transactional: if the insert fails the uploaded
    blob stays behind unreferenced.
    """

    key = build_image_key(payload.image)
    stored = blob_store.store(key, payload.image.data, payload.image.content_type, public_read=True)
    return insert_school(db, payload, stored.url)


def list_school_cards(db: Session) -> List[SchoolCard]:
    statement = select(
        School.id, School.name, School.address, School.city, School.image
    ).order_by(School.created_at.desc(), School.id.desc())
    rows = db.execute(statement).all()
    return [SchoolCard.model_validate(row) for row in rows]


__all__ = [
    "ImageUpload",
    "SCHOOL_FIELDS",
    "SchoolCreatePayload",
    "SchoolValidationError",
    "build_image_key",
    "coerce_contact",
    "create_school_profile",
    "insert_school",
    "list_school_cards",
    "validate_school_submission",
]
