"""Configuration helpers shared across the School Directory backend modules."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Set

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent.parent


# Ensure environment variables defined in ``backend/.env`` are available before
# importing submodules that rely on them.
load_dotenv(ROOT_DIR / ".env")


logger = logging.getLogger(__name__)

PRODUCTION_ENV = "production"
BLOB_BACKEND_LOCAL = "local"
BLOB_BACKEND_FIREBASE = "firebase"

TEMPLATES_DIR = ROOT_DIR / "templates"
STATIC_DIR = ROOT_DIR / "static"

DEFAULT_DATABASE_URL = f"sqlite:///{(ROOT_DIR / 'schools.db').as_posix()}"
DEFAULT_MEDIA_ROOT = ROOT_DIR / "media"
DEFAULT_MEDIA_URL = "/media"

# Upload constraints enforced by the validation layer.
MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
CONTACT_MIN = 1_000_000_000
CONTACT_MAX = 9_999_999_999


def _env_flag(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return None


def get_app_env() -> str:
    """Return the deployment environment name (``development`` by default)."""

    return (os.environ.get("APP_ENV") or "development").strip().lower()


def is_production() -> bool:
    return get_app_env() == PRODUCTION_ENV


def is_debug() -> bool:
    """Return whether debug behaviour is enabled for this process.

    ``DEBUG`` wins when it holds a recognizable boolean; otherwise debug mode
    follows the environment and is on everywhere except production.
    """

    explicit = _env_flag(os.environ.get("DEBUG"))
    if explicit is not None:
        return explicit
    return not is_production()


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", "").strip() or DEFAULT_DATABASE_URL


def get_blob_backend() -> str:
    backend = (os.environ.get("BLOB_BACKEND") or BLOB_BACKEND_LOCAL).strip().lower()
    if backend not in {BLOB_BACKEND_LOCAL, BLOB_BACKEND_FIREBASE}:
        logger.warning("Unknown BLOB_BACKEND '%s'; falling back to local storage", backend)
        return BLOB_BACKEND_LOCAL
    return backend


def get_firebase_bucket() -> Optional[str]:
    bucket = os.environ.get("FIREBASE_STORAGE_BUCKET", "").strip()
    return bucket or None


def get_media_root() -> Path:
    media_root = os.environ.get("MEDIA_ROOT", "").strip()
    if media_root:
        try:
            return Path(media_root).expanduser()
        except (OSError, RuntimeError) as exc:
            logger.warning("Invalid MEDIA_ROOT '%s': %s", media_root, exc)
    return DEFAULT_MEDIA_ROOT


def get_media_url() -> str:
    media_url = os.environ.get("MEDIA_URL", "").strip() or DEFAULT_MEDIA_URL
    return "/" + media_url.strip("/")


def get_log_level() -> int:
    level_name = (os.environ.get("LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def _normalize_cors_origin(origin: str) -> Optional[str]:
    """Return a sanitized representation of a configured CORS origin."""

    trimmed = origin.strip()
    if not trimmed:
        return None

    if trimmed == "*":
        return trimmed

    return trimmed.rstrip("/")


def _collect_csv_entries(entries: Iterable[str]) -> List[str]:
    normalized: List[str] = []
    seen: Set[str] = set()

    for raw_entry in entries:
        normalized_entry = _normalize_cors_origin(raw_entry)
        if not normalized_entry or normalized_entry in seen:
            continue

        normalized.append(normalized_entry)
        seen.add(normalized_entry)

    return normalized


def _parse_csv(value: Optional[str], *, default: Optional[List[str]] = None) -> List[str]:
    """Return a normalized list from a comma or newline separated string."""

    if value is not None:
        parsed = _collect_csv_entries(value.replace("\n", ",").split(","))
        if parsed:
            return parsed

    return _collect_csv_entries(default or [])


def get_cors_origins() -> List[str]:
    return _parse_csv(os.environ.get("CORS_ORIGINS"), default=["*"])


__all__ = [
    "ALLOWED_IMAGE_TYPES",
    "BLOB_BACKEND_FIREBASE",
    "BLOB_BACKEND_LOCAL",
    "CONTACT_MAX",
    "CONTACT_MIN",
    "MAX_IMAGE_BYTES",
    "ROOT_DIR",
    "STATIC_DIR",
    "TEMPLATES_DIR",
    "get_app_env",
    "get_blob_backend",
    "get_cors_origins",
    "get_database_url",
    "get_firebase_bucket",
    "get_log_level",
    "get_media_root",
    "get_media_url",
    "is_debug",
    "is_production",
    "_normalize_cors_origin",
    "_parse_csv",
]
