"""Blob storage for uploaded school images.

Images are written either to a Firebase Cloud Storage bucket or, for local
development, to a media directory that the application serves under
``MEDIA_URL``.  Both backends hand back a publicly reachable URL which is what
gets persisted on the school record.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from . import config

logger = logging.getLogger(__name__)


class BlobStoreError(RuntimeError):
    """Raised when an object cannot be written to the blob store."""


@dataclass(frozen=True)
class StoredBlob:
    key: str
    url: str
    size: int
    content_type: str


class BlobStore:
    def store(
        self,
        key: str,
        data: bytes,
        content_type: str,
        *,
        public_read: bool = True,
    ) -> StoredBlob:
        raise NotImplementedError

    def close(self) -> None:
        return None


def _sanitize_key(key: str) -> str:
    # Keys come from client supplied filenames; keep them to a single path segment.
    cleaned = key.replace("\\", "/").split("/")[-1].strip()
    if not cleaned or cleaned in {".", ".."}:
        raise BlobStoreError(f"Invalid blob key: {key!r}")
    return cleaned


class LocalBlobStore(BlobStore):
    """Write blobs to ``media_root`` and expose them below ``media_url``."""

    def __init__(self, media_root: Path, media_url: str = config.DEFAULT_MEDIA_URL) -> None:
        self.media_root = Path(media_root)
        self.media_url = "/" + media_url.strip("/")

    def store(
        self,
        key: str,
        data: bytes,
        content_type: str,
        *,
        public_read: bool = True,
    ) -> StoredBlob:
        file_name = _sanitize_key(key)
        target_path = self.media_root / file_name
        try:
            self.media_root.mkdir(parents=True, exist_ok=True)
            with open(target_path, "xb") as handle:
                handle.write(data)
        except FileExistsError as exc:
            raise BlobStoreError(f"Blob {file_name} already exists in {self.media_root}") from exc
        except OSError as exc:
            raise BlobStoreError(f"Unable to write {file_name} to {self.media_root}: {exc}") from exc

        url = f"{self.media_url}/{quote(file_name)}"
        logger.info("Stored %s bytes at %s", len(data), target_path)
        return StoredBlob(key=file_name, url=url, size=len(data), content_type=content_type)


class FirebaseBlobStore(BlobStore):
    """Upload blobs to a Firebase Cloud Storage bucket."""

    def __init__(self, bucket: Any) -> None:
        self.bucket = bucket

    def store(
        self,
        key: str,
        data: bytes,
        content_type: str,
        *,
        public_read: bool = True,
    ) -> StoredBlob:
        file_name = _sanitize_key(key)
        blob = self.bucket.blob(file_name)
        try:
            blob.upload_from_string(data, content_type=content_type)
            if public_read:
                blob.make_public()
        except Exception as exc:  # google-cloud-storage raises many subclasses
            raise BlobStoreError(f"Unable to upload {file_name} to bucket {self.bucket.name}: {exc}") from exc

        logger.info("Uploaded %s bytes to gs://%s/%s", len(data), self.bucket.name, file_name)
        return StoredBlob(key=file_name, url=blob.public_url, size=len(data), content_type=content_type)


def _initialize_firebase_bucket(bucket_name: Optional[str]) -> Any:
    """Initialize Firebase using env-based credentials and return the bucket."""

    import firebase_admin
    from firebase_admin import credentials, storage

    if not bucket_name:
        raise RuntimeError("FIREBASE_STORAGE_BUCKET must be set when BLOB_BACKEND=firebase")

    # Prevent double initialization
    if not firebase_admin._apps:
        emulator_host = os.environ.get("STORAGE_EMULATOR_HOST")
        credentials_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")

        if emulator_host or not credentials_path:
            cred = None
        else:
            if not os.path.exists(credentials_path):
                raise RuntimeError(f"Firebase credentials not found at {credentials_path}")
            cred = credentials.Certificate(credentials_path)

        firebase_admin.initialize_app(cred, {"storageBucket": bucket_name})

    return storage.bucket(bucket_name)


_blob_store: Optional[BlobStore] = None


def init_blob_store() -> BlobStore:
    """Return the process-wide blob store, creating it on first use."""

    global _blob_store
    if _blob_store is None:
        backend = config.get_blob_backend()
        if backend == config.BLOB_BACKEND_FIREBASE:
            _blob_store = FirebaseBlobStore(_initialize_firebase_bucket(config.get_firebase_bucket()))
        else:
            _blob_store = LocalBlobStore(config.get_media_root(), config.get_media_url())
        logger.info("Blob store initialized (%s)", backend)
    return _blob_store


def close_blob_store() -> None:
    global _blob_store
    if _blob_store is not None:
        _blob_store.close()
    _blob_store = None


def get_blob_store() -> BlobStore:
    return init_blob_store()


__all__ = [
    "BlobStore",
    "BlobStoreError",
    "FirebaseBlobStore",
    "LocalBlobStore",
    "StoredBlob",
    "close_blob_store",
    "get_blob_store",
    "init_blob_store",
]
