"""Object storage for backup archives."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import firebase_admin
from firebase_admin import storage
from google.api_core.exceptions import NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    name: str
    size: int


class BackupStorage(Protocol):
    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store data at path and return its storage location."""
        ...

    def download(self, path: str) -> bytes:
        """Return the stored bytes at path."""
        ...

    def list_objects(self, prefix: str) -> list[StoredObject]:
        """List objects whose name starts with prefix."""
        ...

    def delete(self, path: str) -> None:
        """Delete the object at path; a missing object is not an error."""
        ...


class InMemoryBackupStorage:
    """In-memory storage for local development and tests."""

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        self._objects[path] = data
        return path

    def download(self, path: str) -> bytes:
        return self._objects[path]

    def list_objects(self, prefix: str) -> list[StoredObject]:
        return [
            StoredObject(name=name, size=len(data))
            for name, data in sorted(self._objects.items())
            if name.startswith(prefix)
        ]

    def delete(self, path: str) -> None:
        self._objects.pop(path, None)

    def __contains__(self, path: object) -> bool:
        return path in self._objects


class FirebaseBackupStorage:
    """Backup storage in the project's Cloud Storage bucket."""

    def __init__(self, app: firebase_admin.App, bucket_name: str | None = None) -> None:
        self._bucket = storage.bucket(bucket_name, app=app)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        blob = self._bucket.blob(path)
        blob.upload_from_string(data, content_type=content_type)
        return path

    def download(self, path: str) -> bytes:
        return self._bucket.blob(path).download_as_bytes()

    def list_objects(self, prefix: str) -> list[StoredObject]:
        return [
            StoredObject(name=blob.name, size=int(blob.size or 0))
            for blob in self._bucket.list_blobs(prefix=prefix)
        ]

    def delete(self, path: str) -> None:
        try:
            self._bucket.blob(path).delete()
        except NotFound:
            logger.info("Backup object %s already removed", path)
