from __future__ import annotations

import logging

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions
from google.cloud import storage
import requests

LOGGER = logging.getLogger(__name__)

DEFAULT_STORAGE_TIMEOUT_SECONDS = 60

# Transport and credential failures are not GoogleAPIError subclasses.
_STORAGE_ERRORS = (
    google_exceptions.GoogleAPIError,
    google_auth_exceptions.GoogleAuthError,
    requests.exceptions.RequestException,
)


class BackupStoreError(RuntimeError):
    """Raised when the remote backup store cannot complete a request."""


class BucketNotFoundError(BackupStoreError):
    def __init__(self, bucket: str) -> None:
        super().__init__(f"backup bucket {bucket} does not exist")
        self.bucket = bucket


class BackupObjectNotFoundError(BackupStoreError):
    def __init__(self, bucket: str, object_name: str) -> None:
        super().__init__(f"backup object gs://{bucket}/{object_name} does not exist")
        self.bucket = bucket
        self.object_name = object_name


class BackupStore:
    """Reads and writes state backups in Google Cloud Storage.

    The underlying client is created once at process start and shared by every
    reconcile. Missing buckets and missing objects raise distinct errors so
    callers can branch on them.
    """

    def __init__(self, client: storage.Client) -> None:
        self.client = client

    def ensure_bucket(self, bucket: str, *, timeout: float = DEFAULT_STORAGE_TIMEOUT_SECONDS) -> None:
        try:
            exists = self.client.bucket(bucket).exists(timeout=timeout)
        except _STORAGE_ERRORS as error:
            raise BackupStoreError(f"unable to check backup bucket {bucket}: {_error_message(error)}") from error
        if not exists:
            raise BucketNotFoundError(bucket)

    def read(self, bucket: str, object_name: str, *, timeout: float = DEFAULT_STORAGE_TIMEOUT_SECONDS) -> bytes:
        blob = self.client.bucket(bucket).blob(object_name)
        try:
            return blob.download_as_bytes(timeout=timeout)
        except google_exceptions.NotFound as error:
            raise BackupObjectNotFoundError(bucket, object_name) from error
        except _STORAGE_ERRORS as error:
            raise BackupStoreError(
                f"unable to read gs://{bucket}/{object_name}: {_error_message(error)}"
            ) from error

    def write(
        self,
        bucket: str,
        object_name: str,
        payload: bytes,
        *,
        timeout: float = DEFAULT_STORAGE_TIMEOUT_SECONDS,
    ) -> None:
        blob = self.client.bucket(bucket).blob(object_name)
        try:
            blob.upload_from_string(payload, content_type="application/yaml", timeout=timeout)
        except _STORAGE_ERRORS as error:
            raise BackupStoreError(
                f"unable to write gs://{bucket}/{object_name}: {_error_message(error)}"
            ) from error
        LOGGER.debug("Wrote %d bytes to gs://%s/%s", len(payload), bucket, object_name)


def create_backup_store(project: str | None = None) -> BackupStore | None:
    """Build the shared backup store, or None when no credentials are available."""
    try:
        client = storage.Client(project=project)
    except Exception as error:  # pylint: disable=broad-except
        LOGGER.warning("Backup storage client unavailable, backups and restores will fail: %s", _error_message(error))
        return None
    return BackupStore(client)


def _error_message(error: Exception) -> str:
    message = str(error).strip()
    return message or error.__class__.__name__
