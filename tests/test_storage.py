from __future__ import annotations

from unittest.mock import Mock

import pytest
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions
import requests

from terraform_workspace_operator.storage import (
    BackupObjectNotFoundError,
    BackupStore,
    BackupStoreError,
    BucketNotFoundError,
    create_backup_store,
)


def _store(*, bucket_exists: bool = True) -> tuple[BackupStore, Mock, Mock]:
    blob = Mock()
    bucket = Mock()
    bucket.exists.return_value = bucket_exists
    bucket.blob.return_value = blob
    storage_client = Mock()
    storage_client.bucket.return_value = bucket
    return BackupStore(storage_client), bucket, blob


def test_ensure_bucket_with_existing_bucket_forwards_timeout() -> None:
    store, bucket, _ = _store()

    store.ensure_bucket("backups", timeout=5)

    store.client.bucket.assert_called_once_with("backups")
    bucket.exists.assert_called_once_with(timeout=5)


def test_ensure_bucket_with_missing_bucket_raises_bucket_not_found() -> None:
    store, _, _ = _store(bucket_exists=False)

    with pytest.raises(BucketNotFoundError, match="backups"):
        store.ensure_bucket("backups")


def test_ensure_bucket_with_api_failure_raises_store_error() -> None:
    store, bucket, _ = _store()
    bucket.exists.side_effect = google_exceptions.Forbidden("no access")

    with pytest.raises(BackupStoreError, match="no access") as error_info:
        store.ensure_bucket("backups")

    assert not isinstance(error_info.value, BucketNotFoundError)


def test_read_with_existing_object_returns_payload() -> None:
    store, bucket, blob = _store()
    blob.download_as_bytes.return_value = b"kind: Secret\n"

    payload = store.read("backups", "default/workspace-1.yaml", timeout=7)

    assert payload == b"kind: Secret\n"
    bucket.blob.assert_called_once_with("default/workspace-1.yaml")
    blob.download_as_bytes.assert_called_once_with(timeout=7)


def test_read_with_missing_object_raises_object_not_found() -> None:
    store, _, blob = _store()
    blob.download_as_bytes.side_effect = google_exceptions.NotFound("no such object")

    with pytest.raises(BackupObjectNotFoundError) as error_info:
        store.read("backups", "default/workspace-1.yaml")

    assert error_info.value.object_name == "default/workspace-1.yaml"


def test_read_with_transient_failure_raises_store_error() -> None:
    store, _, blob = _store()
    blob.download_as_bytes.side_effect = google_exceptions.ServiceUnavailable("try later")

    with pytest.raises(BackupStoreError, match="try later"):
        store.read("backups", "default/workspace-1.yaml")


def test_write_uploads_payload_with_timeout() -> None:
    store, _, blob = _store()

    store.write("backups", "default/workspace-1.yaml", b"payload", timeout=9)

    blob.upload_from_string.assert_called_once_with(b"payload", content_type="application/yaml", timeout=9)


def test_write_with_api_failure_raises_store_error() -> None:
    store, _, blob = _store()
    blob.upload_from_string.side_effect = google_exceptions.InternalServerError("boom")

    with pytest.raises(BackupStoreError, match="boom"):
        store.write("backups", "default/workspace-1.yaml", b"payload")



def test_write_with_dropped_connection_raises_store_error() -> None:
    store, _, blob = _store()
    blob.upload_from_string.side_effect = requests.exceptions.ConnectionError("connection reset")

    with pytest.raises(BackupStoreError, match="connection reset"):
        store.write("backups", "default/workspace-1.yaml", b"payload")


def test_read_with_credential_refresh_failure_raises_store_error() -> None:
    store, _, blob = _store()
    blob.download_as_bytes.side_effect = google_auth_exceptions.RefreshError("token expired")

    with pytest.raises(BackupStoreError, match="token expired") as error_info:
        store.read("backups", "default/workspace-1.yaml")

    assert not isinstance(error_info.value, BackupObjectNotFoundError)

def test_create_backup_store_without_credentials_returns_none(monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise(**_kwargs: object) -> None:
        raise RuntimeError("could not find default credentials")

    monkeypatch.setattr("terraform_workspace_operator.storage.storage.Client", _raise)

    assert create_backup_store() is None


def test_create_backup_store_with_client_returns_store(monkeypatch: pytest.MonkeyPatch) -> None:
    storage_client = Mock()
    monkeypatch.setattr("terraform_workspace_operator.storage.storage.Client", lambda **_kwargs: storage_client)

    store = create_backup_store("my-project")

    assert store is not None
    assert store.client is storage_client
