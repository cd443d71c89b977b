from __future__ import annotations

import logging
from typing import Any

import yaml
from kubernetes import client

from .conditions import (
    BACKUP_FAILURE,
    BACKUP_SUCCESSFUL_REASON,
    BUCKET_NOT_FOUND_REASON,
    CLIENT_CREATE_REASON,
    NOTHING_TO_RESTORE_REASON,
    RESTORE_FAILURE,
    RESTORE_SUCCESSFUL_REASON,
    UNEXPECTED_ERROR_REASON,
    condition_failure,
    condition_ok,
)
from .k8s import (
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    KubernetesClients,
    ensure_owner_reference,
    read_optional,
    workspace_owner_reference,
)
from .models import State, Workspace
from .pipeline import StepFailure
from .state import decode_state, outputs_for_status
from .storage import BackupObjectNotFoundError, BackupStore, BucketNotFoundError

LOGGER = logging.getLogger(__name__)


class StateBackupManager:
    """Keeps a workspace's terraform state secret and its remote backup in step.

    A missing state secret is restored from the backup bucket when one is
    configured. An existing secret is adopted by the workspace, its outputs are
    copied to the workspace status, and it is backed up whenever its serial
    differs from the last backed up serial.
    """

    def __init__(
        self,
        *,
        clients: KubernetesClients,
        backup_store: BackupStore | None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.clients = clients
        self.backup_store = backup_store
        self.request_timeout = request_timeout

    def manage_state(self, workspace: Workspace) -> Workspace:
        secret = read_optional(
            lambda: self.clients.core_api.read_namespaced_secret(
                name=workspace.state_secret_name,
                namespace=workspace.namespace,
                _request_timeout=self.request_timeout,
            )
        )
        if secret is None:
            if not workspace.spec.backup_bucket:
                return workspace
            return self.restore(workspace)

        secret = self._adopt_secret(workspace, secret)

        state = decode_state(secret.data)
        outputs = outputs_for_status(state)
        if outputs != workspace.status.outputs:
            workspace = workspace.with_status(outputs=outputs)

        if workspace.spec.backup_bucket and state.serial != workspace.status.backup_serial:
            return self.backup(workspace, secret, state)
        return workspace

    def backup(self, workspace: Workspace, secret: client.V1Secret, state: State) -> Workspace:
        store = self._require_store(workspace, BACKUP_FAILURE, step="backup")
        bucket = workspace.spec.backup_bucket

        try:
            store.ensure_bucket(bucket, timeout=self.request_timeout)
        except BucketNotFoundError as error:
            raise self._failure(workspace, BACKUP_FAILURE, BUCKET_NOT_FOUND_REASON, error, step="backup") from error
        except Exception as error:  # pylint: disable=broad-except
            raise self._failure(workspace, BACKUP_FAILURE, UNEXPECTED_ERROR_REASON, error, step="backup") from error

        try:
            payload = yaml.safe_dump(self._secret_document(secret), sort_keys=False).encode("utf-8")
            store.write(bucket, workspace.backup_object_name, payload, timeout=self.request_timeout)
        except Exception as error:  # pylint: disable=broad-except
            raise self._failure(workspace, BACKUP_FAILURE, UNEXPECTED_ERROR_REASON, error, step="backup") from error

        LOGGER.info(
            "Workspace %s: backed up state serial %d to gs://%s/%s",
            workspace.key,
            state.serial,
            bucket,
            workspace.backup_object_name,
        )
        workspace = workspace.with_status(backup_serial=state.serial)
        return condition_ok(workspace, BACKUP_FAILURE, BACKUP_SUCCESSFUL_REASON, "State was successfully backed up")

    def restore(self, workspace: Workspace) -> Workspace:
        store = self._require_store(workspace, RESTORE_FAILURE, step="restore")
        bucket = workspace.spec.backup_bucket

        try:
            store.ensure_bucket(bucket, timeout=self.request_timeout)
            payload = store.read(bucket, workspace.backup_object_name, timeout=self.request_timeout)
        except BucketNotFoundError as error:
            raise self._failure(workspace, RESTORE_FAILURE, BUCKET_NOT_FOUND_REASON, error, step="restore") from error
        except BackupObjectNotFoundError:
            LOGGER.info("Workspace %s: no backup found to restore", workspace.key)
            return condition_ok(workspace, RESTORE_FAILURE, NOTHING_TO_RESTORE_REASON, "No backup was found to restore")
        except Exception as error:  # pylint: disable=broad-except
            raise self._failure(workspace, RESTORE_FAILURE, UNEXPECTED_ERROR_REASON, error, step="restore") from error

        try:
            body = self._restored_secret_body(workspace, payload)
            self.clients.core_api.create_namespaced_secret(
                namespace=workspace.namespace,
                body=body,
                _request_timeout=self.request_timeout,
            )
        except Exception as error:  # pylint: disable=broad-except
            raise self._failure(workspace, RESTORE_FAILURE, UNEXPECTED_ERROR_REASON, error, step="restore") from error

        LOGGER.info(
            "Workspace %s: restored state secret from gs://%s/%s",
            workspace.key,
            bucket,
            workspace.backup_object_name,
        )
        return condition_ok(workspace, RESTORE_FAILURE, RESTORE_SUCCESSFUL_REASON, "State was successfully restored")

    def _adopt_secret(self, workspace: Workspace, secret: client.V1Secret) -> client.V1Secret:
        if secret.metadata is None:
            secret.metadata = client.V1ObjectMeta(name=workspace.state_secret_name, namespace=workspace.namespace)
        if not ensure_owner_reference(secret.metadata, workspace_owner_reference(workspace, controller=False)):
            return secret
        return self.clients.core_api.replace_namespaced_secret(
            name=workspace.state_secret_name,
            namespace=workspace.namespace,
            body=secret,
            _request_timeout=self.request_timeout,
        )

    def _secret_document(self, secret: client.V1Secret) -> dict[str, Any]:
        document = self.clients.api_client.sanitize_for_serialization(secret)
        document.setdefault("apiVersion", "v1")
        document.setdefault("kind", "Secret")
        return document

    def _restored_secret_body(self, workspace: Workspace, payload: bytes) -> dict[str, Any]:
        body = yaml.safe_load(payload)
        if not isinstance(body, dict):
            raise ValueError("backup object does not contain a YAML mapping")

        metadata = body.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
            body["metadata"] = metadata
        # A stored resourceVersion makes the create call fail.
        metadata.pop("resourceVersion", None)
        metadata["name"] = workspace.state_secret_name
        metadata["namespace"] = workspace.namespace
        metadata["ownerReferences"] = [
            self.clients.api_client.sanitize_for_serialization(
                workspace_owner_reference(workspace, controller=False)
            )
        ]
        return body

    def _require_store(self, workspace: Workspace, condition_type: str, *, step: str) -> BackupStore:
        if self.backup_store is not None:
            return self.backup_store
        message = "backup storage client is not configured"
        raise StepFailure(
            step=step,
            workspace=condition_failure(workspace, condition_type, CLIENT_CREATE_REASON, message),
            reason=message,
        )

    def _failure(
        self,
        workspace: Workspace,
        condition_type: str,
        reason: str,
        error: Exception,
        *,
        step: str,
    ) -> StepFailure:
        message = _error_message(error)
        return StepFailure(
            step=step,
            workspace=condition_failure(workspace, condition_type, reason, message),
            reason=message,
        )


def _error_message(error: Exception) -> str:
    message = str(error).strip()
    return message or error.__class__.__name__
