from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from .approvals import has_approval_annotations, prune_approvals
from .backup import StateBackupManager
from .k8s import (
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    KubernetesClients,
    get_workspace_object,
    is_conflict,
    list_runs,
    replace_workspace_object,
    replace_workspace_status,
)
from .models import PHASE_DELETING, Workspace, WorkspaceSpecError, status_to_object, workspace_from_object
from .phase import manage_phase
from .pipeline import StatusStep, run_status_pipeline
from .steps import ResourceSteps
from .storage import BackupStore

LOGGER = logging.getLogger(__name__)

# Garbage collect owned objects before the workspace itself disappears.
FOREGROUND_DELETION_FINALIZER = "foregroundDeletion"

ACTION_DONE = "done"
ACTION_RETRY_NOW = "retry_now"
ACTION_RETRY_AFTER = "retry_after"
ACTION_FATAL = "fatal"

DEFAULT_RETRY_BACKOFF_SECONDS = 10.0


@dataclass(frozen=True)
class ReconcileResult:
    action: str
    retry_after_seconds: float | None = None
    message: str = ""

    @classmethod
    def done(cls) -> ReconcileResult:
        return cls(action=ACTION_DONE)

    @classmethod
    def retry_now(cls, message: str) -> ReconcileResult:
        return cls(action=ACTION_RETRY_NOW, retry_after_seconds=0.0, message=message)

    @classmethod
    def retry_after(cls, seconds: float, message: str) -> ReconcileResult:
        return cls(action=ACTION_RETRY_AFTER, retry_after_seconds=seconds, message=message)

    @classmethod
    def fatal(cls, message: str) -> ReconcileResult:
        return cls(action=ACTION_FATAL, message=message)

    @property
    def requeue(self) -> bool:
        return self.action in {ACTION_RETRY_NOW, ACTION_RETRY_AFTER}


class WorkspaceReconciler:
    """Reconciles a Workspace custom object into cluster state.

    A reconcile adds the deletion finalizer, prunes stale approval annotations,
    then derives the workspace status by running the status steps in order and
    persists that status exactly once, even when a step fails part way.
    """

    def __init__(
        self,
        *,
        clients: KubernetesClients,
        backup_store: BackupStore | None,
        image: str,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
    ) -> None:
        self.clients = clients
        self.request_timeout = request_timeout
        self.retry_backoff_seconds = retry_backoff_seconds

        resources = ResourceSteps(clients=clients, image=image, request_timeout=request_timeout)
        state = StateBackupManager(clients=clients, backup_store=backup_store, request_timeout=request_timeout)
        self.steps: tuple[tuple[str, StatusStep], ...] = (
            ("variables", resources.manage_variables),
            ("rbac", resources.manage_rbac),
            ("state", state.manage_state),
            ("cache", resources.manage_cache),
            ("pod", resources.manage_pod),
            ("queue", resources.manage_queue),
            ("phase", manage_phase),
        )

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        LOGGER.debug("Reconciling workspace %s/%s", namespace, name)
        try:
            return self._reconcile(namespace, name)
        except WorkspaceSpecError as error:
            LOGGER.error("Workspace %s/%s cannot be reconciled: %s", namespace, name, error)
            return ReconcileResult.fatal(str(error))
        except Exception as error:  # pylint: disable=broad-except
            return self._result_for_error(f"{namespace}/{name}", error)

    def _reconcile(self, namespace: str, name: str) -> ReconcileResult:
        obj = get_workspace_object(self.clients, namespace, name, request_timeout=self.request_timeout)
        if obj is None:
            # Deleted since the request was queued; a new event will follow if it returns.
            return ReconcileResult.done()
        workspace = workspace_from_object(obj)

        if workspace.deletion_timestamp:
            if workspace.status.phase != PHASE_DELETING:
                self._persist_status(obj, workspace.with_status(phase=PHASE_DELETING))
            return ReconcileResult.done()

        obj, workspace = self._update_metadata(obj, workspace)

        result = run_status_pipeline(workspace, self.steps)
        self._persist_status(obj, result.workspace)
        if result.error is not None:
            return self._result_for_error(workspace.key, result.error)

        LOGGER.debug("Workspace %s reconciled, phase=%s", workspace.key, result.workspace.status.phase)
        return ReconcileResult.done()

    def _update_metadata(self, obj: dict[str, Any], workspace: Workspace) -> tuple[dict[str, Any], Workspace]:
        metadata = obj.setdefault("metadata", {})
        updated = False

        if FOREGROUND_DELETION_FINALIZER not in workspace.finalizers:
            metadata["finalizers"] = [*workspace.finalizers, FOREGROUND_DELETION_FINALIZER]
            updated = True

        if has_approval_annotations(workspace.annotations):
            runs = list_runs(self.clients, workspace.namespace, request_timeout=self.request_timeout)
            annotations = prune_approvals(workspace.annotations, runs)
            if annotations is not None and annotations != workspace.annotations:
                metadata["annotations"] = annotations
                updated = True

        if not updated:
            return obj, workspace

        obj = replace_workspace_object(self.clients, obj, request_timeout=self.request_timeout)
        return obj, workspace_from_object(obj)

    def _persist_status(self, obj: dict[str, Any], workspace: Workspace) -> dict[str, Any]:
        body = dict(obj)
        body["status"] = status_to_object(workspace.status)
        return replace_workspace_status(self.clients, body, request_timeout=self.request_timeout)

    def _result_for_error(self, key: str, error: Exception) -> ReconcileResult:
        message = str(error).strip() or error.__class__.__name__
        if is_conflict(error):
            LOGGER.info("Workspace %s was modified concurrently, retrying", key)
            return ReconcileResult.retry_now(message)
        LOGGER.warning("Workspace %s reconcile failed, retrying in %ss: %s", key, self.retry_backoff_seconds, message)
        return ReconcileResult.retry_after(self.retry_backoff_seconds, message)
