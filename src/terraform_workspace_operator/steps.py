from __future__ import annotations

import logging

from .conditions import (
    CACHE_BOUND_REASON,
    CACHE_FAILURE,
    CACHE_LOST_REASON,
    PENDING_REASON,
    POD_FAILURE,
    condition_failure,
    condition_ok,
    condition_unknown,
)
from .k8s import DEFAULT_REQUEST_TIMEOUT_SECONDS, KubernetesClients, list_runs, read_optional
from .manifests import (
    build_cache_pvc,
    build_role,
    build_role_binding,
    build_variables_config_map,
    build_workspace_pod,
)
from .models import Workspace
from .queue import compute_queue

LOGGER = logging.getLogger(__name__)


class ResourceSteps:
    """Status steps for the objects a workspace owns.

    Each step creates its object when absent and otherwise inspects it. None of
    them ever updates an existing object's spec.
    """

    def __init__(
        self,
        *,
        clients: KubernetesClients,
        image: str,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.clients = clients
        self.image = image
        self.request_timeout = request_timeout

    def manage_variables(self, workspace: Workspace) -> Workspace:
        core_api = self.clients.core_api
        existing = read_optional(
            lambda: core_api.read_namespaced_config_map(
                name=workspace.variables_config_map_name,
                namespace=workspace.namespace,
                _request_timeout=self.request_timeout,
            )
        )
        if existing is None:
            core_api.create_namespaced_config_map(
                namespace=workspace.namespace,
                body=build_variables_config_map(workspace),
                _request_timeout=self.request_timeout,
            )
            LOGGER.info("Workspace %s: created variables config map", workspace.key)
        return workspace

    def manage_rbac(self, workspace: Workspace) -> Workspace:
        rbac_api = self.clients.rbac_api
        role = read_optional(
            lambda: rbac_api.read_namespaced_role(
                name=workspace.name,
                namespace=workspace.namespace,
                _request_timeout=self.request_timeout,
            )
        )
        if role is None:
            rbac_api.create_namespaced_role(
                namespace=workspace.namespace,
                body=build_role(workspace),
                _request_timeout=self.request_timeout,
            )
            LOGGER.info("Workspace %s: created role", workspace.key)

        binding = read_optional(
            lambda: rbac_api.read_namespaced_role_binding(
                name=workspace.name,
                namespace=workspace.namespace,
                _request_timeout=self.request_timeout,
            )
        )
        if binding is None:
            rbac_api.create_namespaced_role_binding(
                namespace=workspace.namespace,
                body=build_role_binding(workspace),
                _request_timeout=self.request_timeout,
            )
            LOGGER.info("Workspace %s: created role binding", workspace.key)
        return workspace

    def manage_cache(self, workspace: Workspace) -> Workspace:
        core_api = self.clients.core_api
        pvc = read_optional(
            lambda: core_api.read_namespaced_persistent_volume_claim(
                name=workspace.pvc_name,
                namespace=workspace.namespace,
                _request_timeout=self.request_timeout,
            )
        )
        if pvc is None:
            core_api.create_namespaced_persistent_volume_claim(
                namespace=workspace.namespace,
                body=build_cache_pvc(workspace),
                _request_timeout=self.request_timeout,
            )
            LOGGER.info("Workspace %s: created cache PVC", workspace.key)
            return condition_ok(workspace, CACHE_FAILURE, PENDING_REASON, "PVC is being created")

        phase = pvc.status.phase if pvc.status and pvc.status.phase else None
        if phase == "Bound":
            return condition_ok(workspace, CACHE_FAILURE, CACHE_BOUND_REASON, "Cache's PVC successfully bound to PV")
        if phase == "Lost":
            return condition_failure(
                workspace, CACHE_FAILURE, CACHE_LOST_REASON, "Persistent volume does not exist any longer"
            )
        if phase == "Pending":
            return condition_ok(workspace, CACHE_FAILURE, PENDING_REASON, "Cache's PVC in pending state")
        return workspace

    def manage_pod(self, workspace: Workspace) -> Workspace:
        core_api = self.clients.core_api
        pod = read_optional(
            lambda: core_api.read_namespaced_pod(
                name=workspace.pod_name,
                namespace=workspace.namespace,
                _request_timeout=self.request_timeout,
            )
        )
        if pod is None:
            core_api.create_namespaced_pod(
                namespace=workspace.namespace,
                body=build_workspace_pod(workspace, self.image),
                _request_timeout=self.request_timeout,
            )
            LOGGER.info("Workspace %s: created workspace pod", workspace.key)
            return condition_ok(workspace, POD_FAILURE, PENDING_REASON, "Creating pod")

        phase = pod.status.phase if pod.status and pod.status.phase else "Unknown"
        if phase == "Running":
            return condition_ok(workspace, POD_FAILURE, phase)
        if phase == "Pending":
            return condition_ok(workspace, POD_FAILURE, PENDING_REASON, "Pod in pending phase")
        if phase == "Failed":
            return condition_failure(workspace, POD_FAILURE, phase, "Pod unexpectedly failed")
        if phase == "Succeeded":
            return condition_failure(workspace, POD_FAILURE, phase, "Pod unexpectedly completed")
        return condition_unknown(workspace, POD_FAILURE, phase)

    def manage_queue(self, workspace: Workspace) -> Workspace:
        runs = list_runs(self.clients, workspace.namespace, request_timeout=self.request_timeout)
        queue = compute_queue(workspace.status.queue, runs, workspace.name)
        return workspace.with_status(queue=tuple(queue))
