from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, TypeVar

from kubernetes import client, config
from kubernetes.client import ApiException

from .models import (
    API_GROUP,
    API_VERSION,
    RUN_PLURAL,
    WORKSPACE_KIND,
    WORKSPACE_PLURAL,
    Run,
    Workspace,
    run_from_object,
)

DEFAULT_REQUEST_TIMEOUT_SECONDS = 30
T = TypeVar("T")


@dataclass(frozen=True)
class KubernetesClients:
    api_client: client.ApiClient
    core_api: client.CoreV1Api
    rbac_api: client.RbacAuthorizationV1Api
    custom_api: client.CustomObjectsApi


class KubernetesAuthenticationError(RuntimeError):
    """Raised when Kubernetes authentication configuration fails."""


def load_kubernetes_clients(
    *,
    kubeconfig_path: str | None,
    context: str | None,
    in_cluster: bool,
) -> KubernetesClients:
    expanded = _expand_kubeconfig_path(kubeconfig_path)
    try:
        if in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config(config_file=expanded, context=context)
    except Exception as error:  # pylint: disable=broad-except
        raise KubernetesAuthenticationError(
            _format_authentication_error(
                in_cluster=in_cluster,
                kubeconfig_path=expanded,
                context=context,
                error=error,
            )
        ) from error

    api_client = client.ApiClient()
    return KubernetesClients(
        api_client=api_client,
        core_api=client.CoreV1Api(api_client),
        rbac_api=client.RbacAuthorizationV1Api(api_client),
        custom_api=client.CustomObjectsApi(api_client),
    )


def is_not_found(error: Exception) -> bool:
    return isinstance(error, ApiException) and error.status == 404


def is_conflict(error: Exception) -> bool:
    return isinstance(error, ApiException) and error.status == 409


def read_optional(func: Callable[[], T]) -> T | None:
    """Call a read function, mapping a 404 response to None."""
    try:
        return func()
    except ApiException as error:
        if is_not_found(error):
            return None
        raise


def get_workspace_object(
    clients: KubernetesClients,
    namespace: str,
    name: str,
    *,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
) -> dict[str, Any] | None:
    return read_optional(
        lambda: clients.custom_api.get_namespaced_custom_object(
            group=API_GROUP,
            version=API_VERSION,
            namespace=namespace,
            plural=WORKSPACE_PLURAL,
            name=name,
            _request_timeout=request_timeout,
        )
    )


def list_workspace_objects(
    clients: KubernetesClients,
    *,
    namespace: str | None = None,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
) -> list[dict[str, Any]]:
    if namespace:
        response = clients.custom_api.list_namespaced_custom_object(
            group=API_GROUP,
            version=API_VERSION,
            namespace=namespace,
            plural=WORKSPACE_PLURAL,
            _request_timeout=request_timeout,
        )
    else:
        response = clients.custom_api.list_cluster_custom_object(
            group=API_GROUP,
            version=API_VERSION,
            plural=WORKSPACE_PLURAL,
            _request_timeout=request_timeout,
        )
    return list(response.get("items") or [])


def list_runs(
    clients: KubernetesClients,
    namespace: str,
    *,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
) -> list[Run]:
    response = clients.custom_api.list_namespaced_custom_object(
        group=API_GROUP,
        version=API_VERSION,
        namespace=namespace,
        plural=RUN_PLURAL,
        _request_timeout=request_timeout,
    )
    return [run_from_object(item) for item in response.get("items") or []]


def replace_workspace_object(
    clients: KubernetesClients,
    obj: dict[str, Any],
    *,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
) -> dict[str, Any]:
    metadata = obj["metadata"]
    return clients.custom_api.replace_namespaced_custom_object(
        group=API_GROUP,
        version=API_VERSION,
        namespace=metadata["namespace"],
        plural=WORKSPACE_PLURAL,
        name=metadata["name"],
        body=obj,
        _request_timeout=request_timeout,
    )


def replace_workspace_status(
    clients: KubernetesClients,
    obj: dict[str, Any],
    *,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
) -> dict[str, Any]:
    metadata = obj["metadata"]
    return clients.custom_api.replace_namespaced_custom_object_status(
        group=API_GROUP,
        version=API_VERSION,
        namespace=metadata["namespace"],
        plural=WORKSPACE_PLURAL,
        name=metadata["name"],
        body=obj,
        _request_timeout=request_timeout,
    )


def workspace_owner_reference(workspace: Workspace, *, controller: bool) -> client.V1OwnerReference:
    return client.V1OwnerReference(
        api_version=f"{API_GROUP}/{API_VERSION}",
        kind=WORKSPACE_KIND,
        name=workspace.name,
        uid=workspace.uid,
        controller=controller or None,
        block_owner_deletion=True,
    )


def ensure_owner_reference(
    metadata: client.V1ObjectMeta,
    owner: client.V1OwnerReference,
) -> bool:
    """Add or refresh an owner reference on object metadata.

    Returns True when the metadata changed. An existing reference to the same
    owner kind and name is replaced so that a recreated owner takes over.
    """
    references = list(metadata.owner_references or [])
    for index, existing in enumerate(references):
        if existing.kind != owner.kind or existing.name != owner.name:
            continue
        if existing.uid == owner.uid and existing.api_version == owner.api_version:
            return False
        references[index] = owner
        metadata.owner_references = references
        return True

    references.append(owner)
    metadata.owner_references = references
    return True


def format_api_error(*, operation: str, error: ApiException) -> str:
    status = error.status if error.status is not None else "unknown"
    reason = error.reason or "no reason provided"
    return f"Kubernetes API call failed while trying to {operation}: API status {status} ({reason})"


def _expand_kubeconfig_path(kubeconfig_path: str | None) -> str | None:
    if kubeconfig_path is None:
        return None
    stripped = kubeconfig_path.strip()
    if not stripped:
        return None
    return str(Path(stripped).expanduser())


def _format_authentication_error(
    *,
    in_cluster: bool,
    kubeconfig_path: str | None,
    context: str | None,
    error: Exception,
) -> str:
    reason = str(error).strip() or error.__class__.__name__
    if in_cluster:
        return (
            "Kubernetes authentication setup failed while loading in-cluster service account credentials: "
            f"{reason}. Ensure the pod has a mounted service account token and Kubernetes service host "
            "environment variables."
        )

    kubeconfig_source = kubeconfig_path or "default kubeconfig search path"
    context_message = f" with context '{context}'" if context else ""
    return (
        "Kubernetes authentication setup failed while loading kubeconfig "
        f"from '{kubeconfig_source}'{context_message}: {reason}. "
        "Verify the kubeconfig path and context are valid."
    )
