from __future__ import annotations

from pathlib import Path
import os

import streamlit as st
import yaml

from terraform_workspace_operator.conditions import PENDING_REASON
from terraform_workspace_operator.config import OperatorConfig
from terraform_workspace_operator.k8s import (
    KubernetesAuthenticationError,
    list_workspace_objects,
    load_kubernetes_clients,
)
from terraform_workspace_operator.models import (
    CONDITION_TRUE,
    CONDITION_UNKNOWN,
    Workspace,
    WorkspaceSpecError,
    workspace_from_object,
)
from terraform_workspace_operator.queue import queue_position

_AUTH_MODE_USE_KUBECONFIG_PATH = "Use kubeconfig path"
_AUTH_MODE_IN_CLUSTER = "In-cluster service account"

_CONDITION_HINTS: dict[str, str] = {
    "CacheLost": "The cache volume is gone. Delete the PVC so the operator recreates it.",
    "BucketNotFound": "Create the backup bucket or correct spec.backupBucket.",
    "ClientCreateFailed": "Provide Google Cloud credentials to the operator pod.",
    "UnexpectedError": "Inspect the operator logs for the full error.",
    "Failed": "Inspect the workspace pod's events and installer logs.",
    "Succeeded": "The workspace pod exited; delete it so the operator recreates it.",
}


def _initialize_state() -> None:
    defaults = {
        "connected": False,
        "clients": None,
        "workspaces": [],
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def _build_workspace_rows(workspaces: list[Workspace]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for workspace in workspaces:
        rows.append(
            {
                "namespace": workspace.namespace,
                "workspace": workspace.name,
                "phase": workspace.status.phase or "Unknown",
                "active": workspace.status.active or "none",
                "queue": ", ".join(workspace.status.queue) or "empty",
                "backup_bucket": workspace.spec.backup_bucket or "none",
                "backup_serial": str(workspace.status.backup_serial),
            }
        )
    return rows


def _build_condition_rows(workspace: Workspace) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for condition in workspace.status.conditions:
        rows.append(
            {
                "type": condition.type,
                "status": condition.status,
                "reason": condition.reason,
                "message": condition.message,
                "last_transition_time": condition.last_transition_time or "",
                "next_step": _condition_next_step(condition.status, condition.reason),
            }
        )
    return rows


def _build_output_rows(workspace: Workspace) -> list[dict[str, str]]:
    return [{"key": output.key, "value": output.value} for output in workspace.status.outputs]


def _condition_next_step(status: str, reason: str) -> str:
    if status == CONDITION_TRUE:
        return _CONDITION_HINTS.get(reason, "Inspect the operator logs for more detail.")
    if status == CONDITION_UNKNOWN:
        return "Waiting for the resource to report a known state."
    if reason == PENDING_REASON:
        return "Resource is still being provisioned."
    return "No follow-up action required."


def _queue_position_message(workspace: Workspace, run_name: str) -> str:
    run_name = run_name.strip()
    if not run_name:
        return "Enter a run name to see its queue position."

    position = queue_position(workspace.status.queue, workspace.status.active, run_name)
    if position is None:
        return f"Run {run_name} is not queued on workspace {workspace.key}."
    if position == 0:
        return f"Run {run_name} is active on workspace {workspace.key}."
    active = workspace.status.active or "none"
    return f"Run {run_name} is queued at position {position} behind active run {active}."


def _parse_workspaces(objects: list[dict]) -> tuple[list[Workspace], list[str]]:
    workspaces: list[Workspace] = []
    errors: list[str] = []
    for obj in objects:
        try:
            workspaces.append(workspace_from_object(obj))
        except WorkspaceSpecError as error:
            errors.append(str(error))
    workspaces.sort(key=lambda item: (item.namespace, item.name))
    return workspaces, errors


def _validate_kubeconfig_path_input(kubeconfig_path_input: str) -> str | None:
    path_value = kubeconfig_path_input.strip()
    if not path_value:
        return "Kubeconfig path is required when using kubeconfig path authentication."

    expanded_path = Path(path_value).expanduser()
    if not expanded_path.is_file():
        return f"Kubeconfig path must point to an existing file: {expanded_path}"

    try:
        parsed = yaml.safe_load(expanded_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as error:
        return f"Unable to read kubeconfig path {expanded_path}: {error}"
    except yaml.YAMLError as error:
        return f"Kubeconfig file '{expanded_path}' must be valid YAML: {error.__class__.__name__}."

    if not isinstance(parsed, dict) or not parsed.get("contexts"):
        return f"Kubeconfig file '{expanded_path}' must include at least one context."
    return None


def _default_auth_mode() -> str:
    if os.getenv("KUBERNETES_SERVICE_HOST") and Path("/var/run/secrets/kubernetes.io/serviceaccount/token").exists():
        return _AUTH_MODE_IN_CLUSTER
    return _AUTH_MODE_USE_KUBECONFIG_PATH


def main() -> None:
    st.set_page_config(page_title="Terraform Workspaces", layout="wide")
    _initialize_state()
    config = OperatorConfig()

    st.title("Terraform Workspaces")
    st.caption("Workspace phase, run queue, outputs and conditions as reported by the operator.")

    st.sidebar.header("Cluster Connection")
    auth_options = [_AUTH_MODE_USE_KUBECONFIG_PATH, _AUTH_MODE_IN_CLUSTER]
    auth_mode = st.sidebar.radio("Authentication", options=auth_options, index=auth_options.index(_default_auth_mode()))
    context = st.sidebar.text_input("Kubernetes context (optional)", value=config.context or "")
    kubeconfig_path_input = config.kubeconfig_path or "~/.kube/config"
    if auth_mode == _AUTH_MODE_USE_KUBECONFIG_PATH:
        kubeconfig_path_input = st.sidebar.text_input("Kubeconfig path", value=kubeconfig_path_input)
    namespace = st.sidebar.text_input("Namespace (blank for all)", value=config.namespace)

    if st.sidebar.button("Connect", type="primary"):
        connection_error = None
        if auth_mode == _AUTH_MODE_USE_KUBECONFIG_PATH:
            connection_error = _validate_kubeconfig_path_input(kubeconfig_path_input)
        if connection_error:
            st.sidebar.error(connection_error)
        else:
            try:
                st.session_state.clients = load_kubernetes_clients(
                    kubeconfig_path=kubeconfig_path_input if auth_mode == _AUTH_MODE_USE_KUBECONFIG_PATH else None,
                    context=context or None,
                    in_cluster=auth_mode == _AUTH_MODE_IN_CLUSTER,
                )
                st.session_state.connected = True
                st.session_state.workspaces = []
                st.success("Connected to Kubernetes cluster.")
            except KubernetesAuthenticationError as error:
                st.session_state.connected = False
                st.session_state.clients = None
                st.error(str(error))

    if not st.session_state.connected or st.session_state.clients is None:
        st.info("Connect to a cluster from the sidebar to list workspaces.")
        return

    if st.button("Refresh workspaces"):
        with st.spinner("Listing workspaces..."):
            objects = list_workspace_objects(
                st.session_state.clients,
                namespace=namespace.strip() or None,
                request_timeout=config.request_timeout_seconds,
            )
            st.session_state.workspaces, parse_errors = _parse_workspaces(objects)
            for parse_error in parse_errors:
                st.warning(parse_error)

    workspaces: list[Workspace] = st.session_state.workspaces
    if not workspaces:
        st.info("Click 'Refresh workspaces' to load workspaces.")
        return

    st.dataframe(_build_workspace_rows(workspaces), use_container_width=True, hide_index=True)

    labels = [workspace.key for workspace in workspaces]
    selected_label = st.selectbox("Workspace", options=labels)
    workspace = workspaces[labels.index(selected_label)]

    st.subheader("Conditions")
    condition_rows = _build_condition_rows(workspace)
    if condition_rows:
        st.dataframe(condition_rows, use_container_width=True, hide_index=True)
    else:
        st.info("No conditions reported yet.")

    st.subheader("Outputs")
    output_rows = _build_output_rows(workspace)
    if output_rows:
        st.dataframe(output_rows, use_container_width=True, hide_index=True)
    else:
        st.info("No outputs in the workspace state.")

    st.subheader("Run Queue")
    run_name = st.text_input("Run name", value="")
    st.write(_queue_position_message(workspace, run_name))


if __name__ == "__main__":
    main()
