from __future__ import annotations

from terraform_workspace_operator.manifests import (
    build_cache_pvc,
    build_role,
    build_role_binding,
    build_variables_config_map,
    build_workspace_pod,
)
from terraform_workspace_operator.models import (
    BackendSpec,
    CacheSpec,
    Workspace,
    WorkspaceSpec,
    WorkspaceStatus,
)


def _workspace(**spec_changes) -> Workspace:
    return Workspace(
        namespace="dev",
        name="networking",
        uid="uid-1",
        resource_version="1",
        spec=WorkspaceSpec(**spec_changes),
        status=WorkspaceStatus(),
    )


def test_build_variables_config_map_declares_backend_and_variables() -> None:
    config_map = build_variables_config_map(_workspace(backend=BackendSpec(type="gcs")))

    assert config_map.metadata.name == "workspace-networking-variables"
    assert 'backend "gcs" {}' in config_map.data["_backend_override.tf"]
    assert 'variable "workspace" {}' in config_map.data["_etok_variables.tf"]


def test_owned_objects_carry_controller_owner_reference() -> None:
    workspace = _workspace()
    objects = [
        build_variables_config_map(workspace),
        build_role(workspace),
        build_role_binding(workspace),
        build_cache_pvc(workspace),
        build_workspace_pod(workspace, "hashicorp/terraform:1.9"),
    ]

    for obj in objects:
        [owner] = obj.metadata.owner_references
        assert owner.kind == "Workspace"
        assert owner.uid == "uid-1"
        assert owner.controller is True
        assert obj.metadata.namespace == "dev"


def test_build_role_binding_defaults_to_default_service_account() -> None:
    binding = build_role_binding(_workspace())

    assert binding.subjects[0].name == "default"
    assert binding.role_ref.kind == "Role"


def test_build_cache_pvc_uses_cache_spec() -> None:
    pvc = build_cache_pvc(_workspace(cache=CacheSpec(size="5Gi", storage_class="fast")))

    assert pvc.metadata.name == "networking"
    assert pvc.spec.storage_class_name == "fast"
    assert pvc.spec.resources.requests == {"storage": "5Gi"}


def test_build_workspace_pod_runs_init_with_backend_config() -> None:
    workspace = _workspace(
        backend=BackendSpec(type="gcs", config={"prefix": "dev", "bucket": "state"}),
        secret_name="cloud-credentials",
        service_account_name="terraform",
    )

    pod = build_workspace_pod(workspace, "hashicorp/terraform:1.9")

    [installer] = pod.spec.init_containers
    assert installer.command[-1] == (
        "terraform init -input=false -backend-config=bucket=state -backend-config=prefix=dev"
    )
    assert installer.env_from[0].secret_ref.name == "cloud-credentials"
    assert pod.spec.service_account_name == "terraform"
    assert pod.spec.restart_policy == "Never"
    volumes = {volume.name: volume for volume in pod.spec.volumes}
    assert volumes["cache"].persistent_volume_claim.claim_name == "networking"
    assert volumes["variables"].config_map.name == "workspace-networking-variables"
