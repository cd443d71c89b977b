from __future__ import annotations

import pytest

from terraform_workspace_operator.models import (
    Condition,
    Output,
    WorkspaceSpecError,
    WorkspaceStatus,
    run_from_object,
    status_to_object,
    workspace_from_object,
)


def _workspace_object() -> dict:
    return {
        "metadata": {
            "name": "networking",
            "namespace": "dev",
            "uid": "uid-1",
            "resourceVersion": "12",
            "annotations": {"approvals.etok.dev/run-1": "approved"},
            "finalizers": ["foregroundDeletion"],
        },
        "spec": {
            "serviceAccountName": "terraform",
            "secretName": "cloud-credentials",
            "cache": {"size": "5Gi", "storageClass": "fast"},
            "backend": {"type": "gcs", "config": {"bucket": "state", "prefix": "dev"}},
            "backupBucket": "tf-backups",
        },
        "status": {
            "conditions": [
                {
                    "type": "PodFailure",
                    "status": "False",
                    "reason": "Running",
                    "lastTransitionTime": "2026-01-01T00:00:00+00:00",
                }
            ],
            "phase": "Ready",
            "queue": ["run-2"],
            "active": "run-1",
            "outputs": [{"key": "vpc_id", "value": "vpc-123"}],
            "backupSerial": 6,
        },
    }


def test_workspace_from_object_maps_spec_status_and_metadata() -> None:
    workspace = workspace_from_object(_workspace_object())

    assert workspace.key == "dev/networking"
    assert workspace.spec.cache.size == "5Gi"
    assert workspace.spec.cache.storage_class == "fast"
    assert workspace.spec.backend.type == "gcs"
    assert workspace.spec.backend.config == {"bucket": "state", "prefix": "dev"}
    assert workspace.spec.backup_bucket == "tf-backups"
    assert workspace.status.queue == ("run-2",)
    assert workspace.status.active == "run-1"
    assert workspace.status.backup_serial == 6
    assert workspace.status.outputs == (Output(key="vpc_id", value="vpc-123"),)
    assert workspace.status.conditions[0].last_transition_time == "2026-01-01T00:00:00+00:00"
    assert workspace.finalizers == ("foregroundDeletion",)


def test_workspace_derived_names_follow_naming_conventions() -> None:
    workspace = workspace_from_object(_workspace_object())

    assert workspace.pod_name == "workspace-networking"
    assert workspace.pvc_name == "networking"
    assert workspace.variables_config_map_name == "workspace-networking-variables"
    assert workspace.state_secret_name == "tfstate-default-networking"
    assert workspace.backup_object_name == "dev/networking.yaml"


def test_workspace_from_object_with_minimal_object_uses_defaults() -> None:
    workspace = workspace_from_object({"metadata": {"name": "networking", "namespace": "dev"}})

    assert workspace.spec.cache.size == "1Gi"
    assert workspace.spec.backend.type == "local"
    assert workspace.status == WorkspaceStatus()


def test_workspace_from_object_without_name_raises_spec_error() -> None:
    with pytest.raises(WorkspaceSpecError, match="metadata.name"):
        workspace_from_object({"metadata": {"namespace": "dev"}})


def test_workspace_from_object_with_bad_condition_raises_spec_error() -> None:
    obj = _workspace_object()
    obj["status"]["conditions"] = [{"reason": "no type"}]

    with pytest.raises(WorkspaceSpecError, match="could not be parsed"):
        workspace_from_object(obj)


def test_status_to_object_omits_empty_phase_and_active() -> None:
    rendered = status_to_object(WorkspaceStatus())

    assert rendered == {"conditions": [], "queue": [], "outputs": [], "backupSerial": 0}


def test_status_to_object_renders_camel_case_fields() -> None:
    status = WorkspaceStatus(
        conditions=(Condition(type="CacheFailure", status="False", reason="CacheBound", last_transition_time="t"),),
        phase="Ready",
        queue=("run-2",),
        active="run-1",
        backup_serial=3,
    )

    rendered = status_to_object(status)

    assert rendered["phase"] == "Ready"
    assert rendered["active"] == "run-1"
    assert rendered["backupSerial"] == 3
    assert rendered["conditions"][0]["lastTransitionTime"] == "t"


def test_run_from_object_treats_only_plan_as_non_mutating() -> None:
    plan = run_from_object({"metadata": {"name": "r1"}, "command": "plan"})
    apply = run_from_object({"metadata": {"name": "r2"}, "command": "apply"})
    shell = run_from_object({"metadata": {"name": "r3"}, "command": "sh"})

    assert not plan.is_mutating
    assert apply.is_mutating
    assert shell.is_mutating
    assert apply.approval_annotation_key == "approvals.etok.dev/r2"
