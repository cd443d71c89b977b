from __future__ import annotations

from terraform_workspace_operator.conditions import (
    condition_failure,
    condition_ok,
    condition_unknown,
    find_condition,
)
from terraform_workspace_operator.models import Condition, Workspace, WorkspaceSpec, WorkspaceStatus


def _workspace(*conditions: Condition) -> Workspace:
    return Workspace(
        namespace="dev",
        name="networking",
        uid="uid-1",
        resource_version="1",
        spec=WorkspaceSpec(),
        status=WorkspaceStatus(conditions=conditions),
    )


def test_condition_ok_appends_new_condition_with_transition_time() -> None:
    workspace = condition_ok(_workspace(), "CacheFailure", "CacheBound", "bound")

    condition = find_condition(workspace, "CacheFailure")
    assert condition is not None
    assert condition.status == "False"
    assert condition.last_transition_time


def test_set_condition_replaces_in_place_and_keeps_order() -> None:
    workspace = condition_ok(_workspace(), "CacheFailure", "Pending")
    workspace = condition_ok(workspace, "PodFailure", "Pending")

    workspace = condition_failure(workspace, "CacheFailure", "CacheLost", "gone")

    assert [condition.type for condition in workspace.status.conditions] == ["CacheFailure", "PodFailure"]
    assert workspace.status.conditions[0].status == "True"
    assert workspace.status.conditions[0].reason == "CacheLost"


def test_set_condition_with_same_status_keeps_transition_time() -> None:
    existing = Condition(
        type="PodFailure",
        status="False",
        reason="Pending",
        last_transition_time="2026-01-01T00:00:00+00:00",
    )

    workspace = condition_ok(_workspace(existing), "PodFailure", "Running")

    condition = workspace.status.conditions[0]
    assert condition.reason == "Running"
    assert condition.last_transition_time == "2026-01-01T00:00:00+00:00"


def test_set_condition_with_changed_status_moves_transition_time() -> None:
    existing = Condition(
        type="PodFailure",
        status="False",
        reason="Running",
        last_transition_time="2026-01-01T00:00:00+00:00",
    )

    workspace = condition_unknown(_workspace(existing), "PodFailure", "Unknown")

    condition = workspace.status.conditions[0]
    assert condition.status == "Unknown"
    assert condition.last_transition_time != "2026-01-01T00:00:00+00:00"


def test_set_condition_does_not_mutate_original_workspace() -> None:
    original = _workspace(Condition(type="CacheFailure", status="False", reason="CacheBound"))

    condition_failure(original, "CacheFailure", "CacheLost")

    assert original.status.conditions[0].status == "False"
    assert find_condition(original, "PodFailure") is None
