from __future__ import annotations

from datetime import UTC, datetime

from .models import CONDITION_FALSE, CONDITION_TRUE, CONDITION_UNKNOWN, Condition, Workspace

# Condition types. A condition with status True reports a failure.
CACHE_FAILURE = "CacheFailure"
POD_FAILURE = "PodFailure"
BACKUP_FAILURE = "BackupFailure"
RESTORE_FAILURE = "RestoreFailure"

PENDING_REASON = "Pending"
CACHE_BOUND_REASON = "CacheBound"
CACHE_LOST_REASON = "CacheLost"
CLIENT_CREATE_REASON = "ClientCreateFailed"
BUCKET_NOT_FOUND_REASON = "BucketNotFound"
UNEXPECTED_ERROR_REASON = "UnexpectedError"
NOTHING_TO_RESTORE_REASON = "NothingToRestore"
RESTORE_SUCCESSFUL_REASON = "RestoreSuccessful"
BACKUP_SUCCESSFUL_REASON = "BackupSuccessful"


def set_condition(workspace: Workspace, condition: Condition) -> Workspace:
    """Insert or replace the condition with the same type, keeping list order.

    The transition time only moves when the status value changes.
    """
    conditions = list(workspace.status.conditions)
    for index, existing in enumerate(conditions):
        if existing.type != condition.type:
            continue
        transition_time = existing.last_transition_time
        if existing.status != condition.status or transition_time is None:
            transition_time = _utc_now_iso()
        conditions[index] = Condition(
            type=condition.type,
            status=condition.status,
            reason=condition.reason,
            message=condition.message,
            last_transition_time=transition_time,
        )
        return workspace.with_status(conditions=tuple(conditions))

    conditions.append(
        Condition(
            type=condition.type,
            status=condition.status,
            reason=condition.reason,
            message=condition.message,
            last_transition_time=_utc_now_iso(),
        )
    )
    return workspace.with_status(conditions=tuple(conditions))


def condition_ok(workspace: Workspace, condition_type: str, reason: str, message: str = "") -> Workspace:
    return set_condition(workspace, Condition(type=condition_type, status=CONDITION_FALSE, reason=reason, message=message))


def condition_failure(workspace: Workspace, condition_type: str, reason: str, message: str = "") -> Workspace:
    return set_condition(workspace, Condition(type=condition_type, status=CONDITION_TRUE, reason=reason, message=message))


def condition_unknown(workspace: Workspace, condition_type: str, reason: str, message: str = "") -> Workspace:
    return set_condition(
        workspace,
        Condition(type=condition_type, status=CONDITION_UNKNOWN, reason=reason, message=message),
    )


def find_condition(workspace: Workspace, condition_type: str) -> Condition | None:
    for condition in workspace.status.conditions:
        if condition.type == condition_type:
            return condition
    return None


def _utc_now_iso() -> str:
    return datetime.now(tz=UTC).replace(microsecond=0).isoformat()
