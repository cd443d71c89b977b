from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

API_GROUP = "etok.dev"
API_VERSION = "v1alpha1"
WORKSPACE_KIND = "Workspace"
WORKSPACE_PLURAL = "workspaces"
RUN_PLURAL = "runs"

APPROVAL_ANNOTATION_PREFIX = "approvals.etok.dev/"
STATE_SECRET_KEY = "tfstate"

RUN_PHASE_COMPLETED = "Completed"

NON_MUTATING_COMMANDS = frozenset({"plan"})

PHASE_READY = "Ready"
PHASE_INITIALIZING = "Initializing"
PHASE_UNKNOWN = "Unknown"
PHASE_ERROR = "Error"
PHASE_DELETING = "Deleting"

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"


class WorkspaceSpecError(ValueError):
    """Raised when a workspace object cannot be parsed."""


@dataclass(frozen=True)
class CacheSpec:
    size: str = "1Gi"
    storage_class: str | None = None


@dataclass(frozen=True)
class BackendSpec:
    type: str = "local"
    config: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkspaceSpec:
    service_account_name: str = ""
    secret_name: str = ""
    cache: CacheSpec = field(default_factory=CacheSpec)
    backend: BackendSpec = field(default_factory=BackendSpec)
    backup_bucket: str = ""
    timeout_client: str = "10s"


@dataclass(frozen=True)
class Condition:
    type: str
    status: str
    reason: str
    message: str = ""
    last_transition_time: str | None = None


@dataclass(frozen=True)
class Output:
    key: str
    value: str


@dataclass(frozen=True)
class WorkspaceStatus:
    conditions: tuple[Condition, ...] = ()
    phase: str = ""
    queue: tuple[str, ...] = ()
    active: str = ""
    outputs: tuple[Output, ...] = ()
    backup_serial: int = 0


@dataclass(frozen=True)
class Workspace:
    namespace: str
    name: str
    uid: str
    resource_version: str | None
    spec: WorkspaceSpec
    status: WorkspaceStatus
    annotations: dict[str, str] = field(default_factory=dict)
    finalizers: tuple[str, ...] = ()
    deletion_timestamp: str | None = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def pod_name(self) -> str:
        return f"workspace-{self.name}"

    @property
    def pvc_name(self) -> str:
        return self.name

    @property
    def variables_config_map_name(self) -> str:
        return f"workspace-{self.name}-variables"

    @property
    def state_secret_name(self) -> str:
        return f"tfstate-default-{self.name}"

    @property
    def backup_object_name(self) -> str:
        return f"{self.namespace}/{self.name}.yaml"

    def with_status(self, **changes: Any) -> Workspace:
        return replace(self, status=replace(self.status, **changes))


@dataclass(frozen=True)
class Run:
    namespace: str
    name: str
    command: str
    workspace: str
    phase: str

    @property
    def is_mutating(self) -> bool:
        return self.command not in NON_MUTATING_COMMANDS

    @property
    def is_completed(self) -> bool:
        return self.phase == RUN_PHASE_COMPLETED

    @property
    def approval_annotation_key(self) -> str:
        return f"{APPROVAL_ANNOTATION_PREFIX}{self.name}"


@dataclass(frozen=True)
class StateOutput:
    value: Any
    sensitive: bool = False


@dataclass(frozen=True)
class State:
    serial: int
    outputs: dict[str, StateOutput] = field(default_factory=dict)


def workspace_from_object(obj: dict[str, Any]) -> Workspace:
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    namespace = metadata.get("namespace")
    if not name or not namespace:
        raise WorkspaceSpecError("workspace object is missing metadata.name or metadata.namespace")

    raw_spec = obj.get("spec") or {}
    raw_status = obj.get("status") or {}
    if not isinstance(raw_spec, dict) or not isinstance(raw_status, dict):
        raise WorkspaceSpecError(f"workspace {namespace}/{name} has a malformed spec or status")

    raw_cache = raw_spec.get("cache") or {}
    raw_backend = raw_spec.get("backend") or {}
    try:
        spec = WorkspaceSpec(
            service_account_name=raw_spec.get("serviceAccountName") or "",
            secret_name=raw_spec.get("secretName") or "",
            cache=CacheSpec(
                size=raw_cache.get("size") or "1Gi",
                storage_class=raw_cache.get("storageClass") or None,
            ),
            backend=BackendSpec(
                type=raw_backend.get("type") or "local",
                config={str(key): str(value) for key, value in (raw_backend.get("config") or {}).items()},
            ),
            backup_bucket=raw_spec.get("backupBucket") or "",
            timeout_client=raw_spec.get("timeoutClient") or "10s",
        )
        status = WorkspaceStatus(
            conditions=tuple(
                Condition(
                    type=item["type"],
                    status=item["status"],
                    reason=item.get("reason") or "",
                    message=item.get("message") or "",
                    last_transition_time=item.get("lastTransitionTime"),
                )
                for item in raw_status.get("conditions") or []
            ),
            phase=raw_status.get("phase") or "",
            queue=tuple(raw_status.get("queue") or ()),
            active=raw_status.get("active") or "",
            outputs=tuple(
                Output(key=item["key"], value=item.get("value") or "") for item in raw_status.get("outputs") or []
            ),
            backup_serial=int(raw_status.get("backupSerial") or 0),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as error:
        raise WorkspaceSpecError(f"workspace {namespace}/{name} could not be parsed: {error}") from error

    return Workspace(
        namespace=namespace,
        name=name,
        uid=metadata.get("uid") or "",
        resource_version=metadata.get("resourceVersion"),
        spec=spec,
        status=status,
        annotations=dict(metadata.get("annotations") or {}),
        finalizers=tuple(metadata.get("finalizers") or ()),
        deletion_timestamp=metadata.get("deletionTimestamp"),
    )


def status_to_object(status: WorkspaceStatus) -> dict[str, Any]:
    rendered: dict[str, Any] = {
        "conditions": [
            {
                "type": condition.type,
                "status": condition.status,
                "reason": condition.reason,
                "message": condition.message,
                "lastTransitionTime": condition.last_transition_time,
            }
            for condition in status.conditions
        ],
        "queue": list(status.queue),
        "outputs": [{"key": output.key, "value": output.value} for output in status.outputs],
        "backupSerial": status.backup_serial,
    }
    if status.phase:
        rendered["phase"] = status.phase
    if status.active:
        rendered["active"] = status.active
    return rendered


def run_from_object(obj: dict[str, Any]) -> Run:
    metadata = obj.get("metadata") or {}
    run_status = obj.get("runStatus") or {}
    return Run(
        namespace=metadata.get("namespace") or "",
        name=metadata.get("name") or "",
        command=obj.get("command") or "",
        workspace=obj.get("workspace") or "",
        phase=run_status.get("phase") or "",
    )
