from __future__ import annotations

from kubernetes import client

from .k8s import workspace_owner_reference
from .models import API_GROUP, RUN_PLURAL, Workspace

CACHE_MOUNT_PATH = "/workspace"
BACKEND_OVERRIDE_FILE = "_backend_override.tf"
VARIABLES_FILE = "_etok_variables.tf"


def _labels(workspace: Workspace, component: str) -> dict[str, str]:
    return {
        "app.kubernetes.io/name": "terraform-workspace-operator",
        "app.kubernetes.io/component": component,
        "etok.dev/workspace": workspace.name,
    }


def _metadata(workspace: Workspace, name: str, component: str) -> client.V1ObjectMeta:
    return client.V1ObjectMeta(
        name=name,
        namespace=workspace.namespace,
        labels=_labels(workspace, component),
        owner_references=[workspace_owner_reference(workspace, controller=True)],
    )


def build_variables_config_map(workspace: Workspace) -> client.V1ConfigMap:
    backend = f'terraform {{\n  backend "{workspace.spec.backend.type}" {{}}\n}}\n'
    variables = (
        'variable "namespace" {}\n'
        'variable "workspace" {}\n'
    )
    return client.V1ConfigMap(
        metadata=_metadata(workspace, workspace.variables_config_map_name, "variables"),
        data={
            BACKEND_OVERRIDE_FILE: backend,
            VARIABLES_FILE: variables,
        },
    )


def build_role(workspace: Workspace) -> client.V1Role:
    return client.V1Role(
        metadata=_metadata(workspace, workspace.name, "rbac"),
        rules=[
            client.V1PolicyRule(api_groups=[API_GROUP], resources=[RUN_PLURAL], verbs=["get"]),
            client.V1PolicyRule(api_groups=[""], resources=["configmaps"], verbs=["create"]),
            client.V1PolicyRule(
                api_groups=[""],
                resources=["secrets"],
                verbs=["get", "list", "watch", "create", "update", "patch", "delete"],
            ),
            client.V1PolicyRule(
                api_groups=["coordination.k8s.io"],
                resources=["leases"],
                verbs=["get", "list", "watch", "create", "update", "patch", "delete"],
            ),
        ],
    )


def build_role_binding(workspace: Workspace) -> client.V1RoleBinding:
    return client.V1RoleBinding(
        metadata=_metadata(workspace, workspace.name, "rbac"),
        role_ref=client.V1RoleRef(api_group="rbac.authorization.k8s.io", kind="Role", name=workspace.name),
        subjects=[
            client.RbacV1Subject(
                kind="ServiceAccount",
                name=workspace.spec.service_account_name or "default",
                namespace=workspace.namespace,
            )
        ],
    )


def build_cache_pvc(workspace: Workspace) -> client.V1PersistentVolumeClaim:
    return client.V1PersistentVolumeClaim(
        metadata=_metadata(workspace, workspace.pvc_name, "cache"),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=["ReadWriteOnce"],
            storage_class_name=workspace.spec.cache.storage_class,
            resources=client.V1VolumeResourceRequirements(requests={"storage": workspace.spec.cache.size}),
        ),
    )


def build_workspace_pod(workspace: Workspace, image: str) -> client.V1Pod:
    backend_flags = " ".join(
        f"-backend-config={key}={value}" for key, value in sorted(workspace.spec.backend.config.items())
    )
    init_command = f"terraform init -input=false {backend_flags}".strip()

    env_from = []
    if workspace.spec.secret_name:
        env_from.append(
            client.V1EnvFromSource(secret_ref=client.V1SecretEnvSource(name=workspace.spec.secret_name, optional=True))
        )

    volume_mounts = [
        client.V1VolumeMount(name="cache", mount_path=CACHE_MOUNT_PATH),
        client.V1VolumeMount(
            name="variables",
            mount_path=f"{CACHE_MOUNT_PATH}/{BACKEND_OVERRIDE_FILE}",
            sub_path=BACKEND_OVERRIDE_FILE,
        ),
        client.V1VolumeMount(
            name="variables",
            mount_path=f"{CACHE_MOUNT_PATH}/{VARIABLES_FILE}",
            sub_path=VARIABLES_FILE,
        ),
    ]
    environment = [
        client.V1EnvVar(name="TF_VAR_namespace", value=workspace.namespace),
        client.V1EnvVar(name="TF_VAR_workspace", value=workspace.name),
        client.V1EnvVar(name="TF_IN_AUTOMATION", value="true"),
    ]

    return client.V1Pod(
        metadata=_metadata(workspace, workspace.pod_name, "workspace"),
        spec=client.V1PodSpec(
            restart_policy="Never",
            service_account_name=workspace.spec.service_account_name or None,
            init_containers=[
                client.V1Container(
                    name="installer",
                    image=image,
                    command=["sh", "-c", init_command],
                    working_dir=CACHE_MOUNT_PATH,
                    env=environment,
                    env_from=env_from or None,
                    volume_mounts=volume_mounts,
                )
            ],
            containers=[
                client.V1Container(
                    name="idle",
                    image=image,
                    command=["sh", "-c", "trap 'exit 0' TERM; while true; do sleep 5; done"],
                    working_dir=CACHE_MOUNT_PATH,
                    volume_mounts=[client.V1VolumeMount(name="cache", mount_path=CACHE_MOUNT_PATH)],
                )
            ],
            volumes=[
                client.V1Volume(
                    name="cache",
                    persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(claim_name=workspace.pvc_name),
                ),
                client.V1Volume(
                    name="variables",
                    config_map=client.V1ConfigMapVolumeSource(name=workspace.variables_config_map_name),
                ),
            ],
        ),
    )
