from __future__ import annotations

from dataclasses import dataclass
import logging
import os
import sys


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class OperatorConfig:
    namespace: str = os.getenv("TWO_NAMESPACE", "")
    workspace_image: str = os.getenv("TWO_WORKSPACE_IMAGE", "hashicorp/terraform:1.9")
    request_timeout_seconds: float = float(os.getenv("TWO_REQUEST_TIMEOUT_SECONDS", "30"))
    retry_backoff_seconds: float = float(os.getenv("TWO_RETRY_BACKOFF_SECONDS", "10"))
    resync_interval_seconds: float = float(os.getenv("TWO_RESYNC_INTERVAL_SECONDS", "30"))
    log_level: str = os.getenv("TWO_LOG_LEVEL", "INFO")
    kubeconfig_path: str | None = os.getenv("TWO_KUBECONFIG") or None
    context: str | None = os.getenv("TWO_CONTEXT") or None
    in_cluster: bool = _env_flag("TWO_IN_CLUSTER")
    storage_project: str | None = os.getenv("TWO_STORAGE_PROJECT") or None


def validate_config(config: OperatorConfig) -> None:
    if config.request_timeout_seconds <= 0:
        raise ValueError("request_timeout_seconds must be positive")
    if config.retry_backoff_seconds <= 0:
        raise ValueError("retry_backoff_seconds must be positive")
    if config.resync_interval_seconds <= 0:
        raise ValueError("resync_interval_seconds must be positive")
    if not config.workspace_image.strip():
        raise ValueError("workspace_image is required")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        force=True,
    )
    # The Kubernetes client logs every request at DEBUG through urllib3.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
