from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from kubernetes.client import ApiException

from .k8s import KubernetesClients, format_api_error, list_workspace_objects
from .reconciler import ACTION_FATAL, ReconcileResult, WorkspaceReconciler

LOGGER = logging.getLogger(__name__)


class PollingController:
    """Drives reconciles by listing workspaces on a fixed interval.

    Each workspace is reconciled when it falls due: after the resync interval
    on success, or after the delay its last result asked for. A workspace that
    failed fatally waits until its resourceVersion changes.
    """

    def __init__(
        self,
        *,
        reconciler: WorkspaceReconciler,
        clients: KubernetesClients,
        namespace: str | None,
        resync_interval_seconds: float,
        request_timeout: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.reconciler = reconciler
        self.clients = clients
        self.namespace = namespace or None
        self.resync_interval_seconds = resync_interval_seconds
        self.request_timeout = request_timeout
        self.clock = clock
        self._next_due: dict[tuple[str, str], float] = {}
        self._fatal_versions: dict[tuple[str, str], str | None] = {}

    def run_once(self) -> dict[tuple[str, str], ReconcileResult]:
        objects = list_workspace_objects(
            self.clients,
            namespace=self.namespace,
            request_timeout=self.request_timeout,
        )
        now = self.clock()
        seen: set[tuple[str, str]] = set()
        results: dict[tuple[str, str], ReconcileResult] = {}

        for obj in objects:
            metadata = obj.get("metadata") or {}
            key = (metadata.get("namespace") or "", metadata.get("name") or "")
            seen.add(key)
            resource_version = metadata.get("resourceVersion")

            if key in self._fatal_versions:
                if self._fatal_versions[key] == resource_version:
                    continue
                del self._fatal_versions[key]
                self._next_due.pop(key, None)

            if self._next_due.get(key, 0.0) > now:
                continue

            result = self.reconciler.reconcile(*key)
            results[key] = result
            if result.action == ACTION_FATAL:
                self._fatal_versions[key] = resource_version
                continue
            self._next_due[key] = now + self._delay_for(result)

        for key in set(self._next_due) - seen:
            del self._next_due[key]
        for key in set(self._fatal_versions) - seen:
            del self._fatal_versions[key]
        return results

    def run_forever(self, stop: threading.Event | None = None, poll_interval_seconds: float = 1.0) -> None:
        stop = stop or threading.Event()
        LOGGER.info(
            "Watching workspaces in %s every %ss",
            self.namespace or "all namespaces",
            self.resync_interval_seconds,
        )
        while not stop.is_set():
            try:
                self.run_once()
            except ApiException as error:
                LOGGER.error(format_api_error(operation="list workspaces", error=error))
            except Exception as error:  # pylint: disable=broad-except
                LOGGER.exception("Workspace resync failed, retrying: %s", error)
            stop.wait(poll_interval_seconds)

    def _delay_for(self, result: ReconcileResult) -> float:
        if result.requeue and result.retry_after_seconds is not None:
            return result.retry_after_seconds
        return self.resync_interval_seconds
