from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Sequence

from .models import Workspace

LOGGER = logging.getLogger(__name__)

StatusStep = Callable[[Workspace], Workspace]


class StepFailure(RuntimeError):
    """Raised by a status step that recorded a failure on the workspace.

    The workspace carried by the error holds the status computed so far,
    including the failure condition, so it can still be persisted.
    """

    def __init__(self, *, step: str, workspace: Workspace, reason: str) -> None:
        normalized_reason = reason.strip() or "unknown error"
        super().__init__(f"{step} step failed: {normalized_reason}")
        self.step = step
        self.workspace = workspace


@dataclass(frozen=True)
class PipelineResult:
    workspace: Workspace
    error: Exception | None = None
    failed_step: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def run_status_pipeline(workspace: Workspace, steps: Sequence[tuple[str, StatusStep]]) -> PipelineResult:
    """Apply status steps in order, stopping at the first failure."""
    for name, step in steps:
        try:
            workspace = step(workspace)
        except StepFailure as failure:
            LOGGER.warning("Workspace %s: %s", workspace.key, failure)
            return PipelineResult(workspace=failure.workspace, error=failure, failed_step=name)
        except Exception as error:  # pylint: disable=broad-except
            LOGGER.warning("Workspace %s: %s step failed: %s", workspace.key, name, _error_message(error))
            return PipelineResult(workspace=workspace, error=error, failed_step=name)
    return PipelineResult(workspace=workspace)


def _error_message(error: Exception) -> str:
    message = str(error).strip()
    return message or error.__class__.__name__
