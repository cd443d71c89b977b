from __future__ import annotations

from collections.abc import Iterable

from .conditions import PENDING_REASON
from .models import (
    CONDITION_FALSE,
    CONDITION_TRUE,
    CONDITION_UNKNOWN,
    PHASE_ERROR,
    PHASE_INITIALIZING,
    PHASE_READY,
    PHASE_UNKNOWN,
    Condition,
    Workspace,
)


def aggregate_phase(conditions: Iterable[Condition]) -> str:
    """Summarise failure conditions into a single workspace phase.

    Conditions are scanned in order. The first True condition yields Error and
    ends the scan, so later conditions are never inspected. Otherwise an
    Unknown condition wins over a pending False one, and a workspace with
    neither is Ready.
    """
    phase = PHASE_READY
    for condition in conditions:
        if condition.status == CONDITION_TRUE:
            return PHASE_ERROR
        if condition.status == CONDITION_FALSE:
            if condition.reason == PENDING_REASON and phase != PHASE_UNKNOWN:
                phase = PHASE_INITIALIZING
        elif condition.status == CONDITION_UNKNOWN:
            phase = PHASE_UNKNOWN
    return phase


def manage_phase(workspace: Workspace) -> Workspace:
    return workspace.with_status(phase=aggregate_phase(workspace.status.conditions))
