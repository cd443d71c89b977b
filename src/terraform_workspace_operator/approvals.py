from __future__ import annotations

from collections.abc import Iterable, Mapping

from .models import APPROVAL_ANNOTATION_PREFIX, Run


def has_approval_annotations(annotations: Mapping[str, str] | None) -> bool:
    return any(key.startswith(APPROVAL_ANNOTATION_PREFIX) for key in annotations or {})


def prune_approvals(annotations: Mapping[str, str] | None, runs: Iterable[Run]) -> dict[str, str] | None:
    """Drop approval annotations that belong to completed or deleted runs.

    Returns None when there are no approval annotations to reconcile, in which
    case the caller must leave the annotations untouched.
    """
    if not annotations or not has_approval_annotations(annotations):
        return None

    pruned = {key: value for key, value in annotations.items() if not key.startswith(APPROVAL_ANNOTATION_PREFIX)}
    for run in runs:
        if run.is_completed:
            continue
        key = run.approval_annotation_key
        if key in annotations:
            pruned[key] = annotations[key]
    return pruned
