from __future__ import annotations

from collections.abc import Iterable, Sequence

from .models import Run


def compute_queue(existing_queue: Sequence[str], runs: Iterable[Run], workspace_name: str) -> list[str]:
    """Return the workspace's run queue for the current set of runs.

    Entries already queued keep their position unless their run has gone away
    or completed. Newly discovered mutating runs for the workspace are appended
    in the order they are listed. Plan runs never occupy the queue.
    """
    runs = list(runs)
    live_runs = {run.name: run for run in runs}

    queue: list[str] = []
    for name in existing_queue:
        run = live_runs.get(name)
        if run is None or run.is_completed or not run.is_mutating:
            continue
        if name not in queue:
            queue.append(name)

    for run in runs:
        if run.workspace != workspace_name:
            continue
        if not run.is_mutating or run.is_completed:
            continue
        if run.name in queue:
            continue
        queue.append(run.name)

    return queue


def queue_position(queue: Sequence[str], active: str, run_name: str) -> int | None:
    """Position of a run relative to the front of the queue.

    Returns 0 for the active run, 1 for the first queued run and so on, or
    None when the run is neither active nor queued.
    """
    if active and active == run_name:
        return 0
    try:
        return list(queue).index(run_name) + 1
    except ValueError:
        return None
