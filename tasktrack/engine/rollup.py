"""
Progress Rollup Engine — derive ancestor progress from leaf changes.

A parent's progress is the weighted average of its direct children's
progress. When a leaf changes, recompute_ancestors() walks from the leaf's
parent up to the root, rewriting each ancestor in turn. Derived values are
overwritten in place; they never get progress history entries.

The walk is best effort: the leaf mutation that triggered it has already
committed, so a failure part-way up is logged and reported as a warning
on the RollupResult instead of being raised.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol

from tasktrack.engine.errors import HierarchyError, TaskTrackError
from tasktrack.engine.logging import log, log_rollup_event

logger = logging.getLogger("tasktrack.engine.rollup")

DEFAULT_MAX_DEPTH = 100


class WeightedChild(Protocol):
    progress: int
    weight: float


class TaskStore(Protocol):
    """Data-access collaborator used by the engine."""

    def find_children(self, parent_id: int) -> List[Any]: ...

    def update_progress(self, task_id: int, value: int) -> None: ...

    def find_by_id(self, task_id: int) -> Optional[Any]: ...


@dataclass
class RollupUpdate:
    task_id: int
    progress: int


@dataclass
class RollupResult:
    """Outcome of one upward walk."""

    origin_task_id: Optional[int] = None
    updates: List[RollupUpdate] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings

    @property
    def updated_ids(self) -> List[int]:
        return [u.task_id for u in self.updates]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin_task_id": self.origin_task_id,
            "updates": [{"task_id": u.task_id, "progress": u.progress} for u in self.updates],
            "warnings": list(self.warnings),
        }


def round_half_up(value: float) -> int:
    """Round to the nearest integer, .5 going up (66.5 -> 67)."""
    return int(math.floor(value + 0.5))


def compute_weighted_progress(children: Iterable[WeightedChild]) -> int:
    """
    round(sum(progress * weight) / sum(weight)), or 0 when the total weight is 0.

    Weights are scaled by a power of two so the sums cannot overflow; the
    scaling is exact, and fsum keeps the result independent of child order.

    Raises:
        ValueError: a weight is infinite or NaN.
    """
    children = list(children)
    weights = [float(c.weight) for c in children]
    if not all(math.isfinite(w) for w in weights):
        raise ValueError("Task weights must be finite")
    top = max(weights, default=0.0)
    if top <= 0:
        return 0
    _, exponent = math.frexp(top)
    scaled = [math.ldexp(w, -exponent) for w in weights]
    total_weight = math.fsum(scaled)
    if total_weight <= 0:
        return 0
    total_weighted = math.fsum(c.progress * w for c, w in zip(children, scaled))
    return max(0, min(100, round_half_up(total_weighted / total_weight)))


class ProgressRollupEngine:
    """
    Recomputes ancestor progress after a leaf mutation.

    Args:
        store:     Data-access collaborator (see TaskStore).
        max_depth: Upper bound on ancestors visited in one walk.
    """

    def __init__(self, store: TaskStore, max_depth: int = DEFAULT_MAX_DEPTH):
        self._store = store
        self._max_depth = max_depth

    def recompute_ancestors(
        self,
        parent_id: Optional[int],
        origin_task_id: Optional[int] = None,
        execution_id: Optional[str] = None,
    ) -> RollupResult:
        """
        Walk from ``parent_id`` to the root, recomputing each task's progress.

        Stops when a task has no children (no-op for that task) or no parent.
        Never raises TaskTrackError or arithmetic errors; failures end the
        walk and land in ``RollupResult.warnings``.
        """
        result = RollupResult(origin_task_id=origin_task_id)
        if parent_id is None:
            return result

        start = time.perf_counter()
        path: List[int] = []
        current: Optional[int] = parent_id

        try:
            while current is not None:
                if current in path:
                    raise HierarchyError(
                        f"Cycle in task hierarchy at task {current}",
                        task_id=current,
                        path=path + [current],
                        execution_id=execution_id,
                    )
                if len(path) >= self._max_depth:
                    raise HierarchyError(
                        f"Rollup exceeded max depth {self._max_depth}",
                        task_id=current,
                        path=list(path),
                        execution_id=execution_id,
                    )
                path.append(current)

                children = self._store.find_children(current)
                if not children:
                    break

                progress = compute_weighted_progress(children)
                self._store.update_progress(current, progress)
                result.updates.append(RollupUpdate(task_id=current, progress=progress))
                logger.debug("Rolled up task %s to %s%% from %d children", current, progress, len(children))

                task = self._store.find_by_id(current)
                current = task.parent_task_id if task is not None else None

        except TaskTrackError as e:
            logger.error(
                "Rollup from task %s aborted at task %s: %s",
                origin_task_id, current, e.message,
            )
            result.warnings.append(f"{e.error_type}: {e.message}")
        except (ArithmeticError, ValueError) as e:
            logger.error(
                "Rollup from task %s aborted at task %s: %s",
                origin_task_id, current, e,
            )
            result.warnings.append(f"{type(e).__name__}: {e}")

        duration_ms = round((time.perf_counter() - start) * 1000, 3)
        log(log_rollup_event(
            origin_task_id=origin_task_id,
            updates=result.to_dict()["updates"],
            warnings=result.warnings,
            duration_ms=duration_ms,
            execution_id=execution_id,
        ))
        return result
