"""
Task Service — task CRUD plus the two operations that drive progress rollup.

update_progress() and complete_task() mutate a task, append one progress
history entry, commit, and then hand the task's parent to the rollup
engine. The rollup result travels back with the task in a MutationResult;
ancestor failures show up there as warnings while the leaf change stands.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from tasktrack.db.models import STATUS_COMPLETED, STATUS_IN_PROGRESS, Task
from tasktrack.db.repository import UNSET, TaskRepository
from tasktrack.engine.context import require_execution_context
from tasktrack.engine.errors import ValidationError
from tasktrack.engine.logging import log, log_progress_event, log_record_operation
from tasktrack.engine.rollup import ProgressRollupEngine, RollupResult
from tasktrack.engine.security import AccessPolicy, AllowAllPolicy, authorize
from tasktrack.services.schemas import TaskCreate, TaskUpdate, truthy_changes, validate_input

logger = logging.getLogger("tasktrack.services.tasks")

COMPLETION_NOTE = "Task completed"

_AMOUNT_RE = re.compile(r"^\s*([+-]?\d+)")


def parse_amount(amount: Any) -> int:
    """
    Parse a signed progress delta: 10, -5, "+10", "-5".

    Strings are read up to the first non-digit ("15%" -> 15); floats are
    truncated toward zero.
    """
    if isinstance(amount, bool):
        raise ValidationError("Invalid amount format", amount=amount)
    if isinstance(amount, int):
        return amount
    if isinstance(amount, float):
        if not math.isfinite(amount):
            raise ValidationError("Invalid amount format", amount=amount)
        return int(amount)
    if isinstance(amount, str):
        match = _AMOUNT_RE.match(amount)
        if match:
            return int(match.group(1))
    raise ValidationError("Invalid amount format", amount=amount)


def format_delta_note(amount: int) -> str:
    """Default history note for a delta: "+10%", "-5%", "0%"."""
    return f"+{amount}%" if amount > 0 else f"{amount}%"


def clamp_progress(value: int) -> int:
    return max(0, min(100, value))


@dataclass
class MutationResult:
    """A committed task mutation plus the outcome of the rollup it triggered."""

    task: Task
    rollup: RollupResult

    @property
    def warnings(self) -> List[str]:
        return self.rollup.warnings

    def to_dict(self) -> Dict[str, Any]:
        return {"task": self.task.to_dict(), "rollup": self.rollup.to_dict()}


class TaskService:
    """
    Task operations. Every call requires an ExecutionContext and passes
    the access policy before touching data.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        engine: ProgressRollupEngine,
        policy: Optional[AccessPolicy] = None,
        enforce_leaf_on_complete: bool = True,
    ):
        self._tasks = tasks
        self._engine = engine
        self._policy = policy or AllowAllPolicy()
        self._enforce_leaf_on_complete = enforce_leaf_on_complete

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_task(self, data: Any) -> Task:
        """Create a task. Its level is one below its parent, or 0 without one."""
        ctx = require_execution_context()
        authorize(self._policy, ctx, "tasks.create")
        payload = validate_input(TaskCreate, data, "Invalid task data")

        level = 0
        if payload.parent_task_id is not None:
            parent = self._tasks.find_by_id(payload.parent_task_id)
            if parent is not None:
                level = parent.level + 1

        task = self._tasks.create(
            created_by=ctx.user_id,
            level=level,
            **payload.model_dump(),
        )
        logger.info("Created task %s (parent=%s, level=%s)", task.id, task.parent_task_id, level)
        log(log_record_operation("create", "tasks", task.id, ctx.execution_id, ctx.user_id))
        return task

    def list_tasks(
        self,
        project_id: Optional[int] = None,
        assigned_to: Optional[int] = None,
        created_by: Optional[int] = None,
        parent_task_id: Any = UNSET,
    ) -> List[Task]:
        """
        Tasks the current user is assigned to or created.
        Pass parent_task_id=None for root tasks only.
        """
        ctx = require_execution_context()
        authorize(self._policy, ctx, "tasks.view")
        return self._tasks.list_for_user(
            ctx.user_id,
            project_id=project_id,
            assigned_to=assigned_to,
            created_by=created_by,
            parent_task_id=parent_task_id,
        )

    def get_task(self, task_id: int) -> Task:
        ctx = require_execution_context()
        authorize(self._policy, ctx, "tasks.view", task_id)
        return self._tasks.get(task_id)

    def get_subtree(self, task_id: int) -> Dict[str, Any]:
        """Nested view of a task and all its descendants."""
        ctx = require_execution_context()
        authorize(self._policy, ctx, "tasks.view", task_id)
        root = self._tasks.get(task_id)
        return self._subtree(root, {root.id})

    def _subtree(self, task: Task, seen: Set[int]) -> Dict[str, Any]:
        node = {
            "id": task.id,
            "title": task.title,
            "status": task.status,
            "progress": task.progress,
            "weight": task.weight,
            "children": [],
        }
        for child in self._tasks.find_children(task.id):
            if child.id in seen:
                continue
            seen.add(child.id)
            node["children"].append(self._subtree(child, seen))
        return node

    def update_task(self, task_id: int, changes: Any) -> Task:
        """Update descriptive fields. Empty or missing values keep the current value."""
        ctx = require_execution_context()
        authorize(self._policy, ctx, "tasks.update", task_id)
        self._tasks.get(task_id)
        fields = truthy_changes(validate_input(TaskUpdate, changes, "Invalid task data"))
        task = self._tasks.update_fields(task_id, **fields)
        log(log_record_operation(
            "update", "tasks", task_id, ctx.execution_id, ctx.user_id, sorted(fields),
        ))
        return task

    def delete_task(self, task_id: int) -> None:
        """Delete a task. Children keep their (now dangling) parent reference."""
        ctx = require_execution_context()
        authorize(self._policy, ctx, "tasks.delete", task_id)
        self._tasks.get(task_id)
        self._tasks.delete(task_id)
        logger.info("Deleted task %s", task_id)
        log(log_record_operation("delete", "tasks", task_id, ctx.execution_id, ctx.user_id))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_task(self, task_id: int) -> Task:
        ctx = require_execution_context()
        authorize(self._policy, ctx, "tasks.progress", task_id)
        self._tasks.get(task_id)
        self._require_leaf(task_id, "Cannot start task with subtasks. Progress is auto-calculated.")
        task = self._tasks.update_fields(
            task_id,
            started_at=datetime.now(timezone.utc),
            status=STATUS_IN_PROGRESS,
        )
        log(log_record_operation(
            "update", "tasks", task_id, ctx.execution_id, ctx.user_id, ["started_at", "status"],
        ))
        return task

    def update_progress(self, task_id: int, amount: Any, note: Optional[str] = None) -> MutationResult:
        """
        Move a leaf task's progress by a signed delta, clamped to [0, 100].

        Raises NotFoundError, ValidationError (task has subtasks, bad amount)
        or PersistenceError before anything is written. After the leaf commit
        the rollup runs and its failures become warnings.
        """
        ctx = require_execution_context()
        authorize(self._policy, ctx, "tasks.progress", task_id)
        task = self._tasks.get(task_id)
        self._require_leaf(task_id, "Cannot manually update progress for task with subtasks.")
        delta = parse_amount(amount)

        previous = task.progress
        new_progress = clamp_progress(previous + delta)
        note = note or format_delta_note(delta)

        task = self._tasks.record_progress(task_id, new_progress, note)
        logger.info("Task %s progress %s -> %s (%s)", task_id, previous, new_progress, note)
        log(log_progress_event(
            "progress_updated", task_id, new_progress, note,
            execution_id=ctx.execution_id, user_id=ctx.user_id, previous=previous,
        ))

        rollup = self._rollup(task, ctx.execution_id)
        return MutationResult(task=task, rollup=rollup)

    def complete_task(self, task_id: int) -> MutationResult:
        """Force progress to 100 and status to Completed, then roll up."""
        ctx = require_execution_context()
        authorize(self._policy, ctx, "tasks.progress", task_id)
        task = self._tasks.get(task_id)
        if self._enforce_leaf_on_complete:
            self._require_leaf(task_id, "Cannot complete task with subtasks. Progress is auto-calculated.")

        previous = task.progress
        task = self._tasks.record_progress(
            task_id,
            100,
            COMPLETION_NOTE,
            status=STATUS_COMPLETED,
            completed_at=datetime.now(timezone.utc),
        )
        logger.info("Task %s completed", task_id)
        log(log_progress_event(
            "task_completed", task_id, 100, COMPLETION_NOTE,
            execution_id=ctx.execution_id, user_id=ctx.user_id, previous=previous,
        ))

        rollup = self._rollup(task, ctx.execution_id)
        return MutationResult(task=task, rollup=rollup)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_leaf(self, task_id: int, message: str) -> None:
        child_count = self._tasks.count_children(task_id)
        if child_count > 0:
            raise ValidationError(
                message,
                task_id=task_id,
                reason="not_a_leaf",
                child_count=child_count,
            )

    def _rollup(self, task: Task, execution_id: Optional[str]) -> RollupResult:
        if task.parent_task_id is None:
            return RollupResult(origin_task_id=task.id)
        result = self._engine.recompute_ancestors(
            task.parent_task_id,
            origin_task_id=task.id,
            execution_id=execution_id,
        )
        if not result.ok:
            logger.warning(
                "Task %s committed but ancestor rollup was incomplete: %s",
                task.id, "; ".join(result.warnings),
            )
        return result
