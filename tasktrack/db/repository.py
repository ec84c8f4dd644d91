"""
TaskTrack Repositories — data access for tasks, projects and users.

Each call opens its own session from the factory handed in at construction
and commits before returning, so a caller never holds a transaction open
across several calls. SQLAlchemy failures are re-raised as PersistenceError.

TaskRepository also implements the collaborator contract consumed by the
rollup engine: find_children(), update_progress(), find_by_id().
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterable, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tasktrack.db.models import ProgressEntry, Project, Task, User
from tasktrack.db.session import session_scope
from tasktrack.engine.errors import NotFoundError, PersistenceError

logger = logging.getLogger("tasktrack.db.repository")


class _Unset:
    """Marker for "filter not given", distinct from an explicit None."""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


class _Repository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _scope(self, operation: str, **context: Any) -> Generator[Session, None, None]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("Database error during %s: %s", operation, e)
            raise PersistenceError(
                f"Database error during {operation}: {e}",
                operation=operation,
                **context,
            ) from e


class TaskRepository(_Repository):
    """Task data access."""

    # -- rollup collaborator contract ---------------------------------------

    def find_by_id(self, task_id: int) -> Optional[Task]:
        with self._scope("find_by_id", task_id=task_id) as session:
            return session.get(Task, task_id)

    def find_children(self, parent_id: int) -> List[Task]:
        """Direct children of ``parent_id``, ordered by id."""
        with self._scope("find_children", task_id=parent_id) as session:
            stmt = select(Task).where(Task.parent_task_id == parent_id).order_by(Task.id)
            return list(session.scalars(stmt))

    def update_progress(self, task_id: int, value: int) -> None:
        """Overwrite a task's progress without touching its history."""
        with self._scope("update_progress", task_id=task_id) as session:
            task = session.get(Task, task_id)
            if task is None:
                raise NotFoundError(
                    "Task not found", entity="task", entity_id=task_id, task_id=task_id,
                )
            task.progress = value

    # -- general access -----------------------------------------------------

    def get(self, task_id: int) -> Task:
        task = self.find_by_id(task_id)
        if task is None:
            raise NotFoundError("Task not found", entity="task", entity_id=task_id, task_id=task_id)
        return task

    def count_children(self, task_id: int) -> int:
        with self._scope("count_children", task_id=task_id) as session:
            stmt = select(func.count()).select_from(Task).where(Task.parent_task_id == task_id)
            return session.scalar(stmt) or 0

    def create(self, **fields: Any) -> Task:
        with self._scope("create_task") as session:
            task = Task(**fields)
            session.add(task)
            session.flush()
            session.refresh(task)
            return task

    def update_fields(self, task_id: int, **fields: Any) -> Task:
        with self._scope("update_task", task_id=task_id) as session:
            task = session.get(Task, task_id)
            if task is None:
                raise NotFoundError("Task not found", entity="task", entity_id=task_id, task_id=task_id)
            for key, value in fields.items():
                setattr(task, key, value)
            session.flush()
            session.refresh(task)
            return task

    def record_progress(self, task_id: int, progress: int, note: str, **fields: Any) -> Task:
        """
        Set progress (plus any extra fields) and append one history entry,
        in a single transaction.
        """
        with self._scope("record_progress", task_id=task_id) as session:
            task = session.get(Task, task_id)
            if task is None:
                raise NotFoundError("Task not found", entity="task", entity_id=task_id, task_id=task_id)
            task.progress = progress
            for key, value in fields.items():
                setattr(task, key, value)
            task.progress_history.append(ProgressEntry(progress=progress, note=note))
            session.flush()
            session.refresh(task)
            return task

    def delete(self, task_id: int) -> bool:
        with self._scope("delete_task", task_id=task_id) as session:
            task = session.get(Task, task_id)
            if task is None:
                return False
            session.delete(task)
            return True

    def list_for_user(
        self,
        user_id: int,
        project_id: Optional[int] = None,
        assigned_to: Optional[int] = None,
        created_by: Optional[int] = None,
        parent_task_id: Any = UNSET,
    ) -> List[Task]:
        """
        Tasks the user is assigned to or created, narrowed by optional filters.
        ``parent_task_id=None`` selects root tasks; UNSET skips the filter.
        """
        with self._scope("list_tasks") as session:
            stmt = select(Task).where(
                or_(Task.assigned_to == user_id, Task.created_by == user_id)
            )
            if project_id is not None:
                stmt = stmt.where(Task.project_id == project_id)
            if assigned_to is not None:
                stmt = stmt.where(Task.assigned_to == assigned_to)
            if created_by is not None:
                stmt = stmt.where(Task.created_by == created_by)
            if parent_task_id is None:
                stmt = stmt.where(Task.parent_task_id.is_(None))
            elif parent_task_id is not UNSET:
                stmt = stmt.where(Task.parent_task_id == parent_task_id)
            return list(session.scalars(stmt.order_by(Task.id)))

    def project_ids_for_user(self, user_id: int) -> List[int]:
        """Distinct project ids of tasks the user is assigned to or created."""
        with self._scope("project_ids_for_user") as session:
            stmt = (
                select(Task.project_id)
                .where(or_(Task.assigned_to == user_id, Task.created_by == user_id))
                .where(Task.project_id.is_not(None))
                .distinct()
            )
            return list(session.scalars(stmt))


class ProjectRepository(_Repository):
    """Project data access."""

    def find_by_id(self, project_id: int) -> Optional[Project]:
        with self._scope("find_project", project_id=project_id) as session:
            return session.get(Project, project_id)

    def get(self, project_id: int) -> Project:
        project = self.find_by_id(project_id)
        if project is None:
            raise NotFoundError("Project not found", entity="project", entity_id=project_id)
        return project

    def create(self, **fields: Any) -> Project:
        with self._scope("create_project") as session:
            project = Project(**fields)
            session.add(project)
            session.flush()
            session.refresh(project)
            return project

    def list_created_by(self, user_id: int) -> List[Project]:
        with self._scope("list_projects") as session:
            stmt = select(Project).where(Project.created_by == user_id).order_by(Project.id)
            return list(session.scalars(stmt))

    def list_by_ids(self, ids: Iterable[int]) -> List[Project]:
        ids = list(ids)
        if not ids:
            return []
        with self._scope("list_projects") as session:
            stmt = select(Project).where(Project.id.in_(ids)).order_by(Project.id)
            return list(session.scalars(stmt))

    def update_fields(self, project_id: int, **fields: Any) -> Project:
        with self._scope("update_project", project_id=project_id) as session:
            project = session.get(Project, project_id)
            if project is None:
                raise NotFoundError("Project not found", entity="project", entity_id=project_id)
            for key, value in fields.items():
                setattr(project, key, value)
            session.flush()
            session.refresh(project)
            return project

    def delete(self, project_id: int) -> bool:
        with self._scope("delete_project", project_id=project_id) as session:
            project = session.get(Project, project_id)
            if project is None:
                return False
            session.delete(project)
            return True


class UserRepository(_Repository):
    """User data access."""

    def find_by_id(self, user_id: int) -> Optional[User]:
        with self._scope("find_user", user_id=user_id) as session:
            return session.get(User, user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        with self._scope("find_user_by_email") as session:
            return session.scalars(select(User).where(User.email == email)).first()

    def list_all(self) -> List[User]:
        with self._scope("list_users") as session:
            return list(session.scalars(select(User).order_by(User.id)))

    def create(self, **fields: Any) -> User:
        with self._scope("create_user") as session:
            user = User(**fields)
            session.add(user)
            session.flush()
            session.refresh(user)
            return user


def rows_to_dicts(rows: Iterable[Any]) -> List[Dict[str, Any]]:
    return [row.to_dict() for row in rows]
