"""Project Service — project CRUD. Only a project's creator may change or delete it."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from tasktrack.db.models import Project
from tasktrack.db.repository import ProjectRepository, TaskRepository
from tasktrack.engine.context import ExecutionContext, require_execution_context
from tasktrack.engine.errors import SecurityError
from tasktrack.engine.logging import log, log_record_operation
from tasktrack.engine.security import AccessPolicy, AllowAllPolicy, authorize
from tasktrack.services.schemas import ProjectCreate, ProjectUpdate, truthy_changes, validate_input

logger = logging.getLogger("tasktrack.services.projects")


class ProjectService:
    def __init__(
        self,
        projects: ProjectRepository,
        tasks: TaskRepository,
        policy: Optional[AccessPolicy] = None,
    ):
        self._projects = projects
        self._tasks = tasks
        self._policy = policy or AllowAllPolicy()

    def create_project(self, data: Any) -> Project:
        ctx = require_execution_context()
        authorize(self._policy, ctx, "projects.create")
        payload = validate_input(ProjectCreate, data, "Invalid project data")
        project = self._projects.create(created_by=ctx.user_id, **payload.model_dump())
        logger.info("Created project %s", project.id)
        log(log_record_operation("create", "projects", project.id, ctx.execution_id, ctx.user_id))
        return project

    def list_projects(self) -> List[Project]:
        """
        Projects the current user created, plus projects holding tasks the
        user created or is assigned to. Deduplicated, ordered by id.
        """
        ctx = require_execution_context()
        authorize(self._policy, ctx, "projects.view")

        by_id: Dict[int, Project] = {}
        for project in self._projects.list_created_by(ctx.user_id):
            by_id[project.id] = project
        involved = self._tasks.project_ids_for_user(ctx.user_id)
        for project in self._projects.list_by_ids(involved):
            by_id[project.id] = project
        return [by_id[k] for k in sorted(by_id)]

    def get_project(self, project_id: int) -> Project:
        ctx = require_execution_context()
        authorize(self._policy, ctx, "projects.view", project_id)
        return self._projects.get(project_id)

    def update_project(self, project_id: int, changes: Any) -> Project:
        """Update a project. Empty or missing values keep the current value."""
        ctx = require_execution_context()
        authorize(self._policy, ctx, "projects.update", project_id)
        project = self._projects.get(project_id)
        self._require_creator(ctx, project, "update")

        fields = truthy_changes(validate_input(ProjectUpdate, changes, "Invalid data"))
        project = self._projects.update_fields(project_id, **fields)
        log(log_record_operation(
            "update", "projects", project_id, ctx.execution_id, ctx.user_id, sorted(fields),
        ))
        return project

    def delete_project(self, project_id: int) -> None:
        """Delete a project. Its tasks are left in place."""
        ctx = require_execution_context()
        authorize(self._policy, ctx, "projects.delete", project_id)
        project = self._projects.get(project_id)
        self._require_creator(ctx, project, "delete")

        self._projects.delete(project_id)
        logger.info("Deleted project %s", project_id)
        log(log_record_operation("delete", "projects", project_id, ctx.execution_id, ctx.user_id))

    @staticmethod
    def _require_creator(ctx: ExecutionContext, project: Project, verb: str) -> None:
        if project.created_by != ctx.user_id:
            raise SecurityError(
                f"Not authorized to {verb} this project",
                user_id=ctx.user_id,
                action=f"projects.{verb}",
                project_id=project.id,
                execution_id=ctx.execution_id,
            )
