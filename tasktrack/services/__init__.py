"""
TaskTrack services — the operations a request handler calls.

Usage:
    from tasktrack.services import build_services
    services = build_services(config, session_factory)
    services.tasks.update_progress(task_id, "+10")
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from tasktrack.db.repository import ProjectRepository, TaskRepository, UserRepository
from tasktrack.engine.config import TaskTrackConfig
from tasktrack.engine.rollup import ProgressRollupEngine
from tasktrack.engine.security import build_policy
from tasktrack.services.projects import ProjectService
from tasktrack.services.tasks import MutationResult, TaskService
from tasktrack.services.users import UserService

__all__ = [
    "Services",
    "build_services",
    "MutationResult",
    "ProjectService",
    "TaskService",
    "UserService",
]


@dataclass
class Services:
    tasks: TaskService
    projects: ProjectService
    users: UserService
    rollup: ProgressRollupEngine


def build_services(config: TaskTrackConfig, session_factory: sessionmaker) -> Services:
    """Wire repositories, the rollup engine and the access policy from config."""
    task_repo = TaskRepository(session_factory)
    project_repo = ProjectRepository(session_factory)
    user_repo = UserRepository(session_factory)

    policy = build_policy(config.security.policy)
    engine = ProgressRollupEngine(task_repo, max_depth=config.rollup.max_depth)

    return Services(
        tasks=TaskService(
            task_repo,
            engine,
            policy=policy,
            enforce_leaf_on_complete=config.rollup.enforce_leaf_on_complete,
        ),
        projects=ProjectService(project_repo, task_repo, policy=policy),
        users=UserService(
            user_repo,
            policy=policy,
            password_min_length=config.security.password_min_length,
            bcrypt_rounds=config.security.bcrypt_rounds,
        ),
        rollup=engine,
    )
