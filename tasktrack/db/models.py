"""
TaskTrack Models — SQLAlchemy tables for users, projects, tasks and progress history.

Tables:
1. users             — Accounts (admin / pm / member)
2. projects          — Top-level containers for tasks
3. tasks             — Hierarchical work items; progress rolls up via parent_task_id
4. task_progress_log — Append-only progress history per task

parent_task_id and project_id are plain references, not foreign keys:
deleting a task or a project leaves the rows that point at it untouched.
"""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from tasktrack.db.base import Base, TimestampMixin, utcnow

TASK_STATUSES = ("Not Started", "In Progress", "Completed")
TASK_PRIORITIES = ("Low", "Medium", "High")
PROJECT_STATUSES = ("Planning", "Active", "On Hold", "Completed")
USER_TYPES = ("admin", "pm", "member")

STATUS_COMPLETED = "Completed"
STATUS_IN_PROGRESS = "In Progress"


def _iso(value):
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# 1. Users
# ---------------------------------------------------------------------------

class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    type = Column(String(20), default="member", nullable=False)

    __table_args__ = (
        CheckConstraint(
            "type IN ('admin', 'pm', 'member')",
            name="ck_users_type",
        ),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Public view of the user. Never includes the password hash."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "type": self.type,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', type='{self.type}')>"


# ---------------------------------------------------------------------------
# 2. Projects
# ---------------------------------------------------------------------------

class Project(Base, TimestampMixin):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), default="Planning", nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "status": self.status,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, title='{self.title}')>"


# ---------------------------------------------------------------------------
# 3. Tasks
# ---------------------------------------------------------------------------

class Task(Base, TimestampMixin):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default="Not Started", nullable=False)
    priority = Column(String(20), default="Medium", nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    parent_task_id = Column(Integer, nullable=True, index=True)
    project_id = Column(Integer, nullable=True, index=True)
    level = Column(Integer, default=0, nullable=False)
    weight = Column(Float, default=0.0, nullable=False)
    progress = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    progress_history = relationship(
        "ProgressEntry",
        back_populates="task",
        order_by="ProgressEntry.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_tasks_progress_range"),
        CheckConstraint("weight >= 0", name="ck_tasks_weight_non_negative"),
        CheckConstraint(
            "status IN ('Not Started', 'In Progress', 'Completed')",
            name="ck_tasks_status",
        ),
        Index("idx_tasks_project_parent", "project_id", "parent_task_id"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "due_date": _iso(self.due_date),
            "created_by": self.created_by,
            "assigned_to": self.assigned_to,
            "parent_task_id": self.parent_task_id,
            "project_id": self.project_id,
            "level": self.level,
            "weight": self.weight,
            "progress": self.progress,
            "progress_history": [e.to_dict() for e in self.progress_history],
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return (
            f"<Task(id={self.id}, title='{self.title}', progress={self.progress}, "
            f"parent={self.parent_task_id})>"
        )


# ---------------------------------------------------------------------------
# 4. Progress history
# ---------------------------------------------------------------------------

class ProgressEntry(Base):
    __tablename__ = "task_progress_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    progress = Column(Integer, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    note = Column(String(500), nullable=False, default="")

    task = relationship("Task", back_populates="progress_history")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "progress": self.progress,
            "timestamp": _iso(self.timestamp),
            "note": self.note,
        }
