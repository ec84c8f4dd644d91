"""Pydantic input models for service operations."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError as PydanticValidationError

from tasktrack.engine.errors import ValidationError

TaskStatus = Literal["Not Started", "In Progress", "Completed"]
TaskPriority = Literal["Low", "Medium", "High"]
ProjectStatus = Literal["Planning", "Active", "On Hold", "Completed"]
UserType = Literal["admin", "pm", "member"]

M = TypeVar("M", bound=BaseModel)


class TaskCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    status: TaskStatus = "Not Started"
    priority: TaskPriority = "Medium"
    due_date: Optional[datetime] = None
    assigned_to: Optional[int] = None
    parent_task_id: Optional[int] = None
    project_id: Optional[int] = None
    weight: float = Field(default=0.0, ge=0, allow_inf_nan=False)


class TaskUpdate(BaseModel):
    """Editable task fields. Progress, weight and hierarchy are not editable here."""
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[int] = None


class ProjectCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: ProjectStatus = "Planning"


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Optional[ProjectStatus] = None


class UserCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    password: str
    type: UserType = "member"


def validate_input(model: Type[M], data: Any, message: str) -> M:
    """Validate ``data`` against ``model``, converting failures to ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            message,
            validation_errors=[
                {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in e.errors()
            ],
        ) from e


def truthy_changes(model: BaseModel) -> Dict[str, Any]:
    """Fields with a truthy value; falsy values leave the stored field unchanged."""
    return {k: v for k, v in model.model_dump().items() if v}
