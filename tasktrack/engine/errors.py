"""
TaskTrack Error Hierarchy — Structured exceptions for services and the rollup engine.

All errors carry an optional execution_id so a failure can be traced back
to the request that caused it. Serializable via to_dict()/to_json() for
the structured event log.

Hierarchy:
    TaskTrackError
    ├── NotFoundError        — Task / project / user missing
    ├── ValidationError      — Invalid input, direct mutation of a non-leaf task
    ├── PersistenceError     — Data-access failure
    ├── SecurityError        — Capability check denied
    ├── ConfigError          — Invalid tasktrack.yaml
    └── HierarchyError       — Cycle or depth bound hit while walking ancestors
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class TaskTrackError(Exception):
    """
    Base error for all TaskTrack failures.
    All context is kept serializable so it can go straight into the event log.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.execution_id: Optional[str] = context.get("execution_id")
        self.task_id: Optional[int] = context.get("task_id")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "execution_id": self.execution_id,
            "task_id": self.task_id,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("execution_id", "task_id")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.task_id is not None:
            parts.append(f"task_id={self.task_id}")
        if self.execution_id:
            parts.append(f"execution_id={self.execution_id}")
        return " | ".join(parts)


class NotFoundError(TaskTrackError):
    """A referenced entity does not exist."""

    def __init__(self, message: str, **context: Any):
        self.entity: Optional[str] = context.get("entity")
        self.entity_id: Optional[Any] = context.get("entity_id")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["entity"] = self.entity
        d["entity_id"] = self.entity_id
        return d


class ValidationError(TaskTrackError):
    """
    Input rejected before any state change.
    Includes field-level error details when the input came through Pydantic.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: Optional[List[Any]] = context.get("validation_errors")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class PersistenceError(TaskTrackError):
    """Data-access operation failed (fetch, insert, update, delete)."""

    def __init__(self, message: str, **context: Any):
        self.operation: Optional[str] = context.get("operation")
        super().__init__(message, **context)


class SecurityError(TaskTrackError):
    """Access denied by the active access policy."""

    def __init__(self, message: str, **context: Any):
        self.user_id: Optional[int] = context.get("user_id")
        self.action: Optional[str] = context.get("action")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["user_id"] = self.user_id
        d["action"] = self.action
        return d


class ConfigError(TaskTrackError):
    """Configuration error — invalid tasktrack.yaml."""
    pass


class HierarchyError(TaskTrackError):
    """The task hierarchy is not a forest (cycle) or is deeper than allowed."""

    def __init__(self, message: str, **context: Any):
        self.path: List[int] = context.get("path", [])
        super().__init__(message, **context)
