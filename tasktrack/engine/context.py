"""
TaskTrack Execution Context — per-request state carried in a ContextVar.

The request-handling layer (HTTP handler, CLI command, test) sets a context
before calling a service; services read the acting user from it.

Usage:
    from tasktrack.engine.context import (
        ExecutionContext,
        set_execution_context,
        get_execution_context,
        require_execution_context,
    )
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from tasktrack.engine.errors import SecurityError

current_execution_context: ContextVar[Optional["ExecutionContext"]] = ContextVar(
    "execution_context", default=None
)


@dataclass
class ExecutionContext:
    """Acting user and request id for one service call chain."""

    user_id: int
    name: str = ""
    user_type: str = "member"  # "admin" | "pm" | "member"
    execution_id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex[:12]}")

    @property
    def is_admin(self) -> bool:
        return self.user_type == "admin"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "user_id": self.user_id,
            "name": self.name,
            "user_type": self.user_type,
            "execution_id": self.execution_id,
        }


def set_execution_context(ctx: ExecutionContext) -> None:
    """Set the execution context for the current thread/task."""
    current_execution_context.set(ctx)


def get_execution_context() -> Optional[ExecutionContext]:
    """Get the current execution context. Returns None if not set."""
    return current_execution_context.get()


def require_execution_context() -> ExecutionContext:
    """Get execution context or raise error if not set."""
    ctx = get_execution_context()
    if ctx is None:
        raise SecurityError(
            "No execution context — user not authenticated",
            reason="missing_context",
        )
    return ctx


def clear_execution_context() -> None:
    """Clear the execution context (e.g., at request end)."""
    current_execution_context.set(None)
