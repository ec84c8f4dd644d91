"""
TaskTrack Security — Access policies and password hashing.

Implements:
- AccessPolicy: capability check invoked by every service operation
- AllowAllPolicy: default, permits every action for any authenticated caller
- RolePolicy: restricts project mutations to admin/pm and user creation to admin
- authorize(): runs the active policy, logs and raises on denial
- hash_password: bcrypt hashing for stored credentials
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Optional

import bcrypt

from tasktrack.engine.context import ExecutionContext
from tasktrack.engine.errors import SecurityError
from tasktrack.engine.logging import log, log_security_event

logger = logging.getLogger("tasktrack.engine.security")

# Actions are "<object_type>.<verb>"
ACTIONS = frozenset({
    "tasks.create", "tasks.view", "tasks.update", "tasks.delete", "tasks.progress",
    "projects.create", "projects.view", "projects.update", "projects.delete",
    "users.view", "users.create",
})


class AccessPolicy:
    """Base capability check. Subclasses override allows()."""

    name = "base"

    def allows(self, ctx: ExecutionContext, action: str) -> bool:
        raise NotImplementedError

    def check(self, ctx: ExecutionContext, action: str) -> bool:
        if action not in ACTIONS:
            raise ValueError(f"Unknown action '{action}'")
        return self.allows(ctx, action)


class AllowAllPolicy(AccessPolicy):
    """Permits everything. Authentication is assumed to have happened upstream."""

    name = "allow_all"

    def allows(self, ctx: ExecutionContext, action: str) -> bool:
        return True


class RolePolicy(AccessPolicy):
    """
    Role-based policy keyed on ExecutionContext.user_type.

    Actions listed in ``restricted`` need one of the mapped user types;
    any other action is open to every authenticated user.
    """

    name = "role"

    DEFAULT_RESTRICTED: Dict[str, FrozenSet[str]] = {
        "projects.create": frozenset({"admin", "pm"}),
        "projects.update": frozenset({"admin", "pm"}),
        "projects.delete": frozenset({"admin", "pm"}),
        "users.create": frozenset({"admin"}),
    }

    def __init__(self, restricted: Optional[Dict[str, FrozenSet[str]]] = None):
        self._restricted = dict(self.DEFAULT_RESTRICTED if restricted is None else restricted)

    def allows(self, ctx: ExecutionContext, action: str) -> bool:
        required = self._restricted.get(action)
        if required is None:
            return True
        return ctx.user_type in required


def build_policy(name: str) -> AccessPolicy:
    """Build the policy named in the security config."""
    if name == "allow_all":
        return AllowAllPolicy()
    if name == "role":
        return RolePolicy()
    raise ValueError(f"Unknown access policy '{name}'")


def authorize(
    policy: AccessPolicy,
    ctx: ExecutionContext,
    action: str,
    resource_id: Optional[int] = None,
) -> None:
    """Raise SecurityError (and log the denial) if the policy rejects the action."""
    if policy.check(ctx, action):
        return

    logger.warning(
        "Access denied: user=%s type=%s action=%s resource=%s",
        ctx.user_id, ctx.user_type, action, resource_id,
    )
    log(log_security_event(
        event="access_denied",
        action=action,
        user_id=ctx.user_id,
        user_type=ctx.user_type,
        execution_id=ctx.execution_id,
        resource_id=resource_id,
    ))
    raise SecurityError(
        f"Not authorized to perform '{action}'",
        user_id=ctx.user_id,
        action=action,
        execution_id=ctx.execution_id,
    )


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")
