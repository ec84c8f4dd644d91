"""User Service — list users and create accounts with bcrypt-hashed passwords."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from tasktrack.db.repository import UserRepository, rows_to_dicts
from tasktrack.engine.context import require_execution_context
from tasktrack.engine.errors import ValidationError
from tasktrack.engine.logging import log, log_record_operation
from tasktrack.engine.security import AccessPolicy, AllowAllPolicy, authorize, hash_password
from tasktrack.services.schemas import UserCreate, validate_input

logger = logging.getLogger("tasktrack.services.users")


class UserService:
    def __init__(
        self,
        users: UserRepository,
        policy: Optional[AccessPolicy] = None,
        password_min_length: int = 8,
        bcrypt_rounds: int = 12,
    ):
        self._users = users
        self._policy = policy or AllowAllPolicy()
        self._password_min_length = password_min_length
        self._bcrypt_rounds = bcrypt_rounds

    def list_users(self) -> List[Dict[str, Any]]:
        """All users, without password hashes."""
        ctx = require_execution_context()
        authorize(self._policy, ctx, "users.view")
        return rows_to_dicts(self._users.list_all())

    def create_user(self, data: Any) -> Dict[str, Any]:
        """Create an account. Emails are unique."""
        ctx = require_execution_context()
        authorize(self._policy, ctx, "users.create")
        payload = validate_input(UserCreate, data, "Invalid user data")

        if len(payload.password) < self._password_min_length:
            raise ValidationError(
                f"Password must be at least {self._password_min_length} characters",
                validation_errors=[{"field": "password", "error": "too short"}],
            )
        if self._users.find_by_email(payload.email) is not None:
            raise ValidationError("User already exists", email=payload.email)

        user = self._users.create(
            name=payload.name,
            email=payload.email,
            password_hash=hash_password(payload.password, rounds=self._bcrypt_rounds),
            type=payload.type,
        )
        logger.info("Created user %s (%s)", user.id, user.type)
        log(log_record_operation("create", "users", user.id, ctx.execution_id, ctx.user_id))
        return user.to_dict()

    def bootstrap_admin(self, name: str, email: str, password: str) -> Dict[str, Any]:
        """
        Create the first admin account without an execution context.
        Used by ``tasktrack init``; returns the existing user if the email is taken.
        """
        existing = self._users.find_by_email(email)
        if existing is not None:
            return existing.to_dict()
        if len(password) < self._password_min_length:
            raise ValidationError(
                f"Password must be at least {self._password_min_length} characters",
            )
        user = self._users.create(
            name=name,
            email=email,
            password_hash=hash_password(password, rounds=self._bcrypt_rounds),
            type="admin",
        )
        log(log_record_operation("create", "users", user.id))
        return user.to_dict()
