"""
TaskTrack Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v

Every test that touches the database gets a fresh in-memory SQLite engine.
"""

from __future__ import annotations

from typing import Any, Callable

import pytest

from tasktrack.db.repository import UserRepository
from tasktrack.db.session import close_db, init_db
from tasktrack.engine.config import DatabaseConfig, SecurityConfig, TaskTrackConfig
from tasktrack.engine.context import (
    ExecutionContext,
    clear_execution_context,
    set_execution_context,
)
from tasktrack.services import build_services


@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset global singletons between tests."""
    import tasktrack.engine.config as cfg_mod
    import tasktrack.engine.logging as log_mod

    cfg_mod._config = None
    log_mod._global_queue = None
    clear_execution_context()
    yield
    clear_execution_context()


@pytest.fixture
def config():
    """Test config: in-memory SQLite, cheap bcrypt."""
    return TaskTrackConfig(
        database=DatabaseConfig(url="sqlite://"),
        security=SecurityConfig(bcrypt_rounds=4),
    )


@pytest.fixture
def session_factory(config):
    factory = init_db(config.database, create_tables=True)
    yield factory
    close_db()


@pytest.fixture
def services(config, session_factory):
    return build_services(config, session_factory)


@pytest.fixture
def make_user(session_factory) -> Callable[..., Any]:
    """Insert a user row directly, bypassing the service layer."""
    repo = UserRepository(session_factory)
    counter = {"n": 0}

    def _make(name: str = "", user_type: str = "member", email: str = ""):
        counter["n"] += 1
        n = counter["n"]
        return repo.create(
            name=name or f"User {n}",
            email=email or f"user{n}@example.com",
            password_hash="not-a-real-hash",
            type=user_type,
        )

    return _make


@pytest.fixture
def acting_user(make_user) -> ExecutionContext:
    """A member user installed as the current execution context."""
    user = make_user(name="Alice")
    ctx = ExecutionContext(user_id=user.id, name=user.name, user_type=user.type)
    set_execution_context(ctx)
    return ctx


@pytest.fixture
def make_task(services, acting_user) -> Callable[..., Any]:
    """Create a task through the service as the acting user."""

    def _make(title: str = "Task", **fields: Any):
        return services.tasks.create_task({"title": title, **fields})

    return _make
