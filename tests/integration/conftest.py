"""
Integration test fixtures — a file-backed SQLite database and a running
log queue, so a workflow exercises the real commit and flush paths.

Run: pytest tests/integration/ -v -m integration
"""

from __future__ import annotations

import pytest

from tasktrack.db.session import close_db, init_db
from tasktrack.engine.config import (
    DatabaseConfig,
    LoggingConfig,
    SecurityConfig,
    TaskTrackConfig,
)
from tasktrack.engine.logging import init_logging, shutdown_logging
from tasktrack.services import build_services


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end workflow over a real database file")


@pytest.fixture
def workspace(tmp_path):
    """Config pointing the database and the event log into tmp_path."""
    return TaskTrackConfig(
        name="IntegrationTracker",
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'tracker.db'}"),
        logging=LoggingConfig(directory=str(tmp_path / "logs"), flush_interval_ms=10),
        security=SecurityConfig(bcrypt_rounds=4),
    )


@pytest.fixture
def live_services(workspace):
    """Services over the file database with the async log queue running."""
    init_logging(log_dir=workspace.logging.directory, flush_interval_ms=10)
    factory = init_db(workspace.database, create_tables=True)
    yield build_services(workspace, factory)
    close_db()
    shutdown_logging()
