"""
Integration tests — project and task workflows across services, the
rollup engine, the database file and the event log.
"""

import pytest

from tasktrack.db.session import close_db, init_db
from tasktrack.engine.context import ExecutionContext, set_execution_context
from tasktrack.engine.logging import FileLogger, shutdown_logging
from tasktrack.services import build_services


def _act_as(user):
    set_execution_context(ExecutionContext(user_id=user["id"], name=user["name"], user_type=user["type"]))


@pytest.mark.integration
class TestProjectDelivery:
    """A project's task tree is driven to completion through leaf updates."""

    def test_full_rollup_flow(self, live_services, workspace):
        svc = live_services
        admin = svc.users.bootstrap_admin("Admin", "admin@example.com", "adminpass1")
        _act_as(admin)
        member = svc.users.create_user({
            "name": "Bob", "email": "bob@example.com", "password": "bobpass123",
        })

        project = svc.projects.create_project({"title": "Launch", "status": "Active"})
        root = svc.tasks.create_task({"title": "Release", "project_id": project.id})
        build = svc.tasks.create_task({"title": "Build", "parent_task_id": root.id, "weight": 2})
        docs = svc.tasks.create_task({
            "title": "Docs", "parent_task_id": root.id, "weight": 1, "assigned_to": member["id"],
            "project_id": project.id,
        })
        backend = svc.tasks.create_task({"title": "Backend", "parent_task_id": build.id, "weight": 1})
        frontend = svc.tasks.create_task({"title": "Frontend", "parent_task_id": build.id, "weight": 1})
        assert backend.level == 2

        result = svc.tasks.update_progress(backend.id, "+50")
        assert result.warnings == []
        assert [u.task_id for u in result.rollup.updates] == [build.id, root.id]
        assert svc.tasks.get_task(build.id).progress == 25
        assert svc.tasks.get_task(root.id).progress == 17

        svc.tasks.complete_task(docs.id)
        assert svc.tasks.get_task(root.id).progress == 50

        svc.tasks.complete_task(frontend.id)
        assert svc.tasks.get_task(build.id).progress == 75
        assert svc.tasks.get_task(root.id).progress == 83

        svc.tasks.update_progress(backend.id, 80)
        tree = svc.tasks.get_subtree(root.id)
        assert tree["progress"] == 100
        assert [c["progress"] for c in tree["children"]] == [100, 100]

        history = svc.tasks.get_task(backend.id).progress_history
        assert [(e.progress, e.note) for e in history] == [(50, "+50%"), (100, "+80%")]

        # The member only sees the project through the task assigned to them
        _act_as(member)
        assert [p.id for p in svc.projects.list_projects()] == [project.id]

        shutdown_logging()
        logs = FileLogger(log_dir=workspace.logging.directory)
        rollups = logs.read_today("rollup", "execution")
        assert len(rollups) == 4
        assert all(e["event"] == "rollup_applied" for e in rollups)
        progress_events = [e["event"] for e in logs.read_today("tasks", "execution")
                           if e["event"] in ("progress_updated", "task_completed")]
        assert progress_events == ["progress_updated", "task_completed", "task_completed", "progress_updated"]

    def test_state_survives_reconnect(self, live_services, workspace):
        svc = live_services
        admin = svc.users.bootstrap_admin("Admin", "admin@example.com", "adminpass1")
        _act_as(admin)
        parent = svc.tasks.create_task({"title": "Parent"})
        leaf = svc.tasks.create_task({"title": "Leaf", "parent_task_id": parent.id, "weight": 1})
        svc.tasks.update_progress(leaf.id, "+40")

        close_db()
        fresh = build_services(workspace, init_db(workspace.database))
        assert fresh.tasks.get_task(parent.id).progress == 40
        assert len(fresh.tasks.get_task(leaf.id).progress_history) == 1


@pytest.mark.integration
class TestDegradedHierarchy:
    def test_deleted_parent_surfaces_warning(self, live_services, workspace):
        svc = live_services
        admin = svc.users.bootstrap_admin("Admin", "admin@example.com", "adminpass1")
        _act_as(admin)
        parent = svc.tasks.create_task({"title": "Parent"})
        leaf = svc.tasks.create_task({"title": "Leaf", "parent_task_id": parent.id, "weight": 1})
        svc.tasks.delete_task(parent.id)

        result = svc.tasks.update_progress(leaf.id, 30)
        assert svc.tasks.get_task(leaf.id).progress == 30
        assert result.rollup.ok is False
        assert result.warnings[0].startswith("NotFoundError")

        shutdown_logging()
        rollups = FileLogger(log_dir=workspace.logging.directory).read_today("rollup", "execution")
        assert rollups[-1]["event"] == "rollup_failed"
