"""Tests for tasktrack.services.projects."""

import pytest

from tasktrack.engine.context import ExecutionContext, set_execution_context
from tasktrack.engine.errors import NotFoundError, SecurityError, ValidationError


@pytest.fixture
def make_project(services, acting_user):
    def _make(title="Apollo", **fields):
        return services.projects.create_project({"title": title, **fields})

    return _make


class TestCreateProject:
    def test_create(self, make_project, acting_user):
        project = make_project("Apollo", description="moon")
        assert project.id is not None
        assert project.created_by == acting_user.user_id
        assert project.status == "Planning"
        assert project.description == "moon"

    def test_title_required(self, make_project):
        with pytest.raises(ValidationError, match="Invalid project data"):
            make_project("")


class TestListProjects:
    def test_created_and_involved(self, services, make_project, make_user, acting_user):
        own = make_project("own")
        bob = make_user(name="Bob")

        set_execution_context(ExecutionContext(user_id=bob.id))
        bobs = services.projects.create_project({"title": "bob's"})
        hidden = services.projects.create_project({"title": "hidden"})
        services.tasks.create_task({"title": "for alice", "project_id": bobs.id, "assigned_to": acting_user.user_id})
        services.tasks.create_task({"title": "bob only", "project_id": hidden.id})

        set_execution_context(acting_user)
        listed = [p.id for p in services.projects.list_projects()]
        assert listed == [own.id, bobs.id]

    def test_deduplicated(self, services, make_project):
        project = make_project("mine")
        services.tasks.create_task({"title": "t1", "project_id": project.id})
        services.tasks.create_task({"title": "t2", "project_id": project.id})
        assert [p.id for p in services.projects.list_projects()] == [project.id]


class TestUpdateDeleteProject:
    def test_update_by_creator(self, services, make_project):
        project = make_project("old", description="keep")
        updated = services.projects.update_project(project.id, {"title": "new", "description": "", "status": "Active"})
        assert updated.title == "new"
        assert updated.description == "keep"
        assert updated.status == "Active"

    def test_update_by_other_denied(self, services, make_project, make_user):
        project = make_project()
        bob = make_user(name="Bob")
        set_execution_context(ExecutionContext(user_id=bob.id))
        with pytest.raises(SecurityError, match="Not authorized to update"):
            services.projects.update_project(project.id, {"title": "mine now"})

    def test_update_missing(self, services, acting_user):
        with pytest.raises(NotFoundError):
            services.projects.update_project(404, {"title": "x"})

    def test_delete_keeps_tasks(self, services, make_project):
        project = make_project()
        task = services.tasks.create_task({"title": "t", "project_id": project.id})
        services.projects.delete_project(project.id)
        with pytest.raises(NotFoundError):
            services.projects.get_project(project.id)
        assert services.tasks.get_task(task.id).project_id == project.id

    def test_delete_by_other_denied(self, services, make_project, make_user):
        project = make_project()
        bob = make_user(name="Bob")
        set_execution_context(ExecutionContext(user_id=bob.id))
        with pytest.raises(SecurityError, match="Not authorized to delete"):
            services.projects.delete_project(project.id)
