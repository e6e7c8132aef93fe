"""Shared fixtures: in-memory database, lock registry, a seeded project."""

import pytest

from siteloom.core.db import DatabaseManager
from siteloom.core.db.models import Project
from siteloom.core.locks import ProjectLockRegistry


@pytest.fixture
def db_manager():
    db = DatabaseManager("sqlite://")
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def lock_registry():
    return ProjectLockRegistry()


@pytest.fixture
def project_id(db_manager):
    with db_manager.get_session() as session:
        project = Project(
            name="Acme site",
            repo_full_name="acme/site",
            target_branch="main",
            deployment_url="https://acme.test",
            status="pending",
        )
        session.add(project)
        session.flush()
        return str(project.project_id)
