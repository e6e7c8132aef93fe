"""HTTP surface tests through FastAPI's TestClient."""

import hashlib
import hmac
import json
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from siteloom.api.app import create_app
from siteloom.api.deps import get_current_user
from siteloom.core.analysis.engine import AnalysisEngine
from siteloom.core.catalog import ElementCatalog
from siteloom.core.editing import EditService
from siteloom.core.project import ProjectManager
from siteloom.core.publishing import PublishService
from siteloom.setting import GitHubSettings, SiteloomSettings
from siteloom.tests.fakes import SITE_PAGES, FakeBrowser, FakeVCS, add_element, browser_factory_for

INDEX = "<h1>Welcome to Acme</h1>\n<p>We build rockets.</p>\n"
SECRET = "s3cret"

EDITOR = {"user_id": str(uuid4()), "username": "ed", "roles": ["editor"]}
ADMIN = {"user_id": str(uuid4()), "username": "ada", "roles": ["admin"]}


@pytest.fixture
def vcs():
    return FakeVCS({"src/index.html": INDEX})


@pytest.fixture
def app(db_manager, vcs, lock_registry):
    worker = MagicMock()
    worker.running = True
    catalog = ElementCatalog(db_manager)
    app = create_app(
        db_manager=db_manager,
        project_manager=ProjectManager(db_manager),
        analysis_engine=AnalysisEngine(
            db_manager, catalog, browser_factory_for(FakeBrowser(SITE_PAGES)),
            lock_registry=lock_registry, worker=worker,
        ),
        catalog=catalog,
        edit_service=EditService(db_manager),
        publish_service=PublishService(db_manager, lambda project: vcs, lock_registry=lock_registry),
        settings=SiteloomSettings(github=GitHubSettings(webhook_secret=SECRET)),
    )
    app.dependency_overrides[get_current_user] = lambda: EDITOR
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def hero_id(db_manager, project_id):
    return add_element(db_manager, project_id, "Hero Title", "Welcome to Acme")


def _sign(body: bytes) -> str:
    return "sha256=" + hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()


class TestBasics:

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok", "service": "siteloom"}

    def test_requires_session(self, app, project_id):
        app.dependency_overrides.clear()
        response = TestClient(app).get(f"/api/projects/{project_id}/elements")
        assert response.status_code == 401

    def test_malformed_id_is_bad_request(self, client):
        response = client.get("/api/projects/not-a-uuid/elements")
        assert response.status_code == 400
        assert "Invalid project_id" in response.json()["error"]

    def test_create_project_requires_admin(self, app, client):
        body = {"name": "Docs", "repoFullName": "acme/docs", "deploymentUrl": "https://docs.acme.test"}
        assert client.post("/api/projects", json=body).status_code == 403

        app.dependency_overrides[get_current_user] = lambda: ADMIN
        response = client.post("/api/projects", json=body)
        assert response.status_code == 201
        project = response.json()["project"]
        assert project["repoFullName"] == "acme/docs"
        assert client.get(f"/api/projects/{project['id']}").json()["project"]["status"] == "pending"


class TestAnalysisRoutes:

    def test_trigger_then_conflict(self, client, project_id):
        response = client.post(f"/api/projects/{project_id}/analysis/trigger", json={"fullRescan": True})
        assert response.status_code == 202
        job_id = response.json()["jobId"]

        again = client.post(f"/api/projects/{project_id}/analysis/trigger")
        assert again.status_code == 409
        assert again.json()["jobId"] == job_id

    def test_status_and_cancel(self, client, project_id):
        client.post(f"/api/projects/{project_id}/analysis/trigger")

        status = client.get(f"/api/projects/{project_id}/analysis/status").json()
        assert status["projectStatus"] == "analyzing"
        assert status["currentJob"]["fullRescan"] is False

        cancel = client.post(f"/api/projects/{project_id}/analysis/cancel")
        assert cancel.json()["success"] is True

    def test_unknown_project_status(self, client):
        response = client.get(f"/api/projects/{uuid4()}/analysis/status")
        assert response.status_code == 404


class TestCatalogRoutes:

    def test_list_and_detail(self, client, project_id, hero_id):
        listed = client.get(f"/api/projects/{project_id}/elements", params={"type": "heading"}).json()
        assert listed["pagination"] == {"page": 1, "limit": 50, "total": 1, "totalPages": 1}
        assert listed["elements"][0]["currentValue"] == "Welcome to Acme"

        detail = client.get(f"/api/projects/{project_id}/elements/{hero_id}").json()
        assert detail["element"]["recentEdits"] == []

    def test_sections(self, client, project_id, hero_id, app):
        app.state.catalog.rebuild_sections(project_id)
        sections = client.get(f"/api/projects/{project_id}/sections").json()
        assert sections["count"] == 1
        section_id = sections["sections"][0]["id"]

        detail = client.get(f"/api/projects/{project_id}/sections/{section_id}").json()
        assert detail["section"]["elements"][0]["id"] == hero_id


class TestEditRoutes:

    def test_draft_lifecycle(self, client, project_id, hero_id):
        created = client.post(
            f"/api/projects/{project_id}/edits",
            json={"elementId": hero_id, "newValue": "Hello"},
        )
        assert created.status_code == 201
        edit_id = created.json()["edit"]["id"]

        updated = client.patch(f"/api/projects/{project_id}/edits/{edit_id}", json={"new_value": "Hi"})
        assert updated.json()["edit"]["newValue"] == "Hi"

        listed = client.get(f"/api/projects/{project_id}/edits", params={"elementId": hero_id}).json()
        assert [e["id"] for e in listed["edits"]] == [edit_id]

        assert client.delete(f"/api/projects/{project_id}/edits/{edit_id}").json() == {"success": True}

    def test_status_change_is_admin_only(self, app, client, project_id, hero_id):
        edit_id = client.post(
            f"/api/projects/{project_id}/edits", json={"elementId": hero_id, "newValue": "Hello"}
        ).json()["edit"]["id"]
        url = f"/api/projects/{project_id}/edits/{edit_id}/status"

        assert client.patch(url, json={"status": "pending_review"}).status_code == 403

        app.dependency_overrides[get_current_user] = lambda: ADMIN
        assert client.patch(url, json={"status": "approved"}).status_code == 400
        assert client.patch(url, json={"status": "pending_review"}).json()["edit"]["status"] == "pending_review"

    def test_publish(self, client, vcs, project_id, hero_id):
        response = client.post(f"/api/projects/{project_id}/edits/publish", json={
            "edits": [{"elementId": hero_id, "originalValue": "Welcome to Acme", "newValue": "Hello"}],
        })

        assert response.status_code == 201
        pr = response.json()["pullRequest"]
        assert pr["prNumber"] == 1
        assert pr["title"] == "[Content] Update Hero Title"
        assert pr["editCount"] == 1
        assert vcs.pull_requests[0].title == pr["title"]

    def test_publish_diff_failure(self, client, vcs, project_id, hero_id):
        vcs.files["src/index.html"] = INDEX + INDEX

        response = client.post(f"/api/projects/{project_id}/edits/publish", json={
            "edits": [{"elementId": hero_id, "newValue": "Hello"}],
        })

        assert response.status_code == 422
        failure = response.json()["failures"][0]
        assert failure == {
            "elementId": hero_id,
            "elementName": "Hero Title",
            "reason": "ambiguous_match",
            "sourceFile": "src/index.html",
            "matchCount": 2,
        }


class TestWebhooks:

    def _closed_event(self, number, merged):
        return json.dumps({
            "action": "closed",
            "number": number,
            "pull_request": {"number": number, "merged": merged},
            "repository": {"full_name": "acme/site"},
        }).encode()

    def test_bad_signature(self, client):
        body = self._closed_event(1, True)
        response = client.post(
            "/api/webhooks/github", content=body,
            headers={"X-GitHub-Event": "pull_request", "X-Hub-Signature-256": "sha256=deadbeef"},
        )
        assert response.status_code == 401

    def test_merged_pr_is_recorded(self, client, project_id, hero_id):
        client.post(f"/api/projects/{project_id}/edits/publish", json={
            "edits": [{"elementId": hero_id, "newValue": "Hello"}],
        })
        body = self._closed_event(1, True)

        response = client.post(
            "/api/webhooks/github", content=body,
            headers={"X-GitHub-Event": "pull_request", "X-Hub-Signature-256": _sign(body)},
        )

        assert response.json()["status"] == "recorded"
        assert response.json()["pullRequest"]["status"] == "merged"
        element = client.get(f"/api/projects/{project_id}/elements/{hero_id}").json()["element"]
        assert element["currentValue"] == "Hello"

    def test_other_events_are_ignored(self, client):
        body = b'{"zen": "Keep it simple."}'
        response = client.post(
            "/api/webhooks/github", content=body,
            headers={"X-GitHub-Event": "ping", "X-Hub-Signature-256": _sign(body)},
        )
        assert response.json() == {"status": "ignored"}

    def test_non_object_payload_is_bad_request(self, client):
        body = b"[]"
        response = client.post(
            "/api/webhooks/github", content=body,
            headers={"X-GitHub-Event": "pull_request", "X-Hub-Signature-256": _sign(body)},
        )
        assert response.status_code == 400
