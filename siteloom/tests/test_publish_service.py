"""Tests for the atomic publish boundary and outcome recording."""

import threading
from uuid import uuid4

import pytest

from siteloom.core.db import DatabaseManager
from siteloom.core.db.models import Edit, Element, Project, PullRequest
from siteloom.core.editing import EditService
from siteloom.core.errors import (
    AmbiguousMatch,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from siteloom.core.locks import ProjectLockRegistry
from siteloom.core.publishing import PublishService, edit_fingerprint
from siteloom.tests.fakes import FakeVCS, add_element

INDEX = "<h1>Welcome to Acme</h1>\n<p>We build rockets.</p>\n<a>Buy now</a>\n"


@pytest.fixture
def vcs():
    return FakeVCS({"src/index.html": INDEX})


@pytest.fixture
def service(db_manager, vcs, lock_registry):
    return PublishService(db_manager, lambda project: vcs, lock_registry=lock_registry)


@pytest.fixture
def hero_id(db_manager, project_id):
    return add_element(db_manager, project_id, "Hero Title", "Welcome to Acme", source_line=1)


@pytest.fixture
def button_id(db_manager, project_id):
    return add_element(db_manager, project_id, "Buy Button", "Buy now", element_type="button", source_line=3)


def _counts(db_manager):
    with db_manager.get_session() as session:
        return session.query(Edit).count(), session.query(PullRequest).count()


class TestPublish:

    def test_publish_opens_pr_and_moves_edits(self, service, db_manager, vcs, project_id, hero_id):
        result = service.publish(project_id, str(uuid4()), [
            {"element_id": hero_id, "new_value": "Hello from Acme", "original_value": "Welcome to Acme"},
        ])

        assert result["pr_number"] == 1
        assert result["title"] == "[Content] Update Hero Title"
        assert result["status"] == "open"
        assert result["edit_count"] == 1
        assert result["branch_name"].startswith("content-update/")
        committed = vcs.commits[0][1][0]
        assert committed.content == INDEX.replace("Welcome to Acme", "Hello from Acme")

        with db_manager.get_session() as session:
            edit = session.query(Edit).one()
            assert edit.status == "pending_review"
            assert str(edit.pull_request_id) == result["id"]

    def test_existing_draft_is_bound(self, service, db_manager, project_id, hero_id):
        draft = EditService(db_manager).create_edit(project_id, hero_id, None, "Hello")

        service.publish(project_id, None, [
            {"element_id": hero_id, "new_value": "Hello", "edit_id": draft["id"]},
        ])

        assert _counts(db_manager) == (1, 1)
        with db_manager.get_session() as session:
            assert session.query(Edit).one().status == "pending_review"

    def test_ambiguous_match_changes_nothing(self, service, db_manager, vcs, project_id, hero_id):
        vcs.files["src/index.html"] = INDEX + "<footer>Welcome to Acme</footer>"

        with pytest.raises(AmbiguousMatch) as exc_info:
            service.publish(project_id, None, [{"element_id": hero_id, "new_value": "Hi"}])

        assert exc_info.value.element_ids == [hero_id]
        assert _counts(db_manager) == (0, 0)
        assert vcs.branches == [] and vcs.pull_requests == []

    def test_one_bad_edit_fails_whole_batch(self, service, db_manager, vcs, project_id, hero_id, button_id):
        vcs.files["src/index.html"] = INDEX + "<a>Buy now</a>"

        with pytest.raises(AmbiguousMatch) as exc_info:
            service.publish(project_id, None, [
                {"element_id": hero_id, "new_value": "Hi"},
                {"element_id": button_id, "new_value": "Order"},
            ])

        assert exc_info.value.element_ids == [button_id]
        assert _counts(db_manager) == (0, 0)

    def test_upstream_failure_keeps_drafts(self, service, db_manager, vcs, project_id, hero_id):
        vcs.fail_on = "open_pull_request"

        with pytest.raises(UpstreamError):
            service.publish(project_id, None, [{"element_id": hero_id, "new_value": "Hi"}])

        with db_manager.get_session() as session:
            edit = session.query(Edit).one()
            assert edit.status == "draft"
            assert edit.pull_request_id is None
            assert session.query(PullRequest).count() == 0

    def test_retry_after_failure_reuses_draft(self, service, db_manager, vcs, project_id, hero_id):
        items = [{"element_id": hero_id, "original_value": "Welcome to Acme", "new_value": "Hello"}]
        vcs.fail_on = "open_pull_request"
        with pytest.raises(UpstreamError):
            service.publish(project_id, None, items)

        vcs.fail_on = None
        result = service.publish(project_id, None, items)

        assert result["edit_count"] == 1
        with db_manager.get_session() as session:
            edits = [(e.status, e.new_value) for e in session.query(Edit).all()]
        assert edits == [("pending_review", "Hello")]

    def test_duplicate_open_pr_is_rejected(self, service, vcs, project_id, hero_id):
        items = [{"element_id": hero_id, "new_value": "Hi"}]
        service.publish(project_id, None, items)

        with pytest.raises(ConflictError, match="already covers"):
            service.publish(project_id, None, items)
        assert len(vcs.pull_requests) == 1

    def test_bound_edit_is_rejected(self, service, db_manager, project_id, hero_id):
        draft = EditService(db_manager).create_edit(project_id, hero_id, None, "Hello")
        service.publish(project_id, None, [{"element_id": hero_id, "new_value": "Hello", "edit_id": draft["id"]}])

        with pytest.raises(ConflictError, match="no longer drafts"):
            service.publish(project_id, None, [
                {"element_id": hero_id, "new_value": "Hello again", "edit_id": draft["id"]},
            ])

    @pytest.mark.parametrize("items", [
        [],
        [{"new_value": "x"}],
        [{"element_id": "e", "new_value": 3}],
    ])
    def test_malformed_batches(self, service, project_id, items):
        with pytest.raises(ValidationError):
            service.publish(project_id, None, items)

    def test_unchanged_value_is_rejected(self, service, project_id, hero_id):
        with pytest.raises(ValidationError):
            service.publish(project_id, None, [{"element_id": hero_id, "new_value": "Welcome to Acme"}])

    def test_duplicate_element_in_batch(self, service, project_id, hero_id):
        with pytest.raises(ValidationError):
            service.publish(project_id, None, [
                {"element_id": hero_id, "new_value": "A"},
                {"element_id": hero_id, "new_value": "B"},
            ])

    def test_unknown_element(self, service, project_id):
        with pytest.raises(NotFoundError):
            service.publish(project_id, None, [{"element_id": str(uuid4()), "new_value": "x"}])

    def test_fingerprint_ignores_order(self):
        a = edit_fingerprint([("1", "a", "b"), ("2", "c", "d")])
        b = edit_fingerprint([("2", "c", "d"), ("1", "a", "b")])
        assert a == b


class TestConcurrentPublish:

    def test_overlapping_publishes_yield_one_pr(self, tmp_path):
        db = DatabaseManager(f"sqlite:///{tmp_path / 'publish.db'}")
        db.init_db()
        with db.get_session() as session:
            project = Project(name="Acme", repo_full_name="acme/site", deployment_url="https://acme.test")
            session.add(project)
            session.flush()
            project_id = str(project.project_id)
        hero_id = add_element(db, project_id, "Hero Title", "Welcome to Acme")

        vcs = FakeVCS({"src/index.html": INDEX})
        vcs.release = threading.Event()
        service = PublishService(db, lambda project: vcs, lock_registry=ProjectLockRegistry())
        items = [{"element_id": hero_id, "new_value": "Hello"}]
        outcome = {}

        def first():
            outcome["first"] = service.publish(project_id, None, items)

        thread = threading.Thread(target=first)
        thread.start()
        assert vcs.entered.wait(timeout=5)

        with pytest.raises(ConflictError):
            service.publish(project_id, None, items)

        vcs.release.set()
        thread.join(timeout=5)

        assert outcome["first"]["pr_number"] == 1
        assert len(vcs.pull_requests) == 1
        with db.get_session() as session:
            assert session.query(PullRequest).count() == 1
            assert session.query(Edit).count() == 1
        db.dispose()


class TestRecordOutcome:

    def _publish(self, service, project_id, hero_id):
        return service.publish(project_id, None, [{"element_id": hero_id, "new_value": "Hello"}])

    def test_merged(self, service, db_manager, project_id, hero_id):
        pr = self._publish(service, project_id, hero_id)

        result = service.record_outcome("acme/site", pr["pr_number"], merged=True)

        assert result["status"] == "merged"
        with db_manager.get_session() as session:
            assert session.query(Edit).one().status == "approved"
            assert session.query(Element).one().current_value == "Hello"
            assert session.query(PullRequest).one().merged_at is not None

    def test_closed_unmerged(self, service, db_manager, project_id, hero_id):
        pr = self._publish(service, project_id, hero_id)

        service.record_outcome("acme/site", pr["pr_number"], merged=False)

        with db_manager.get_session() as session:
            assert session.query(Edit).one().status == "rejected"
            assert session.query(Element).one().current_value == "Welcome to Acme"
            assert session.query(PullRequest).one().status == "closed"

    def test_unknown_pr_is_ignored(self, service):
        assert service.record_outcome("acme/site", 99, merged=True) is None
