"""Tests for the draft edit buffer and the edit lifecycle."""

from uuid import uuid4

import pytest

from siteloom.core.editing import EditService, StateTransitionError, validate_transition
from siteloom.core.editing.state_machine import is_transition_valid
from siteloom.core.errors import NotFoundError, ValidationError
from siteloom.tests.fakes import add_element


@pytest.fixture
def service(db_manager):
    return EditService(db_manager)


@pytest.fixture
def element_id(db_manager, project_id):
    return add_element(db_manager, project_id, "Hero Title", "Welcome to Acme")


class TestTransitions:

    @pytest.mark.parametrize("current,new", [
        ("draft", "pending_review"),
        ("pending_review", "approved"),
        ("pending_review", "rejected"),
    ])
    def test_forward_transitions(self, current, new):
        assert is_transition_valid(current, new)
        validate_transition(current, new)

    @pytest.mark.parametrize("current,new", [
        ("draft", "approved"),
        ("approved", "draft"),
        ("rejected", "pending_review"),
    ])
    def test_blocked_transitions(self, current, new):
        with pytest.raises(StateTransitionError) as exc_info:
            validate_transition(current, new)
        assert exc_info.value.status_code == 400

    def test_same_status_is_noop(self):
        validate_transition("approved", "approved")

    def test_override_skips_matrix(self):
        validate_transition("approved", "draft", override=True)

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            validate_transition("draft", "shipped")


class TestEditService:

    def test_create_captures_current_value(self, service, project_id, element_id):
        edit = service.create_edit(project_id, element_id, str(uuid4()), "Hello from Acme")

        assert edit["status"] == "draft"
        assert edit["old_value"] == "Welcome to Acme"
        assert edit["new_value"] == "Hello from Acme"
        assert edit["element"]["name"] == "Hero Title"

    def test_drafts_accumulate_on_same_element(self, service, project_id, element_id):
        service.create_edit(project_id, element_id, None, "One")
        service.create_edit(project_id, element_id, None, "Two")

        listed = service.list_edits(project_id, element_id=element_id)
        assert listed["pagination"]["total"] == 2

    def test_create_for_unknown_element(self, service, project_id):
        with pytest.raises(NotFoundError):
            service.create_edit(project_id, str(uuid4()), None, "Hi")

    def test_list_filters_by_status(self, service, project_id, element_id):
        edit = service.create_edit(project_id, element_id, None, "One")
        service.create_edit(project_id, element_id, None, "Two")
        service.set_status(project_id, edit["id"], "pending_review")

        drafts = service.list_edits(project_id, status="draft")
        assert [e["new_value"] for e in drafts["edits"]] == ["Two"]

    def test_list_rejects_unknown_status(self, service, project_id):
        with pytest.raises(ValidationError):
            service.list_edits(project_id, status="merged")

    def test_update_and_delete_draft(self, service, project_id, element_id):
        edit = service.create_edit(project_id, element_id, None, "One")

        assert service.update_draft(project_id, edit["id"], "Uno")["new_value"] == "Uno"
        assert service.delete_draft(project_id, edit["id"]) is True
        assert service.list_edits(project_id)["pagination"]["total"] == 0

    def test_non_draft_is_read_only(self, service, project_id, element_id):
        edit = service.create_edit(project_id, element_id, None, "One")
        service.set_status(project_id, edit["id"], "pending_review")

        with pytest.raises(ValidationError):
            service.update_draft(project_id, edit["id"], "Uno")
        with pytest.raises(ValidationError):
            service.delete_draft(project_id, edit["id"])

    def test_invalid_status_change(self, service, project_id, element_id):
        edit = service.create_edit(project_id, element_id, None, "One")
        with pytest.raises(StateTransitionError):
            service.set_status(project_id, edit["id"], "approved")

    def test_override_reopens_as_draft(self, service, project_id, element_id):
        edit = service.create_edit(project_id, element_id, None, "One")
        service.set_status(project_id, edit["id"], "pending_review")
        service.set_status(project_id, edit["id"], "rejected")

        reopened = service.set_status(project_id, edit["id"], "draft", override=True)
        assert reopened["status"] == "draft"
        assert reopened["pull_request_id"] is None

    def test_malformed_id(self, service, project_id):
        with pytest.raises(ValidationError):
            service.update_draft(project_id, "not-a-uuid", "x")
