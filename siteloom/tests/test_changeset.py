"""Tests for exact-match changeset generation."""

import pytest

from siteloom.core.errors import AmbiguousMatch, SourceUnresolved
from siteloom.core.publishing import ChangeRequest, ChangesetGenerator
from siteloom.core.utils import count_occurrences
from siteloom.tests.fakes import FakeVCS

INDEX = "<h1>Welcome to Acme</h1>\n<p>We build rockets.</p>\n<a>Buy now</a>\n"


def _request(element_id, old, new, source_file="src/index.html", name=None, element_type="heading"):
    return ChangeRequest(
        element_id=element_id,
        element_name=name or f"Element {element_id}",
        element_type=element_type,
        old_value=old,
        new_value=new,
        source_file=source_file,
        source_line=1,
    )


class TestCountOccurrences:

    def test_overlapping(self):
        assert count_occurrences("aaa", "aa") == 2

    def test_empty_needle(self):
        assert count_occurrences("abc", "") == 0


class TestChangesetGenerator:

    def test_single_occurrence_is_replaced(self):
        vcs = FakeVCS({"src/index.html": INDEX})
        changeset = ChangesetGenerator(vcs, "main").generate([
            _request("e1", "Welcome to Acme", "Hello from Acme"),
        ])

        change = changeset.files[0]
        assert change.new_content == INDEX.replace("Welcome to Acme", "Hello from Acme")
        assert "-<h1>Welcome to Acme</h1>" in change.diff
        assert "+<h1>Hello from Acme</h1>" in change.diff
        assert change.diff.startswith("--- a/src/index.html\n+++ b/src/index.html")

    def test_edits_aggregate_per_file_in_order(self):
        vcs = FakeVCS({"src/index.html": INDEX, "src/about.html": "<h2>About</h2>"})
        changeset = ChangesetGenerator(vcs, "main").generate([
            _request("e1", "Welcome to Acme", "Hi"),
            _request("e2", "About", "About us", source_file="src/about.html"),
            _request("e3", "Buy now", "Order today"),
        ])

        assert [f.path for f in changeset.files] == ["src/index.html", "src/about.html"]
        assert changeset.edit_count == 3
        assert "Order today" in changeset.files[0].new_content
        assert changeset.files[0].descriptions == [
            'Update Element e1: "Welcome to Acme" -> "Hi"',
            'Update Element e3: "Buy now" -> "Order today"',
        ]

    def test_later_edit_sees_earlier_replacement(self):
        vcs = FakeVCS({"src/index.html": "<p>Acme</p><p>Acme Rockets</p>"})
        with pytest.raises(AmbiguousMatch):
            ChangesetGenerator(vcs, "main").generate([_request("e1", "Acme", "X")])

        changeset = ChangesetGenerator(vcs, "main").generate([
            _request("e1", "Acme Rockets", "Rockets"),
            _request("e2", "Acme", "Acme Inc"),
        ])
        assert changeset.files[0].new_content == "<p>Acme Inc</p><p>Rockets</p>"

    def test_zero_matches_is_ambiguous(self):
        vcs = FakeVCS({"src/index.html": INDEX})
        with pytest.raises(AmbiguousMatch) as exc_info:
            ChangesetGenerator(vcs, "main").generate([_request("e1", "Not there", "x")])
        assert exc_info.value.match_count == 0
        assert exc_info.value.status_code == 422

    def test_all_failures_are_reported(self):
        vcs = FakeVCS({"src/index.html": INDEX + "<p>We build rockets.</p>"})
        with pytest.raises(SourceUnresolved) as exc_info:
            ChangesetGenerator(vcs, "main").generate([
                _request("e1", "Welcome to Acme", "Hi", source_file=None),
                _request("e2", "We build rockets.", "x"),
                _request("e3", "Buy now", "Order"),
            ])

        failures = exc_info.value.failures
        assert [(f["element_id"], f["reason"]) for f in failures] == [
            ("e1", "source_unresolved"),
            ("e2", "ambiguous_match"),
        ]
        assert failures[1]["match_count"] == 2

    def test_missing_file_is_unresolved(self):
        vcs = FakeVCS({})
        with pytest.raises(SourceUnresolved):
            ChangesetGenerator(vcs, "main").generate([_request("e1", "Welcome", "Hi")])

    def test_file_fetched_once(self):
        vcs = FakeVCS({"src/index.html": INDEX})
        calls = []
        original = vcs.get_file_content
        vcs.get_file_content = lambda path, ref: calls.append(path) or original(path, ref)

        ChangesetGenerator(vcs, "main").generate([
            _request("e1", "Welcome to Acme", "Hi"),
            _request("e2", "Buy now", "Order"),
        ])
        assert calls == ["src/index.html"]
