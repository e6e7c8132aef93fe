"""Tests for the element catalog store."""

import pytest

from siteloom.core.analysis.classifier import ElementClassifier
from siteloom.core.analysis.models import CandidateElement, ElementType, SourceLocation
from siteloom.core.catalog import ElementCatalog
from siteloom.core.db.models import Edit, Element
from siteloom.core.errors import NotFoundError, ValidationError
from siteloom.tests.fakes import HOME_HTML

PAGE = "https://acme.test"


def _candidate(selector, value, element_type=ElementType.HEADING, source=None, parent=None):
    return CandidateElement(
        name=f"Element {selector}",
        element_type=element_type,
        selector=selector,
        current_value=value,
        confidence=0.9,
        parent_selector=parent,
        source=source,
    )


class TestUpsert:

    def test_rescan_keeps_ids_and_adds_no_rows(self, db_manager, project_id):
        catalog = ElementCatalog(db_manager)
        candidates = ElementClassifier().classify_page(HOME_HTML, PAGE)

        first = catalog.upsert(project_id, PAGE, candidates)
        again = ElementClassifier().classify_page(HOME_HTML, PAGE)
        second = catalog.upsert(project_id, PAGE, again)

        assert first["inserted"] == 3
        assert second == {"inserted": 0, "updated": 3, "element_ids": first["element_ids"]}
        with db_manager.get_session() as session:
            assert session.query(Element).count() == 3

    def test_value_change_updates_in_place(self, db_manager, project_id):
        catalog = ElementCatalog(db_manager)
        first = catalog.upsert(project_id, PAGE, [_candidate("#title", "Old")])
        second = catalog.upsert(project_id, PAGE, [_candidate("#title", "New")])

        assert second["element_ids"] == first["element_ids"]
        element = catalog.get_element(project_id, first["element_ids"][0])
        assert element["current_value"] == "New"

    def test_missing_candidates_are_kept(self, db_manager, project_id):
        catalog = ElementCatalog(db_manager)
        catalog.upsert(project_id, PAGE, [_candidate("#a", "A"), _candidate("#b", "B")])
        catalog.upsert(project_id, PAGE, [_candidate("#a", "A")])

        assert catalog.list_elements(project_id)["pagination"]["total"] == 2

    def test_parent_resolved_from_selector(self, db_manager, project_id):
        catalog = ElementCatalog(db_manager)
        result = catalog.upsert(project_id, PAGE, [
            _candidate("section.hero", None, ElementType.HERO),
            _candidate("section.hero > h1", "Launch", parent="section.hero"),
        ])
        hero_id, heading_id = result["element_ids"]

        assert catalog.get_element(project_id, heading_id)["parent_id"] == hero_id

    def test_known_sources(self, db_manager, project_id):
        catalog = ElementCatalog(db_manager)
        location = SourceLocation("src/index.html", 4, 9)
        catalog.upsert(project_id, PAGE, [_candidate("#title", "Hello", source=location), _candidate("p", "x")])

        assert catalog.known_sources(project_id, PAGE) == {"#title": ("Hello", location)}


class TestReads:

    def test_list_filters_and_pagination(self, db_manager, project_id):
        catalog = ElementCatalog(db_manager)
        catalog.upsert(project_id, PAGE, ElementClassifier().classify_page(HOME_HTML, PAGE))

        headings = catalog.list_elements(project_id, element_type="heading")
        assert [e["name"] for e in headings["elements"]] == ["Hero Title"]

        paged = catalog.list_elements(project_id, page=2, limit=2)
        assert paged["pagination"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}
        assert len(paged["elements"]) == 1

        found = catalog.list_elements(project_id, search="rockets")
        assert found["pagination"]["total"] == 1

    def test_invalid_limit(self, db_manager, project_id):
        with pytest.raises(ValidationError):
            ElementCatalog(db_manager).list_elements(project_id, limit=500)

    def test_unknown_element(self, db_manager, project_id):
        with pytest.raises(NotFoundError):
            ElementCatalog(db_manager).get_element(project_id, "00000000-0000-0000-0000-000000000000")

    def test_elements_by_page_sorted_by_confidence(self, db_manager, project_id):
        catalog = ElementCatalog(db_manager)
        catalog.upsert(project_id, PAGE, ElementClassifier().classify_page(HOME_HTML, PAGE))

        pages = catalog.elements_by_page(project_id)
        assert len(pages) == 1
        confidences = [e["confidence"] for e in pages[0]["elements"]]
        assert confidences == sorted(confidences, reverse=True)


class TestSections:

    def test_clusters_by_file_and_line_gap(self, db_manager, project_id):
        catalog = ElementCatalog(db_manager, section_line_gap=10)
        result = catalog.upsert(project_id, PAGE, [
            _candidate("#title", "Hello", source=SourceLocation("src/index.html", 3, 1)),
            _candidate("#lead", "Lead", ElementType.PARAGRAPH, source=SourceLocation("src/index.html", 8, 1)),
            _candidate("#late", "Late", ElementType.PARAGRAPH, source=SourceLocation("src/index.html", 80, 1)),
            _candidate("#unmapped", "Nowhere"),
        ])

        assert catalog.rebuild_sections(project_id) == 2
        sections = catalog.list_sections(project_id)
        assert [(s["start_line"], s["end_line"], s["element_count"]) for s in sections] == [(3, 8, 2), (80, 80, 1)]
        assert sections[0]["name"] == "Element #title"
        assert sections[1]["name"] == "index.html (lines 80-80)"

        detail = catalog.get_section(project_id, sections[0]["id"])
        assert [e["id"] for e in detail["elements"]] == result["element_ids"][:2]

    def test_pending_edit_count(self, db_manager, project_id):
        catalog = ElementCatalog(db_manager)
        result = catalog.upsert(project_id, PAGE, [
            _candidate("#title", "Hello", source=SourceLocation("src/index.html", 3, 1)),
        ])
        catalog.rebuild_sections(project_id)
        with db_manager.get_session() as session:
            session.add(Edit(
                element_id=result["element_ids"][0], project_id=project_id,
                old_value="Hello", new_value="Hi there", status="draft",
            ))

        assert catalog.list_sections(project_id)[0]["pending_edit_count"] == 1

    def test_rebuild_is_repeatable(self, db_manager, project_id):
        catalog = ElementCatalog(db_manager)
        catalog.upsert(project_id, PAGE, [
            _candidate("#title", "Hello", source=SourceLocation("src/index.html", 3, 1)),
        ])
        catalog.rebuild_sections(project_id)
        catalog.rebuild_sections(project_id)
        assert len(catalog.list_sections(project_id)) == 1
