"""Element catalog store.

Persists crawler output as Elements keyed by (project, page_url, selector)
and derives Sections from source-mapped elements. Elements are never
deleted by a rescan so Edits and PullRequests referencing them stay valid.
"""

import logging
import math
import posixpath
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_

from ..analysis.classifier import KnownSources
from ..analysis.models import CONTAINER_TYPES, CandidateElement, ElementType, SourceLocation
from ..db import DatabaseManager
from ..db.models import Edit, Element, Project, Section
from ..errors import NotFoundError, ValidationError
from ..utils import parse_uuid

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
OPEN_EDIT_STATUSES = ("draft", "pending_review")


class ElementCatalog:
    """Upserts and reads the per-project element catalog.

    Args:
        db_manager: Database access
        section_line_gap: Max line distance between neighbouring elements
            of one section
    """

    def __init__(self, db_manager: DatabaseManager, section_line_gap: int = 20):
        self.db = db_manager
        self.section_line_gap = section_line_gap

    # =========================================================================
    # Upsert
    # =========================================================================

    def upsert(
        self,
        project_id: str,
        page_url: str,
        candidates: List[CandidateElement],
    ) -> Dict[str, Any]:
        """Insert-or-update candidates for one page.

        Existing rows keep their ``element_id``; rows missing from
        ``candidates`` are left as they are.

        Returns:
            Dict with inserted, updated and element_ids (candidate order)
        """
        pid = parse_uuid(project_id, "project_id")
        inserted = updated = 0
        now = datetime.utcnow()

        with self.db.get_session() as session:
            existing = {
                e.selector: e
                for e in session.query(Element).filter(
                    Element.project_id == pid,
                    Element.page_url == page_url,
                ).all()
            }

            touched: List[Element] = []
            for candidate in candidates:
                element = existing.get(candidate.selector)
                if element is None:
                    element = Element(project_id=pid, page_url=page_url, selector=candidate.selector)
                    session.add(element)
                    existing[candidate.selector] = element
                    inserted += 1
                else:
                    element.updated_at = now
                    updated += 1

                element.name = candidate.name
                element.element_type = candidate.element_type.value
                element.xpath = candidate.xpath
                element.current_value = candidate.current_value
                element.confidence = candidate.confidence
                source = candidate.source
                element.source_file = source.file_path if source else None
                element.source_line = source.line if source else None
                element.source_column = source.column if source else None
                touched.append(element)

            session.flush()

            for candidate, element in zip(candidates, touched):
                parent = existing.get(candidate.parent_selector) if candidate.parent_selector else None
                element.parent_id = parent.element_id if parent is not None else None

            element_ids = [str(e.element_id) for e in touched]

        logger.info(f"Catalog upsert {page_url}: {inserted} inserted, {updated} updated")
        return {"inserted": inserted, "updated": updated, "element_ids": element_ids}

    def known_sources(self, project_id: str, page_url: str) -> KnownSources:
        """Previously mapped source locations on a page, keyed by selector."""
        pid = parse_uuid(project_id, "project_id")
        with self.db.get_session() as session:
            rows = session.query(Element).filter(
                Element.project_id == pid,
                Element.page_url == page_url,
                Element.source_file.isnot(None),
            ).all()
            return {
                e.selector: (
                    e.current_value,
                    SourceLocation(e.source_file, e.source_line or 1, e.source_column or 1),
                )
                for e in rows
            }

    # =========================================================================
    # Reads
    # =========================================================================

    def list_elements(
        self,
        project_id: str,
        page: int = 1,
        limit: int = 50,
        element_type: Optional[str] = None,
        page_url: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Paginated element listing with optional filters."""
        if page < 1:
            raise ValidationError("page must be >= 1", page=page)
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", limit=limit)
        if element_type is not None:
            element_type = ElementType.coerce(element_type).value

        pid = parse_uuid(project_id, "project_id")
        with self.db.get_session() as session:
            self._require_project(session, pid)

            query = session.query(Element).filter(Element.project_id == pid)
            if element_type:
                query = query.filter(Element.element_type == element_type)
            if page_url:
                query = query.filter(Element.page_url == page_url)
            if search:
                pattern = f"%{search}%"
                query = query.filter(or_(
                    Element.name.ilike(pattern),
                    Element.current_value.ilike(pattern),
                ))

            total = query.count()
            rows = query.order_by(
                Element.page_url, Element.created_at, Element.selector
            ).offset((page - 1) * limit).limit(limit).all()

            return {
                "elements": [self.element_to_dict(e) for e in rows],
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "total_pages": math.ceil(total / limit) if total else 0,
                },
            }

    def get_element(self, project_id: str, element_id: str) -> Dict[str, Any]:
        """Element detail with its ten most recent edits."""
        pid = parse_uuid(project_id, "project_id")
        eid = parse_uuid(element_id, "element_id")
        with self.db.get_session() as session:
            element = session.query(Element).filter(
                Element.project_id == pid,
                Element.element_id == eid,
            ).first()
            if not element:
                raise NotFoundError("Element not found", element_id=str(eid))

            edits = session.query(Edit).filter(
                Edit.element_id == eid
            ).order_by(Edit.created_at.desc()).limit(10).all()

            result = self.element_to_dict(element)
            result["recent_edits"] = [
                {
                    "id": str(edit.edit_id),
                    "old_value": edit.old_value,
                    "new_value": edit.new_value,
                    "status": edit.status,
                    "created_at": edit.created_at.isoformat() if edit.created_at else None,
                }
                for edit in edits
            ]
            return result

    def elements_by_page(
        self,
        project_id: str,
        max_per_page: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Elements grouped by page, highest confidence first."""
        pid = parse_uuid(project_id, "project_id")
        with self.db.get_session() as session:
            rows = session.query(Element).filter(
                Element.project_id == pid
            ).order_by(Element.page_url, Element.confidence.desc(), Element.selector).all()

            grouped: Dict[str, List[Element]] = defaultdict(list)
            for element in rows:
                grouped[element.page_url].append(element)

            return [
                {
                    "page_url": url,
                    "element_count": len(elements),
                    "elements": [
                        self.element_to_dict(e) for e in elements[:max_per_page]
                    ],
                }
                for url, elements in grouped.items()
            ]

    # =========================================================================
    # Sections
    # =========================================================================

    def rebuild_sections(self, project_id: str) -> int:
        """Recompute sections from source-mapped elements.

        Elements of one file whose lines are within ``section_line_gap`` of
        their neighbour share a section. Returns the number of sections.
        """
        pid = parse_uuid(project_id, "project_id")
        with self.db.get_session() as session:
            session.query(Element).filter(
                Element.project_id == pid
            ).update({Element.section_id: None}, synchronize_session=False)
            session.query(Section).filter(Section.project_id == pid).delete(synchronize_session=False)

            mapped = session.query(Element).filter(
                Element.project_id == pid,
                Element.source_file.isnot(None),
                Element.source_line.isnot(None),
            ).order_by(Element.source_file, Element.source_line).all()

            by_file: Dict[str, List[Element]] = defaultdict(list)
            for element in mapped:
                by_file[element.source_file].append(element)

            count = 0
            for source_file, elements in by_file.items():
                for cluster in self._cluster(elements):
                    start = cluster[0].source_line
                    end = cluster[-1].source_line
                    section = Section(
                        project_id=pid,
                        name=self._section_name(source_file, cluster),
                        description=f"{len(cluster)} elements in {source_file}",
                        source_file=source_file,
                        start_line=start,
                        end_line=end,
                    )
                    session.add(section)
                    session.flush()
                    for element in cluster:
                        element.section_id = section.section_id
                    count += 1

        logger.info(f"Rebuilt {count} sections for project {pid}")
        return count

    def _cluster(self, elements: List[Element]) -> List[List[Element]]:
        clusters: List[List[Element]] = []
        for element in elements:
            if clusters and element.source_line - clusters[-1][-1].source_line <= self.section_line_gap:
                clusters[-1].append(element)
            else:
                clusters.append([element])
        return clusters

    @staticmethod
    def _section_name(source_file: str, cluster: List[Element]) -> str:
        containers = {t.value for t in CONTAINER_TYPES}
        for element in cluster:
            if element.element_type in containers:
                return element.name
        for element in cluster:
            if element.element_type == ElementType.HEADING.value:
                return element.name
        return f"{posixpath.basename(source_file)} (lines {cluster[0].source_line}-{cluster[-1].source_line})"

    def list_sections(self, project_id: str) -> List[Dict[str, Any]]:
        """Sections with element and open-edit counts."""
        pid = parse_uuid(project_id, "project_id")
        with self.db.get_session() as session:
            self._require_project(session, pid)

            element_counts = dict(
                session.query(Element.section_id, func.count(Element.element_id))
                .filter(Element.project_id == pid, Element.section_id.isnot(None))
                .group_by(Element.section_id).all()
            )
            edit_counts = dict(
                session.query(Element.section_id, func.count(Edit.edit_id))
                .join(Edit, Edit.element_id == Element.element_id)
                .filter(
                    Element.project_id == pid,
                    Element.section_id.isnot(None),
                    Edit.status.in_(OPEN_EDIT_STATUSES),
                )
                .group_by(Element.section_id).all()
            )

            sections = session.query(Section).filter(
                Section.project_id == pid
            ).order_by(Section.source_file, Section.start_line).all()

            return [
                self._section_to_dict(
                    s,
                    element_count=element_counts.get(s.section_id, 0),
                    pending_edit_count=edit_counts.get(s.section_id, 0),
                )
                for s in sections
            ]

    def get_section(self, project_id: str, section_id: str) -> Dict[str, Any]:
        pid = parse_uuid(project_id, "project_id")
        sid = parse_uuid(section_id, "section_id")
        with self.db.get_session() as session:
            section = session.query(Section).filter(
                Section.project_id == pid,
                Section.section_id == sid,
            ).first()
            if not section:
                raise NotFoundError("Section not found", section_id=str(sid))

            elements = session.query(Element).filter(
                Element.section_id == sid
            ).order_by(Element.source_line).all()

            result = self._section_to_dict(section, element_count=len(elements))
            result["elements"] = [self.element_to_dict(e) for e in elements]
            return result

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _require_project(session, pid) -> Project:
        project = session.query(Project).filter(Project.project_id == pid).first()
        if not project:
            raise NotFoundError("Project not found", project_id=str(pid))
        return project

    @staticmethod
    def element_to_dict(element: Element) -> Dict[str, Any]:
        """Convert an Element ORM object to a dict."""
        return {
            "id": str(element.element_id),
            "project_id": str(element.project_id),
            "section_id": str(element.section_id) if element.section_id else None,
            "parent_id": str(element.parent_id) if element.parent_id else None,
            "name": element.name,
            "type": element.element_type,
            "selector": element.selector,
            "xpath": element.xpath,
            "page_url": element.page_url,
            "current_value": element.current_value,
            "confidence": element.confidence,
            "source_file": element.source_file,
            "source_line": element.source_line,
            "source_column": element.source_column,
            "created_at": element.created_at.isoformat() if element.created_at else None,
            "updated_at": element.updated_at.isoformat() if element.updated_at else None,
        }

    @staticmethod
    def _section_to_dict(section: Section, element_count: int = 0, pending_edit_count: int = 0) -> Dict[str, Any]:
        return {
            "id": str(section.section_id),
            "name": section.name,
            "description": section.description,
            "source_file": section.source_file,
            "start_line": section.start_line,
            "end_line": section.end_line,
            "element_count": element_count,
            "pending_edit_count": pending_edit_count,
        }
