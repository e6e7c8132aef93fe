"""Draft edit buffer.

Edits start as drafts capturing the element's value at creation time.
Drafts accumulate per project with no conflict detection between drafts
on the same element; publishing (see ``publishing.service``) moves them on.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional

from ..db import DatabaseManager
from ..db.models import Edit, Element, Project
from ..errors import NotFoundError, ValidationError
from ..utils import parse_uuid
from .state_machine import TRANSITION_MATRIX, validate_transition

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class EditService:
    """Create, list and manage draft edits."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager
        logger.info("EditService initialized")

    def create_edit(
        self,
        project_id: str,
        element_id: str,
        user_id: Optional[str],
        new_value: str,
    ) -> Dict[str, Any]:
        """Create a draft edit; ``old_value`` is the element's current value."""
        if not isinstance(new_value, str):
            raise ValidationError("new_value must be a string")
        pid = parse_uuid(project_id, "project_id")
        eid = parse_uuid(element_id, "element_id")
        uid = parse_uuid(user_id, "user_id") if user_id else None

        with self.db.get_session() as session:
            element = session.query(Element).filter(
                Element.element_id == eid,
                Element.project_id == pid,
            ).first()
            if not element:
                raise NotFoundError("Element not found", element_id=str(eid))

            edit = Edit(
                element_id=eid,
                project_id=pid,
                user_id=uid,
                old_value=element.current_value,
                new_value=new_value,
                status="draft",
            )
            session.add(edit)
            session.flush()

            logger.info(f"Created draft edit {edit.edit_id} for element {eid}")
            return self.edit_to_dict(edit, element)

    def list_edits(
        self,
        project_id: str,
        status: Optional[str] = None,
        element_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Dict[str, Any]:
        if status is not None and status not in TRANSITION_MATRIX:
            raise ValidationError(f"Unknown edit status: {status}", status=status)
        if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError("Invalid pagination", page=page, limit=limit)

        pid = parse_uuid(project_id, "project_id")
        with self.db.get_session() as session:
            if not session.query(Project).filter(Project.project_id == pid).first():
                raise NotFoundError("Project not found", project_id=str(pid))

            query = session.query(Edit, Element).join(
                Element, Edit.element_id == Element.element_id
            ).filter(Edit.project_id == pid)
            if status:
                query = query.filter(Edit.status == status)
            if element_id:
                query = query.filter(Edit.element_id == parse_uuid(element_id, "element_id"))

            total = query.count()
            rows = query.order_by(Edit.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

            return {
                "edits": [self.edit_to_dict(edit, element) for edit, element in rows],
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "total_pages": math.ceil(total / limit) if total else 0,
                },
            }

    def update_draft(self, project_id: str, edit_id: str, new_value: str) -> Dict[str, Any]:
        if not isinstance(new_value, str):
            raise ValidationError("new_value must be a string")
        with self.db.get_session() as session:
            edit = self._get_edit(session, project_id, edit_id)
            if edit.status != "draft":
                raise ValidationError("Only draft edits can be changed", status=edit.status)
            edit.new_value = new_value
            edit.updated_at = datetime.utcnow()
            session.flush()
            return self.edit_to_dict(edit, edit.element)

    def delete_draft(self, project_id: str, edit_id: str) -> bool:
        with self.db.get_session() as session:
            edit = self._get_edit(session, project_id, edit_id)
            if edit.status != "draft":
                raise ValidationError("Only draft edits can be deleted", status=edit.status)
            session.delete(edit)
            logger.info(f"Deleted draft edit {edit_id}")
            return True

    def set_status(
        self,
        project_id: str,
        edit_id: str,
        status: str,
        override: bool = False,
    ) -> Dict[str, Any]:
        """Move an edit along the lifecycle (``override`` skips the matrix)."""
        with self.db.get_session() as session:
            edit = self._get_edit(session, project_id, edit_id)
            validate_transition(edit.status, status, override=override)
            previous = edit.status
            edit.status = status
            if status == "draft":
                # Reopened drafts can be published again
                edit.pull_request_id = None
            edit.updated_at = datetime.utcnow()
            session.flush()
            logger.info(f"Edit {edit_id}: {previous} -> {status}")
            return self.edit_to_dict(edit, edit.element)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _get_edit(session, project_id: str, edit_id: str) -> Edit:
        pid = parse_uuid(project_id, "project_id")
        eid = parse_uuid(edit_id, "edit_id")
        edit = session.query(Edit).filter(
            Edit.edit_id == eid,
            Edit.project_id == pid,
        ).first()
        if not edit:
            raise NotFoundError("Edit not found", edit_id=str(eid))
        return edit

    @staticmethod
    def edit_to_dict(edit: Edit, element: Optional[Element] = None) -> Dict[str, Any]:
        """Convert an Edit ORM object (and optionally its element) to a dict."""
        result = {
            "id": str(edit.edit_id),
            "element_id": str(edit.element_id),
            "project_id": str(edit.project_id),
            "user_id": str(edit.user_id) if edit.user_id else None,
            "old_value": edit.old_value,
            "new_value": edit.new_value,
            "status": edit.status,
            "pull_request_id": str(edit.pull_request_id) if edit.pull_request_id else None,
            "created_at": edit.created_at.isoformat() if edit.created_at else None,
            "updated_at": edit.updated_at.isoformat() if edit.updated_at else None,
        }
        if element is not None:
            result["element"] = {
                "id": str(element.element_id),
                "name": element.name,
                "type": element.element_type,
                "page_url": element.page_url,
                "selector": element.selector,
            }
        return result
