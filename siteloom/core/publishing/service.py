"""Publish orchestration: the atomic boundary from edits to pull request.

publish() steps:
1. Validate the batch and load project/elements (no lock, no writes)
2. Take the per-project publish lock without waiting (busy -> ConflictError)
3. Re-check: referenced edits still unbound drafts, no open PR with the
   same edit fingerprint
4. Generate the changeset; any diff failure aborts with nothing written
5. Persist drafts for new items
6. Branch, commits, pull request (failure leaves drafts as drafts)
7. One transaction: insert the PullRequest row and move every edit
   draft -> pending_review (row count must match)
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_

from ..db import DatabaseManager
from ..db.models import Edit, Element, Project, PullRequest
from ..editing.state_machine import StateTransitionError, validate_transition
from ..errors import ConflictError, NotFoundError, ValidationError
from ..gateways.base import VersionControlGateway
from ..locks import ProjectLockRegistry, get_lock_registry
from ..utils import parse_uuid
from ...setting import PublishSettings
from .changeset import ChangeRequest, ChangesetGenerator
from .publisher import Publisher

logger = logging.getLogger(__name__)

LOCK_NAMESPACE = "publish"


@dataclass
class PublishItem:
    """One entry of a publish request."""
    element_id: str
    new_value: str
    original_value: Optional[str] = None
    edit_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PublishItem":
        return cls(
            element_id=data.get("element_id"),
            new_value=data.get("new_value"),
            original_value=data.get("original_value"),
            edit_id=data.get("edit_id"),
        )


@dataclass
class _Resolved:
    """A validated item with everything the later steps need."""
    item: PublishItem
    element_id: UUID
    edit_id: Optional[UUID]
    request: ChangeRequest


def edit_fingerprint(triples: Sequence[tuple]) -> str:
    """SHA-256 over sorted (element_id, old_value, new_value) triples."""
    canonical = json.dumps(sorted(["" if v is None else str(v) for v in t] for t in triples))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class PublishService:
    """Publish edit batches and record pull request outcomes.

    Args:
        db_manager: Database access
        vcs_factory: Callable mapping a Project to its VersionControlGateway
        settings: Branch and title prefixes
        lock_registry: Per-project lock registry (process-wide by default)
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        vcs_factory: Callable[[Project], VersionControlGateway],
        settings: Optional[PublishSettings] = None,
        lock_registry: Optional[ProjectLockRegistry] = None,
    ):
        self.db = db_manager
        self._vcs_factory = vcs_factory
        self.settings = settings or PublishSettings()
        self._locks = lock_registry or get_lock_registry()

    # =========================================================================
    # Publish
    # =========================================================================

    def publish(
        self,
        project_id: str,
        user_id: Optional[str],
        items: Sequence[Any],
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Publish a batch of edits as one pull request.

        Raises:
            ValidationError: malformed batch
            NotFoundError: project, element or edit missing
            ConflictError: publish in progress, edit already bound, or an
                open PR already covers this exact edit set
            SourceUnresolved / AmbiguousMatch: unsafe batch, nothing written
            UpstreamError: version-control host failed, drafts kept
        """
        pid = parse_uuid(project_id, "project_id")
        uid = parse_uuid(user_id, "user_id") if user_id else None
        batch = self._coerce_items(items)
        project, resolved = self._resolve(pid, batch)
        fingerprint = edit_fingerprint([
            (str(r.element_id), r.request.old_value, r.request.new_value) for r in resolved
        ])

        with self._locks.hold(
            LOCK_NAMESPACE,
            str(pid),
            blocking=False,
            conflict_message="A publish is already in progress for this project",
        ):
            self._recheck(pid, resolved, fingerprint)

            vcs = self._vcs_factory(project)
            changeset = ChangesetGenerator(vcs, project.target_branch).generate(
                [r.request for r in resolved]
            )

            edit_ids = self._persist_drafts(pid, uid, resolved)

            publisher = Publisher(
                vcs,
                branch_prefix=self.settings.branch_prefix,
                title_prefix=self.settings.title_prefix,
            )
            result = publisher.publish(
                str(pid), project.target_branch, changeset, title=title, description=description
            )

            return self._finalize(pid, uid, edit_ids, fingerprint, result)

    def _coerce_items(self, items: Sequence[Any]) -> List[PublishItem]:
        if not items:
            raise ValidationError("At least one edit is required")
        batch = [i if isinstance(i, PublishItem) else PublishItem.from_dict(i) for i in items]

        seen = set()
        for item in batch:
            if not item.element_id:
                raise ValidationError("Each edit needs an element_id")
            if not isinstance(item.new_value, str):
                raise ValidationError("Each edit needs a string new_value", element_id=str(item.element_id))
            key = str(parse_uuid(item.element_id, "element_id"))
            if key in seen:
                raise ValidationError("An element may appear only once per publish", element_id=key)
            seen.add(key)
        return batch

    def _resolve(self, pid: UUID, batch: List[PublishItem]):
        """Load project, elements and referenced edits; build change requests."""
        with self.db.get_session() as session:
            project = session.query(Project).filter(Project.project_id == pid).first()
            if not project:
                raise NotFoundError("Project not found", project_id=str(pid))
            if project.status == "archived":
                raise ValidationError("Project is archived", project_id=str(pid))

            element_ids = [parse_uuid(i.element_id, "element_id") for i in batch]
            elements = {
                e.element_id: e
                for e in session.query(Element).filter(
                    Element.project_id == pid,
                    Element.element_id.in_(element_ids),
                ).all()
            }
            missing = [str(eid) for eid in element_ids if eid not in elements]
            if missing:
                raise NotFoundError("Elements not found", element_ids=missing)

            resolved: List[_Resolved] = []
            for item, eid in zip(batch, element_ids):
                element = elements[eid]
                edit_uuid = None
                original = item.original_value
                if item.edit_id:
                    edit_uuid = parse_uuid(item.edit_id, "edit_id")
                    edit = session.query(Edit).filter(
                        Edit.edit_id == edit_uuid,
                        Edit.project_id == pid,
                        Edit.element_id == eid,
                    ).first()
                    if not edit:
                        raise NotFoundError("Edit not found", edit_id=str(edit_uuid))
                    if original is None:
                        original = edit.old_value
                if original is None:
                    original = element.current_value

                if item.new_value == original:
                    raise ValidationError("New value equals the original value", element_id=str(eid))

                resolved.append(_Resolved(
                    item=item,
                    element_id=eid,
                    edit_id=edit_uuid,
                    request=ChangeRequest(
                        element_id=str(eid),
                        element_name=element.name,
                        element_type=element.element_type,
                        old_value=original,
                        new_value=item.new_value,
                        source_file=element.source_file,
                        source_line=element.source_line,
                    ),
                ))

            return project, resolved

    def _recheck(self, pid: UUID, resolved: List[_Resolved], fingerprint: str) -> None:
        """State checks repeated under the lock, right before any write."""
        with self.db.get_session() as session:
            edit_ids = [r.edit_id for r in resolved if r.edit_id]
            if edit_ids:
                bound = session.query(Edit).filter(
                    Edit.edit_id.in_(edit_ids),
                ).filter(
                    or_(Edit.status != "draft", Edit.pull_request_id.isnot(None))
                ).all()
                if bound:
                    raise ConflictError(
                        "Edits are no longer drafts",
                        edit_ids=[str(e.edit_id) for e in bound],
                    )

            duplicate = session.query(PullRequest).filter(
                PullRequest.project_id == pid,
                PullRequest.status == "open",
                PullRequest.edit_fingerprint == fingerprint,
            ).first()
            if duplicate:
                raise ConflictError(
                    "An open pull request already covers these edits",
                    pr_number=duplicate.pr_number,
                    pr_url=duplicate.pr_url,
                )

    def _persist_drafts(self, pid: UUID, uid: Optional[UUID], resolved: List[_Resolved]) -> List[UUID]:
        """Create drafts for new items; sync submitted values on existing ones.

        An unbound draft with the same element and values (left by a publish
        whose pull request could not be opened) is reused, not duplicated.
        """
        edit_ids: List[UUID] = []
        with self.db.get_session() as session:
            for r in resolved:
                if r.edit_id:
                    edit = session.query(Edit).filter(Edit.edit_id == r.edit_id).one()
                    if edit.new_value != r.request.new_value:
                        edit.new_value = r.request.new_value
                        edit.updated_at = datetime.utcnow()
                    edit_ids.append(edit.edit_id)
                    continue

                leftover = session.query(Edit).filter(
                    Edit.project_id == pid,
                    Edit.element_id == r.element_id,
                    Edit.status == "draft",
                    Edit.pull_request_id.is_(None),
                    Edit.old_value == r.request.old_value,
                    Edit.new_value == r.request.new_value,
                ).order_by(Edit.created_at).first()
                if leftover is not None:
                    edit_ids.append(leftover.edit_id)
                    continue

                edit = Edit(
                    element_id=r.element_id,
                    project_id=pid,
                    user_id=uid,
                    old_value=r.request.old_value,
                    new_value=r.request.new_value,
                    status="draft",
                )
                session.add(edit)
                session.flush()
                edit_ids.append(edit.edit_id)
        return edit_ids

    def _finalize(self, pid: UUID, uid: Optional[UUID], edit_ids: List[UUID], fingerprint: str, result) -> Dict[str, Any]:
        with self.db.get_session() as session:
            pr = PullRequest(
                project_id=pid,
                user_id=uid,
                pr_number=result.pr_number,
                pr_url=result.pr_url,
                branch_name=result.branch_name,
                title=result.title[:255],
                description=result.description,
                status="open",
                edit_fingerprint=fingerprint,
            )
            session.add(pr)
            session.flush()

            moved = session.query(Edit).filter(
                Edit.edit_id.in_(edit_ids),
                Edit.status == "draft",
                Edit.pull_request_id.is_(None),
            ).update(
                {
                    Edit.status: "pending_review",
                    Edit.pull_request_id: pr.pull_request_id,
                    Edit.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
            if moved != len(edit_ids):
                logger.error(
                    f"PR #{result.pr_number} opened but only {moved}/{len(edit_ids)} edits "
                    f"were still drafts; rolling back"
                )
                raise ConflictError(
                    "Edits changed while publishing",
                    pr_number=result.pr_number,
                    pr_url=result.pr_url,
                )

            logger.info(f"Published {len(edit_ids)} edits as PR #{result.pr_number}")
            return self.pull_request_to_dict(pr, edit_count=len(edit_ids))

    # =========================================================================
    # Outcomes
    # =========================================================================

    def record_outcome(self, repo_full_name: str, pr_number: int, merged: bool) -> Optional[Dict[str, Any]]:
        """Apply a provider "pull request closed" event.

        Merged: PR merged, edits approved, element values updated.
        Closed: PR closed, edits rejected. Unknown PRs are ignored.
        """
        now = datetime.utcnow()
        with self.db.get_session() as session:
            pr = session.query(PullRequest).join(
                Project, PullRequest.project_id == Project.project_id
            ).filter(
                Project.repo_full_name == repo_full_name,
                PullRequest.pr_number == pr_number,
            ).order_by(PullRequest.created_at.desc()).first()
            if not pr:
                logger.info(f"Ignoring outcome for unknown PR {repo_full_name}#{pr_number}")
                return None

            pr.status = "merged" if merged else "closed"
            pr.merged_at = now if merged else None
            pr.updated_at = now
            edit_status = "approved" if merged else "rejected"

            edits = session.query(Edit).filter(Edit.pull_request_id == pr.pull_request_id).all()
            for edit in edits:
                try:
                    validate_transition(edit.status, edit_status)
                except StateTransitionError:
                    logger.warning(f"Edit {edit.edit_id} is {edit.status}, leaving it")
                    continue
                edit.status = edit_status
                edit.updated_at = now
                if merged:
                    element = session.query(Element).filter(Element.element_id == edit.element_id).first()
                    if element is not None:
                        element.current_value = edit.new_value
                        element.updated_at = now

            logger.info(f"PR {repo_full_name}#{pr_number} {pr.status}: {len(edits)} edits {edit_status}")
            return self.pull_request_to_dict(pr, edit_count=len(edits))

    @staticmethod
    def pull_request_to_dict(pr: PullRequest, edit_count: int = 0) -> Dict[str, Any]:
        return {
            "id": str(pr.pull_request_id),
            "pr_number": pr.pr_number,
            "pr_url": pr.pr_url,
            "title": pr.title,
            "branch_name": pr.branch_name,
            "status": pr.status,
            "edit_count": edit_count,
            "created_at": pr.created_at.isoformat() if pr.created_at else None,
        }
