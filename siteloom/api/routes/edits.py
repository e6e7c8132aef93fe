"""Edit API routes: draft buffer, lifecycle and publishing."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_current_user, get_edit_service, get_publish_service, require_admin
from ..schemas import (
    EditCreateRequest,
    EditStatusRequest,
    EditUpdateRequest,
    PublishRequest,
    camelize,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/edits", tags=["edits"])


@router.get("")
async def list_edits(
    project_id: str,
    status: Optional[str] = None,
    element_id: Optional[str] = Query(None, alias="elementId"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    user: dict = Depends(get_current_user),
    edits=Depends(get_edit_service),
):
    result = edits.list_edits(
        project_id, status=status, element_id=element_id, page=page, limit=limit
    )
    return camelize(result)


@router.post("", status_code=201)
async def create_edit(
    project_id: str,
    body: EditCreateRequest,
    user: dict = Depends(get_current_user),
    edits=Depends(get_edit_service),
):
    edit = edits.create_edit(project_id, body.element_id, user["user_id"], body.new_value)
    return camelize({"edit": edit})


@router.post("/publish", status_code=201)
def publish_edits(
    project_id: str,
    body: PublishRequest,
    user: dict = Depends(get_current_user),
    publisher=Depends(get_publish_service),
):
    """Publish a batch as one pull request (blocking, runs in the threadpool)."""
    pull_request = publisher.publish(
        project_id,
        user["user_id"],
        [item.model_dump() for item in body.edits],
        title=body.title,
        description=body.description,
    )
    return camelize({"pull_request": pull_request})


@router.patch("/{edit_id}")
async def update_edit(
    project_id: str,
    edit_id: str,
    body: EditUpdateRequest,
    user: dict = Depends(get_current_user),
    edits=Depends(get_edit_service),
):
    return camelize({"edit": edits.update_draft(project_id, edit_id, body.new_value)})


@router.delete("/{edit_id}")
async def delete_edit(
    project_id: str,
    edit_id: str,
    user: dict = Depends(get_current_user),
    edits=Depends(get_edit_service),
):
    edits.delete_draft(project_id, edit_id)
    return {"success": True}


@router.patch("/{edit_id}/status")
async def update_edit_status(
    project_id: str,
    edit_id: str,
    body: EditStatusRequest,
    user: dict = Depends(require_admin),
    edits=Depends(get_edit_service),
):
    edit = edits.set_status(project_id, edit_id, body.status, override=body.override)
    logger.info(f"User {user.get('username')} set edit {edit_id} to {body.status}")
    return camelize({"edit": edit})
