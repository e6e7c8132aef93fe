"""Project API routes: create, get and archive."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..deps import get_current_user, get_project_manager, require_admin
from ..schemas import CamelModel, camelize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


# ── Request/Response models ─────────────────────────────────────────────

class ProjectCreateRequest(CamelModel):
    name: str
    repo_full_name: str
    deployment_url: Optional[str] = None
    target_branch: str = "main"
    root_path: str = ""


# ── Routes ──────────────────────────────────────────────────────────────

@router.post("", status_code=201)
async def create_project(
    body: ProjectCreateRequest,
    user: dict = Depends(require_admin),
    pm=Depends(get_project_manager),
):
    project = pm.create_project(
        name=body.name,
        repo_full_name=body.repo_full_name,
        deployment_url=body.deployment_url,
        target_branch=body.target_branch,
        root_path=body.root_path,
    )
    return camelize({"project": project})


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    user: dict = Depends(get_current_user),
    pm=Depends(get_project_manager),
):
    project = pm.get_project(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return camelize({"project": project})


@router.post("/{project_id}/archive")
async def archive_project(
    project_id: str,
    user: dict = Depends(require_admin),
    pm=Depends(get_project_manager),
):
    return camelize({"project": pm.archive_project(project_id)})
