"""Section API routes."""

from fastapi import APIRouter, Depends

from ..deps import get_catalog, get_current_user
from ..schemas import camelize

router = APIRouter(prefix="/projects/{project_id}/sections", tags=["sections"])


@router.get("")
async def list_sections(
    project_id: str,
    user: dict = Depends(get_current_user),
    catalog=Depends(get_catalog),
):
    sections = catalog.list_sections(project_id)
    return camelize({"sections": sections, "count": len(sections)})


@router.get("/{section_id}")
async def get_section(
    project_id: str,
    section_id: str,
    user: dict = Depends(get_current_user),
    catalog=Depends(get_catalog),
):
    return camelize({"section": catalog.get_section(project_id, section_id)})
