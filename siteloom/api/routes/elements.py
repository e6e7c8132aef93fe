"""Element catalog API routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_catalog, get_current_user
from ..schemas import camelize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/elements", tags=["elements"])


@router.get("")
async def list_elements(
    project_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    element_type: Optional[str] = Query(None, alias="type"),
    page_url: Optional[str] = Query(None, alias="pageUrl"),
    search: Optional[str] = None,
    user: dict = Depends(get_current_user),
    catalog=Depends(get_catalog),
):
    result = catalog.list_elements(
        project_id,
        page=page,
        limit=limit,
        element_type=element_type,
        page_url=page_url,
        search=search,
    )
    return camelize(result)


@router.get("/{element_id}")
async def get_element(
    project_id: str,
    element_id: str,
    user: dict = Depends(get_current_user),
    catalog=Depends(get_catalog),
):
    return camelize({"element": catalog.get_element(project_id, element_id)})
