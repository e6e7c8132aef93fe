"""Analysis API routes: trigger, poll, cancel and read results."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_analysis_engine, get_current_user
from ..schemas import AnalysisTriggerRequest, camelize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/analysis", tags=["analysis"])


@router.post("/trigger", status_code=202)
async def trigger_analysis(
    project_id: str,
    body: Optional[AnalysisTriggerRequest] = None,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    full_rescan = body.full_rescan if body else False
    result = engine.trigger(project_id, user_id=user["user_id"], full_rescan=full_rescan)
    return camelize(result)


@router.get("/status")
async def get_analysis_status(
    project_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return camelize(engine.get_status(project_id))


@router.post("/cancel")
async def cancel_analysis(
    project_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return camelize(engine.cancel(project_id))


@router.get("/results")
async def get_analysis_results(
    project_id: str,
    max_per_page: int = Query(100, ge=1, le=500, alias="maxPerPage"),
    user: dict = Depends(get_current_user),
    engine=Depends(get_analysis_engine),
):
    return camelize(engine.get_results(project_id, max_per_page=max_per_page))
