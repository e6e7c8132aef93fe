"""FastAPI dependencies for SiteLoom.

Provides shared dependencies (auth, database, services) via FastAPI's
Depends() injection system.
"""

import logging

from fastapi import Depends, HTTPException, Request

logger = logging.getLogger(__name__)


async def get_db_manager(request: Request):
    """Get DatabaseManager from app state."""
    return request.app.state.db_manager


async def get_settings_dep(request: Request):
    """Get SiteloomSettings from app state."""
    return request.app.state.settings


async def get_project_manager(request: Request):
    """Get ProjectManager from app state."""
    return request.app.state.project_manager


async def get_analysis_engine(request: Request):
    """Get AnalysisEngine from app state."""
    engine = request.app.state.analysis_engine
    if engine is None:
        raise HTTPException(status_code=503, detail="Analysis engine not available")
    return engine


async def get_catalog(request: Request):
    return request.app.state.catalog


async def get_edit_service(request: Request):
    return request.app.state.edit_service


async def get_publish_service(request: Request):
    """Get PublishService from app state."""
    svc = request.app.state.publish_service
    if svc is None:
        raise HTTPException(status_code=503, detail="Publishing is not configured")
    return svc


async def get_current_user(request: Request) -> dict:
    """FastAPI dependency for authentication.

    Checks session for logged-in user. Returns user dict with roles or raises 401.
    """
    session = request.session
    user_id = session.get("user_id")
    username = session.get("username")

    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    roles = session.get("roles", [])
    return {"user_id": user_id, "username": username, "roles": roles}


async def require_admin(user: dict = Depends(get_current_user)) -> dict:
    """Require admin role. Returns user dict or raises 403."""
    if "admin" not in user.get("roles", []):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
