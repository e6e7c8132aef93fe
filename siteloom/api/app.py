"""FastAPI application factory for SiteLoom.

Creates and configures the FastAPI app with CORS, session auth, the
domain error handler and all route modules registered.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from ..core.errors import SiteloomError
from ..setting import SiteloomSettings
from .schemas import camelize

logger = logging.getLogger(__name__)


def create_app(
    db_manager,
    project_manager,
    analysis_engine,
    catalog,
    edit_service,
    publish_service=None,
    settings: SiteloomSettings = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_manager: DatabaseManager instance
        project_manager: ProjectManager instance
        analysis_engine: AnalysisEngine instance
        catalog: ElementCatalog instance
        edit_service: EditService instance
        publish_service: PublishService instance (optional, needs a GitHub token)
        settings: SiteloomSettings (defaults when omitted)

    Returns:
        Configured FastAPI application
    """
    settings = settings or SiteloomSettings()

    app = FastAPI(
        title="SiteLoom API",
        description="Website content analysis and source-code publishing",
        version="0.1.0",
    )

    # Session middleware (required for auth sessions)
    app.add_middleware(SessionMiddleware, secret_key=settings.server.secret_key)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store shared dependencies on app state
    app.state.settings = settings
    app.state.db_manager = db_manager
    app.state.project_manager = project_manager
    app.state.analysis_engine = analysis_engine
    app.state.catalog = catalog
    app.state.edit_service = edit_service
    app.state.publish_service = publish_service

    @app.exception_handler(SiteloomError)
    async def siteloom_error_handler(request: Request, exc: SiteloomError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=camelize(exc.to_dict()))

    # Register routers
    from .routes.projects import router as projects_router
    from .routes.analysis import router as analysis_router
    from .routes.elements import router as elements_router
    from .routes.sections import router as sections_router
    from .routes.edits import router as edits_router
    from .routes.webhooks import router as webhooks_router

    app.include_router(projects_router, prefix="/api")
    app.include_router(analysis_router, prefix="/api")
    app.include_router(elements_router, prefix="/api")
    app.include_router(sections_router, prefix="/api")
    app.include_router(edits_router, prefix="/api")
    app.include_router(webhooks_router, prefix="/api")

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "service": "siteloom"}

    logger.info("FastAPI app created with all routes registered")
    return app
