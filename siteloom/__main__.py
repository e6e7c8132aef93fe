import argparse
import logging
import sys


def setup_logging(log_level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.ERROR)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("github").setLevel(logging.WARNING)
    logging.getLogger("playwright").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("psycopg2").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def _configure_llm(model: str) -> None:
    """Point llama_index at an OpenAI model for the llm classifier."""
    from llama_index.core import Settings
    from llama_index.llms.openai import OpenAI

    Settings.llm = OpenAI(model=model, temperature=0.0)
    logger.info(f"LLM classifier using {model}")


def main():
    """Main entry point for SiteLoom."""
    parser = argparse.ArgumentParser(description="SiteLoom - Website Content Editing Platform")
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the API server (defaults to server.port)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Debug logging (same as --log-level DEBUG)"
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create tables directly instead of relying on Alembic migrations"
    )
    args = parser.parse_args()

    if args.debug:
        args.log_level = "DEBUG"
    setup_logging(args.log_level)

    from .setting import get_settings
    settings = get_settings()
    port = args.port or settings.server.port
    logger.info(f"Starting SiteLoom on port {port}")

    from .core.db import DatabaseManager, wait_for_db
    db_manager = DatabaseManager(
        settings.database.url,
        pool_size=settings.database.pool_size,
        max_overflow=settings.database.max_overflow,
        echo=settings.database.echo,
    )
    if not wait_for_db(db_manager):
        sys.exit(1)
    if args.init_db:
        db_manager.init_db()

    if settings.analysis.classifier == "llm":
        _configure_llm(settings.analysis.llm_model)

    from .core.analysis.engine import AnalysisEngine
    from .core.catalog import ElementCatalog
    from .core.editing import EditService
    from .core.gateways.browser_gateway import playwright_browser_factory
    from .core.gateways.github_gateway import GitHubGatewayFactory
    from .core.project import ProjectManager
    from .core.publishing import PublishService

    if not settings.github.token:
        logger.warning("GITHUB_TOKEN not set; source mapping and publishing use anonymous access")

    vcs_factory = GitHubGatewayFactory(
        settings.github.token,
        base_url=settings.github.base_url,
        read_retries=settings.github.read_retries,
    )
    project_manager = ProjectManager(db_manager)
    catalog = ElementCatalog(db_manager, section_line_gap=settings.analysis.section_line_gap)
    edit_service = EditService(db_manager)
    publish_service = PublishService(db_manager, vcs_factory, settings=settings.publish)

    analysis_engine = AnalysisEngine(
        db_manager,
        catalog,
        playwright_browser_factory(timeout_ms=settings.analysis.page_timeout_ms),
        vcs_factory=vcs_factory,
        settings=settings.analysis,
    )
    analysis_engine.start()

    from .api.app import create_app
    app = create_app(
        db_manager=db_manager,
        project_manager=project_manager,
        analysis_engine=analysis_engine,
        catalog=catalog,
        edit_service=edit_service,
        publish_service=publish_service,
        settings=settings,
    )

    import uvicorn

    logger.info(f"Starting FastAPI server on http://{settings.server.host}:{port}")
    print(f"\n  SiteLoom is running at: http://localhost:{port}")
    print(f"  API docs at: http://localhost:{port}/docs\n")

    try:
        uvicorn.run(
            app,
            host=settings.server.host,
            port=port,
            log_level=args.log_level.lower(),
        )
    finally:
        analysis_engine.shutdown()
        db_manager.dispose()


if __name__ == "__main__":
    main()
