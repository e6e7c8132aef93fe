"""Project Manager for SiteLoom.

Projects are owned by the surrounding platform; this manager only offers
the create / get / archive operations the content pipeline relies on.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from ..db import DatabaseManager
from ..db.models import AnalysisJob, ACTIVE_JOB_STATUSES, Project
from ..errors import ConflictError, NotFoundError, ValidationError
from ..utils import parse_uuid

logger = logging.getLogger(__name__)


class ProjectManager:
    """Minimal project persistence for the content pipeline."""

    def __init__(self, db_manager: DatabaseManager):
        self.db = db_manager
        logger.info("ProjectManager initialized")

    def create_project(
        self,
        name: str,
        repo_full_name: str,
        deployment_url: Optional[str] = None,
        target_branch: str = "main",
        root_path: str = "",
    ) -> Dict:
        """Create a new project in ``pending`` status."""
        if not name or not name.strip():
            raise ValidationError("Project name is required")
        if "/" not in (repo_full_name or ""):
            raise ValidationError("repo_full_name must look like owner/repo", repo=repo_full_name)

        try:
            with self.db.get_session() as session:
                project = Project(
                    name=name.strip(),
                    repo_full_name=repo_full_name,
                    deployment_url=deployment_url,
                    target_branch=target_branch or "main",
                    root_path=root_path or "",
                    status="pending",
                )
                session.add(project)
                session.flush()

                logger.info(f"Created project: {project.project_id} ({name})")
                return self._project_to_dict(project)

        except ValidationError:
            raise
        except Exception as e:
            logger.error(f"Failed to create project: {e}")
            raise

    def get_project(self, project_id: str) -> Optional[Dict]:
        """Retrieve project details by ID."""
        pid = parse_uuid(project_id, "project_id")
        with self.db.get_session() as session:
            project = session.query(Project).filter(Project.project_id == pid).first()
            if not project:
                return None
            return self._project_to_dict(project)

    def archive_project(self, project_id: str) -> Dict:
        """Archive a project; refused while an analysis is running."""
        pid = parse_uuid(project_id, "project_id")
        with self.db.get_session() as session:
            project = session.query(Project).filter(Project.project_id == pid).first()
            if not project:
                raise NotFoundError("Project not found", project_id=str(pid))

            running = session.query(AnalysisJob).filter(
                AnalysisJob.project_id == pid,
                AnalysisJob.status.in_(ACTIVE_JOB_STATUSES),
            ).first()
            if running:
                raise ConflictError("Cannot archive while analysis is running", project_id=str(pid))

            project.status = "archived"
            project.updated_at = datetime.utcnow()
            logger.info(f"Archived project {pid}")
            return self._project_to_dict(project)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _project_to_dict(project: Project) -> Dict:
        """Convert a Project ORM object to a dict."""
        return {
            "id": str(project.project_id),
            "project_id": str(project.project_id),
            "name": project.name,
            "repo_full_name": project.repo_full_name,
            "target_branch": project.target_branch,
            "root_path": project.root_path or "",
            "deployment_url": project.deployment_url,
            "status": project.status,
            "last_analyzed_at": project.last_analyzed_at.isoformat() if project.last_analyzed_at else None,
            "analysis_error": project.analysis_error,
            "created_at": project.created_at.isoformat() if project.created_at else None,
            "updated_at": project.updated_at.isoformat() if project.updated_at else None,
        }
