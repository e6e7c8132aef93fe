"""Analysis Engine: per-project analysis job lifecycle.

Provides the public API consumed by API routes. Crawls run on the
background ``AnalysisWorker``; everything here is a short transaction
plus, for ``trigger``, a hand-off to the worker.

Exclusivity (one non-terminal job per project) rests on three layers:
- the per-project ``analysis`` lock from the lock registry
- a compare-and-set on ``Project.status`` inside the trigger transaction
- the partial unique index on active jobs, which rejects a second insert
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError

from ..catalog import ElementCatalog
from ..db import DatabaseManager
from ..db.models import ACTIVE_JOB_STATUSES, AnalysisJob, Project
from ..errors import AlreadyRunningError, NotFoundError, RateLimitError, ValidationError
from ..locks import ProjectLockRegistry, get_lock_registry
from ..utils import parse_uuid
from ...setting import AnalysisSettings
from .strategies import ClassificationStrategy
from .worker import AnalysisWorker, restore_prior_state

logger = logging.getLogger(__name__)

LOCK_NAMESPACE = "analysis"
LOCK_TIMEOUT_SECONDS = 10.0


class AnalysisEngine:
    """Trigger, cancel and observe analysis jobs.

    Public API:
        trigger(project_id, user_id, full_rescan) -> {job_id, status}
        cancel(project_id) -> {success, job_id}
        get_status(project_id) -> {project_status, last_analyzed_at, last_error, current_job}
        get_results(project_id) -> elements grouped by page
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        catalog: ElementCatalog,
        browser_factory: Callable[[], Any],
        vcs_factory: Optional[Callable[[Project], Any]] = None,
        settings: Optional[AnalysisSettings] = None,
        strategy: Optional[ClassificationStrategy] = None,
        lock_registry: Optional[ProjectLockRegistry] = None,
        worker: Optional[AnalysisWorker] = None,
    ):
        self._db = db_manager
        self._catalog = catalog
        self._browser_factory = browser_factory
        self._vcs_factory = vcs_factory
        self.settings = settings or AnalysisSettings()
        self._strategy = strategy
        self._locks = lock_registry or get_lock_registry()
        self._worker = worker

    def _ensure_worker(self) -> AnalysisWorker:
        """Lazily initialize and start the background worker."""
        if self._worker is None:
            self._worker = AnalysisWorker(
                self._db,
                self._catalog,
                self._browser_factory,
                vcs_factory=self._vcs_factory,
                settings=self.settings,
                strategy=self._strategy,
            )
        if not self._worker.running:
            self._worker.start()
        return self._worker

    def start(self) -> None:
        """Start the worker (recovers jobs interrupted by a restart)."""
        self._ensure_worker()

    def shutdown(self) -> None:
        if self._worker is not None and self._worker.running:
            self._worker.stop()

    # ── Public API ──────────────────────────────────────────────────────

    def trigger(
        self,
        project_id: str,
        user_id: Optional[str] = None,
        full_rescan: bool = False,
    ) -> Dict[str, Any]:
        """Start an analysis job for a project (fire-and-forget).

        Raises:
            NotFoundError: unknown project
            ValidationError: archived project or no deployment URL
            AlreadyRunningError: a non-terminal job exists
            RateLimitError: too many jobs in the trailing hour
        """
        pid = parse_uuid(project_id, "project_id")
        uid = parse_uuid(user_id, "user_id") if user_id else None

        # Started before the job row exists so start-up recovery cannot touch it
        worker = self._ensure_worker()

        with self._locks.hold(
            LOCK_NAMESPACE,
            str(pid),
            timeout=LOCK_TIMEOUT_SECONDS,
            conflict_message="Analysis trigger already in progress",
        ):
            try:
                job_id = self._create_job(pid, uid, full_rescan)
            except IntegrityError:
                logger.warning(f"Concurrent trigger rejected by active-job index for {pid}")
                raise AlreadyRunningError(pid)

        try:
            worker.submit(str(job_id))
        except Exception as e:
            logger.error(f"Could not hand analysis job {job_id} to the worker: {e}")
            self._abandon_job(job_id, f"Analysis worker unavailable: {e}")
            raise
        logger.info(f"Triggered analysis job {job_id} for project {pid} (full_rescan={full_rescan})")
        return {"job_id": str(job_id), "status": "analyzing"}

    def _create_job(self, pid, uid, full_rescan: bool):
        now = datetime.utcnow()
        with self._db.get_session() as session:
            project = session.query(Project).filter(Project.project_id == pid).first()
            if not project:
                raise NotFoundError("Project not found", project_id=str(pid))
            if project.status == "archived":
                raise ValidationError("Project is archived", project_id=str(pid))
            if not project.deployment_url:
                raise ValidationError("Project has no deployment URL", project_id=str(pid))

            active = session.query(AnalysisJob).filter(
                AnalysisJob.project_id == pid,
                AnalysisJob.status.in_(ACTIVE_JOB_STATUSES),
            ).first()
            if active:
                raise AlreadyRunningError(pid, active.job_id)

            recent = session.query(AnalysisJob).filter(
                AnalysisJob.project_id == pid,
                AnalysisJob.created_at >= now - timedelta(hours=1),
            ).count()
            if recent >= self.settings.max_jobs_per_hour:
                raise RateLimitError(
                    f"At most {self.settings.max_jobs_per_hour} analyses per hour",
                    project_id=str(pid),
                    retry_after_seconds=3600,
                )

            observed = project.status
            prior = observed
            prior_error = project.analysis_error
            if prior == "analyzing":
                # Left over from a job that never finished
                prior = "ready" if project.last_analyzed_at else "pending"

            swapped = session.query(Project).filter(
                Project.project_id == pid,
                Project.status == observed,
            ).update(
                {
                    Project.status: "analyzing",
                    Project.analysis_error: None,
                    Project.updated_at: now,
                },
                synchronize_session=False,
            )
            if swapped != 1:
                raise AlreadyRunningError(pid)

            job = AnalysisJob(
                project_id=pid,
                user_id=uid,
                status="pending",
                full_rescan=full_rescan,
                prior_project_status=prior,
                prior_analysis_error=prior_error,
                page_errors=[],
            )
            session.add(job)
            session.flush()
            return job.job_id

    def _abandon_job(self, job_id, message: str) -> None:
        """Fail a job the worker never received and restore its project."""
        now = datetime.utcnow()
        with self._db.get_session() as session:
            job = session.query(AnalysisJob).filter(AnalysisJob.job_id == job_id).one()
            if job.status not in ACTIVE_JOB_STATUSES:
                return
            job.status = "error"
            job.error = message
            job.completed_at = now

            project = session.query(Project).filter(Project.project_id == job.project_id).one()
            if project.status == "analyzing":
                restore_prior_state(project, job)
                project.updated_at = now

    def cancel(self, project_id: str) -> Dict[str, Any]:
        """Request cooperative cancellation of the project's active job.

        The crawler observes the flag before its next page visit.
        """
        pid = parse_uuid(project_id, "project_id")
        with self._db.get_session() as session:
            job = session.query(AnalysisJob).filter(
                AnalysisJob.project_id == pid,
                AnalysisJob.status.in_(ACTIVE_JOB_STATUSES),
            ).first()
            if not job:
                raise NotFoundError("No analysis in progress", project_id=str(pid))
            job.cancel_requested = True
            job_id = job.job_id

        logger.info(f"Cancel requested for analysis job {job_id}")
        return {"success": True, "job_id": str(job_id)}

    def get_status(self, project_id: str) -> Dict[str, Any]:
        """Pure read of the persisted project and latest job state."""
        pid = parse_uuid(project_id, "project_id")
        with self._db.get_session() as session:
            project = session.query(Project).filter(Project.project_id == pid).first()
            if not project:
                raise NotFoundError("Project not found", project_id=str(pid))

            job = session.query(AnalysisJob).filter(
                AnalysisJob.project_id == pid
            ).order_by(AnalysisJob.created_at.desc()).first()

            return {
                "project_status": project.status,
                "last_analyzed_at": project.last_analyzed_at.isoformat() if project.last_analyzed_at else None,
                "last_error": project.analysis_error,
                "current_job": self._job_to_dict(job) if job else None,
            }

    def get_results(self, project_id: str, max_per_page: int = 100) -> Dict[str, Any]:
        """Catalog grouped by page, highest confidence first."""
        pid = parse_uuid(project_id, "project_id")
        with self._db.get_session() as session:
            if not session.query(Project).filter(Project.project_id == pid).first():
                raise NotFoundError("Project not found", project_id=str(pid))

        pages = self._catalog.elements_by_page(str(pid), max_per_page=max_per_page)
        return {
            "project_id": str(pid),
            "total_elements": sum(p["element_count"] for p in pages),
            "pages": pages,
        }

    @staticmethod
    def _job_to_dict(job: AnalysisJob) -> Dict[str, Any]:
        return {
            "id": str(job.job_id),
            "status": job.status,
            "full_rescan": job.full_rescan,
            "cancel_requested": job.cancel_requested,
            "pages_visited": job.pages_visited,
            "pages_failed": job.pages_failed,
            "elements_found": job.elements_found,
            "page_errors": job.page_errors or [],
            "error": job.error,
            "created_at": job.created_at.isoformat() if job.created_at else None,
            "started_at": job.started_at.isoformat() if job.started_at else None,
            "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        }
