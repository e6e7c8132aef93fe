"""Background worker for site analysis jobs.

Same shape as the other background workers:
- Daemon thread with its own asyncio event loop
- Queue-based job processing with Semaphore concurrency control

Job lifecycle (rows in ``analysis_jobs``):
1. submit(job_id) queues a PENDING job created by the engine
2. process_job() claims it (PENDING -> ANALYZING) and crawls the site,
   merging each page into the catalog as soon as it is visited
3. The job ends READY, ERROR or CANCELLED and the project status follows

On start-up, jobs left non-terminal by a previous process are marked
ERROR and their projects restored, so nothing stays stuck at "analyzing".
"""

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set
from uuid import UUID

from ..catalog import ElementCatalog
from ..db import DatabaseManager
from ..db.models import ACTIVE_JOB_STATUSES, AnalysisJob, Project
from ..errors import AnalysisCancelled, SiteloomError
from ...setting import AnalysisSettings
from .classifier import ElementClassifier
from .crawler import SiteCrawler
from .models import PageResult
from .source_mapper import SourceMapper
from .strategies import ClassificationStrategy, build_strategy

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Analysis interrupted by a server restart"


def restore_prior_state(project: Project, job: AnalysisJob) -> None:
    """Put the project back to its status and error from before ``job``."""
    project.status = job.prior_project_status or "pending"
    project.analysis_error = job.prior_analysis_error


class AnalysisWorker:
    """Runs analysis jobs off the request path.

    Args:
        db_manager: Database access
        catalog: Element catalog the crawl results are merged into
        browser_factory: Zero-arg callable returning an async context
            manager that yields a ``BrowserGateway``
        vcs_factory: Callable mapping a Project to a ``VersionControlGateway``
            (None disables source mapping)
        settings: Crawl limits and classifier configuration
        strategy: Classification strategy (defaults to ``settings.classifier``)
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        catalog: ElementCatalog,
        browser_factory: Callable[[], Any],
        vcs_factory: Optional[Callable[[Project], Any]] = None,
        settings: Optional[AnalysisSettings] = None,
        strategy: Optional[ClassificationStrategy] = None,
        poll_interval: float = 1.0,
    ):
        self._db = db_manager
        self._catalog = catalog
        self._browser_factory = browser_factory
        self._vcs_factory = vcs_factory
        self.settings = settings or AnalysisSettings()
        self._strategy = strategy or build_strategy(self.settings.classifier)
        self.poll_interval = poll_interval

        self._queue: Optional[asyncio.Queue] = None
        self._running = False
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._tasks: Set[asyncio.Task] = set()

    # ── Lifecycle ───────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Recover interrupted jobs, then start the background thread."""
        if self._running:
            logger.warning("Analysis worker already running")
            return
        self.recover_interrupted_jobs()
        self._running = True
        self._ready.clear()
        self._thread = threading.Thread(
            target=self._run_loop, daemon=True, name="analysis-worker"
        )
        self._thread.start()
        logger.info("Analysis worker started")

    def stop(self):
        """Stop accepting jobs and wait for the loop thread to exit."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=5.0)
        logger.info("Analysis worker stopped")

    def submit(self, job_id: str) -> None:
        """Queue a PENDING job (thread-safe)."""
        if not self._ready.wait(timeout=5.0):
            raise RuntimeError("Analysis worker is not running")
        self._loop.call_soon_threadsafe(self._queue.put_nowait, str(job_id))
        logger.info(f"Queued analysis job {job_id}")

    def _run_loop(self):
        """Run the async event loop in the background thread."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        self._queue = asyncio.Queue()
        self._semaphore = asyncio.Semaphore(self.settings.max_concurrent_jobs)
        self._ready.set()

        try:
            self._loop.run_until_complete(self._main_loop())
        except Exception as e:
            logger.error(f"Analysis worker loop error: {e}")
        finally:
            self._running = False
            self._ready.clear()
            self._loop.close()

    async def _main_loop(self):
        while self._running:
            try:
                job_id = await asyncio.wait_for(self._queue.get(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
            task = asyncio.create_task(self._process_with_semaphore(job_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _process_with_semaphore(self, job_id: str):
        async with self._semaphore:
            await self.process_job(job_id)

    # ── Job processing ──────────────────────────────────────────────────

    async def process_job(self, job_id: str) -> Optional[str]:
        """Run one job to a terminal state. Returns that state.

        Returns None when the job could not be claimed (already taken or
        no longer PENDING).
        """
        claimed = await asyncio.to_thread(self._claim_job, job_id)
        if claimed is None:
            return None
        project, job = claimed
        pid = str(project.project_id)

        if job.cancel_requested:
            await asyncio.to_thread(self._finish_cancelled, job_id)
            return "cancelled"

        logger.info(f"Processing analysis job {job_id} for project {pid} ({project.deployment_url})")
        classifier = self._build_classifier(project)

        try:
            async with self._browser_factory() as browser:
                crawler = SiteCrawler(
                    browser,
                    classifier,
                    max_pages=self.settings.max_pages,
                    max_depth=self.settings.max_depth,
                    max_consecutive_failures=self.settings.max_consecutive_failures,
                    should_cancel=lambda: self._cancel_requested(job_id),
                    known_sources=lambda url: self._catalog.known_sources(pid, url),
                    full_rescan=job.full_rescan,
                )
                async for result in crawler.crawl(project.deployment_url):
                    await asyncio.to_thread(self._record_page, job_id, pid, result)

            await asyncio.to_thread(self._catalog.rebuild_sections, pid)

        except AnalysisCancelled:
            await asyncio.to_thread(self._finish_cancelled, job_id)
            return "cancelled"
        except SiteloomError as e:
            logger.error(f"Analysis job {job_id} failed: {e.message}")
            await asyncio.to_thread(self._finish_failed, job_id, e.message)
            return "error"
        except Exception as e:
            logger.error(f"Analysis job {job_id} failed: {e}", exc_info=True)
            await asyncio.to_thread(self._finish_failed, job_id, f"Unexpected error: {e}")
            return "error"

        await asyncio.to_thread(self._finish_ready, job_id)
        return "ready"

    def _build_classifier(self, project: Project) -> ElementClassifier:
        mapper = None
        if self._vcs_factory is not None:
            try:
                mapper = SourceMapper(
                    self._vcs_factory(project),
                    ref=project.target_branch,
                    min_search_length=self.settings.min_search_length,
                )
            except SiteloomError as e:
                logger.warning(f"Source mapping disabled for {project.project_id}: {e.message}")
        return ElementClassifier(
            strategy=self._strategy,
            min_confidence=self.settings.min_confidence,
            max_elements_per_page=self.settings.max_elements_per_page,
            source_mapper=mapper,
        )

    # ── DB Operations ───────────────────────────────────────────────────

    def _claim_job(self, job_id: str):
        """PENDING -> ANALYZING, conditional on the current status."""
        jid = UUID(str(job_id))
        now = datetime.utcnow()
        with self._db.get_session() as session:
            claimed = session.query(AnalysisJob).filter(
                AnalysisJob.job_id == jid,
                AnalysisJob.status == "pending",
            ).update(
                {AnalysisJob.status: "analyzing", AnalysisJob.started_at: now},
                synchronize_session=False,
            )
            if claimed != 1:
                logger.warning(f"Analysis job {job_id} not claimable")
                return None

            job = session.query(AnalysisJob).filter(AnalysisJob.job_id == jid).one()
            project = session.query(Project).filter(Project.project_id == job.project_id).one()
            return project, job

    def _cancel_requested(self, job_id: str) -> bool:
        with self._db.get_session() as session:
            flag = session.query(AnalysisJob.cancel_requested).filter(
                AnalysisJob.job_id == UUID(str(job_id))
            ).scalar()
            return bool(flag)

    def _record_page(self, job_id: str, project_id: str, result: PageResult) -> None:
        """Merge one page into the catalog and bump the job's counters."""
        merged = 0
        if result.ok:
            merged = len(self._catalog.upsert(project_id, result.page_url, result.elements)["element_ids"])

        with self._db.get_session() as session:
            job = session.query(AnalysisJob).filter(AnalysisJob.job_id == UUID(str(job_id))).one()
            if result.ok:
                job.pages_visited += 1
                job.elements_found += merged
            else:
                job.pages_failed += 1
                job.page_errors = list(job.page_errors or []) + [
                    {"page_url": result.page_url, "error": result.error}
                ]

    def _finish(self, job_id: str, job_status: str, job_error: Optional[str], project_updates: Dict):
        now = datetime.utcnow()
        with self._db.get_session() as session:
            job = session.query(AnalysisJob).filter(AnalysisJob.job_id == UUID(str(job_id))).one()
            if job.status not in ACTIVE_JOB_STATUSES:
                logger.warning(f"Analysis job {job_id} already {job.status}, not moving to {job_status}")
                return
            job.status = job_status
            job.error = job_error
            job.completed_at = now

            project = session.query(Project).filter(Project.project_id == job.project_id).one()
            for key, value in project_updates.items():
                setattr(project, key, value(job) if callable(value) else value)
            project.updated_at = now

        logger.info(f"Analysis job {job_id} -> {job_status}")

    def _finish_ready(self, job_id: str):
        self._finish(job_id, "ready", None, {
            "status": "ready",
            "last_analyzed_at": datetime.utcnow(),
            "analysis_error": None,
        })

    def _finish_failed(self, job_id: str, message: str):
        self._finish(job_id, "error", message, {
            "status": "error",
            "analysis_error": message,
        })

    def _finish_cancelled(self, job_id: str):
        self._finish(job_id, "cancelled", None, {
            "status": lambda job: job.prior_project_status or "pending",
            "analysis_error": lambda job: job.prior_analysis_error,
        })

    def recover_interrupted_jobs(self) -> int:
        """Fail jobs a previous process left non-terminal."""
        now = datetime.utcnow()
        with self._db.get_session() as session:
            jobs = session.query(AnalysisJob).filter(
                AnalysisJob.status.in_(ACTIVE_JOB_STATUSES)
            ).all()
            for job in jobs:
                job.status = "error"
                job.error = INTERRUPTED_MESSAGE
                job.completed_at = now
                project = session.query(Project).filter(Project.project_id == job.project_id).first()
                if project is not None and project.status == "analyzing":
                    restore_prior_state(project, job)
                    project.updated_at = now

        if jobs:
            logger.warning(f"Recovered {len(jobs)} interrupted analysis jobs")
        return len(jobs)
