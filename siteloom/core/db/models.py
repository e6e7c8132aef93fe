"""
SQLAlchemy ORM Models for SiteLoom

Content-analysis-to-publish models:
- Project: A deployed site backed by a repository branch
- AnalysisJob: One crawl of a project's deployment (at most one active per project)
- Section: Derived grouping of elements sharing a source region
- Element: An editable piece of content found on a page
- Edit: A proposed change to one element's value
- PullRequest: A provider pull request bundling a batch of edits
"""

from sqlalchemy import (
    Column, String, Integer, Float, Text, TIMESTAMP, ForeignKey,
    Index, TypeDecorator, Boolean, UniqueConstraint, JSON, text,
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.dialects.postgresql import UUID as PostgreSQL_UUID, JSONB
import uuid
from datetime import datetime

Base = declarative_base()

# JSON column: JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


# UUID type that works with both PostgreSQL and SQLite
class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise stores as String(36).
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PostgreSQL_UUID(as_uuid=True))
        else:
            return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return value
        else:
            if isinstance(value, uuid.UUID):
                return str(value)
            else:
                return str(uuid.UUID(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return value
        else:
            if isinstance(value, uuid.UUID):
                return value
            else:
                return uuid.UUID(value)


# =============================================================================
# Status vocabularies
# =============================================================================

PROJECT_STATUSES = ("pending", "analyzing", "ready", "error", "archived")
JOB_STATUSES = ("pending", "analyzing", "ready", "error", "cancelled")
ACTIVE_JOB_STATUSES = ("pending", "analyzing")
TERMINAL_JOB_STATUSES = ("ready", "error", "cancelled")
EDIT_STATUSES = ("draft", "pending_review", "approved", "rejected")
PR_STATUSES = ("open", "merged", "closed", "draft", "conflict")
ELEMENT_TYPES = (
    "text", "heading", "paragraph", "image", "link", "button", "section",
    "list", "navigation", "footer", "hero", "card", "custom",
)


# =============================================================================
# Project
# =============================================================================

class Project(Base):
    """A deployed website and the repository branch it is built from."""
    __tablename__ = "projects"
    __table_args__ = (
        Index('idx_projects_repo', 'repo_full_name'),
    )

    project_id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    repo_full_name = Column(String(255), nullable=False)             # owner/repo
    target_branch = Column(String(255), default='main', nullable=False)
    root_path = Column(String(1024), default='', nullable=False)      # monorepo subdirectory
    deployment_url = Column(String(2048), nullable=True)
    status = Column(String(20), default='pending', nullable=False)    # pending|analyzing|ready|error|archived
    last_analyzed_at = Column(TIMESTAMP, nullable=True)
    analysis_error = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    analysis_jobs = relationship("AnalysisJob", back_populates="project", cascade="all, delete-orphan")
    elements = relationship("Element", back_populates="project", cascade="all, delete-orphan")
    sections = relationship("Section", back_populates="project", cascade="all, delete-orphan")
    pull_requests = relationship("PullRequest", back_populates="project", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Project(project_id={self.project_id}, name='{self.name}', status='{self.status}')>"


# =============================================================================
# Analysis jobs
# =============================================================================

class AnalysisJob(Base):
    """One crawl of a project's deployment.

    The partial unique index makes a second non-terminal job for the same
    project fail at insert time, backing the compare-and-set on
    Project.status done by the engine.
    """
    __tablename__ = "analysis_jobs"
    __table_args__ = (
        Index('idx_analysis_jobs_project_created', 'project_id', 'created_at'),
        Index(
            'uq_analysis_jobs_active_project', 'project_id',
            unique=True,
            postgresql_where=text("status IN ('pending', 'analyzing')"),
            sqlite_where=text("status IN ('pending', 'analyzing')"),
        ),
    )

    job_id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(), nullable=True)
    status = Column(String(20), default='pending', nullable=False)   # pending|analyzing|ready|error|cancelled
    full_rescan = Column(Boolean, default=False, nullable=False)
    cancel_requested = Column(Boolean, default=False, nullable=False)
    prior_project_status = Column(String(20), nullable=True)
    prior_analysis_error = Column(Text, nullable=True)

    # Progress tracking
    pages_visited = Column(Integer, default=0, nullable=False)
    pages_failed = Column(Integer, default=0, nullable=False)
    elements_found = Column(Integer, default=0, nullable=False)
    page_errors = Column(JSONType, nullable=True)                      # [{page_url, error}]
    error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)
    started_at = Column(TIMESTAMP, nullable=True)
    completed_at = Column(TIMESTAMP, nullable=True)

    project = relationship("Project", back_populates="analysis_jobs")

    def __repr__(self):
        return f"<AnalysisJob(job_id={self.job_id}, status='{self.status}', project={self.project_id})>"


# =============================================================================
# Catalog
# =============================================================================

class Section(Base):
    """Elements sharing a source file and line region (editor navigation only)."""
    __tablename__ = "sections"
    __table_args__ = (
        Index('idx_sections_project', 'project_id'),
        UniqueConstraint('project_id', 'source_file', 'start_line', name='uq_section_region'),
    )

    section_id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    source_file = Column(String(1024), nullable=False)
    start_line = Column(Integer, nullable=False)
    end_line = Column(Integer, nullable=False)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="sections")
    elements = relationship("Element", back_populates="section")

    def __repr__(self):
        return f"<Section(section_id={self.section_id}, file='{self.source_file}', lines={self.start_line}-{self.end_line})>"


class Element(Base):
    """An editable piece of content, identified by (project, page, selector)."""
    __tablename__ = "elements"
    __table_args__ = (
        UniqueConstraint('project_id', 'page_url', 'selector', name='uq_element_identity'),
        Index('idx_elements_project_page', 'project_id', 'page_url'),
        Index('idx_elements_section', 'section_id'),
    )

    element_id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    section_id = Column(UUID(), ForeignKey("sections.section_id", ondelete="SET NULL"), nullable=True)
    parent_id = Column(UUID(), ForeignKey("elements.element_id", ondelete="SET NULL"), nullable=True)

    name = Column(String(255), nullable=False)
    element_type = Column(String(20), nullable=False)                # see ELEMENT_TYPES
    selector = Column(String(2048), nullable=False)
    xpath = Column(String(2048), nullable=True)
    page_url = Column(String(2048), nullable=False)
    current_value = Column(Text, nullable=True)
    confidence = Column(Float, default=0.0, nullable=False)           # 0..1

    # Best-effort source mapping
    source_file = Column(String(1024), nullable=True)
    source_line = Column(Integer, nullable=True)
    source_column = Column(Integer, nullable=True)

    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="elements")
    section = relationship("Section", back_populates="elements")
    parent = relationship("Element", remote_side=[element_id])
    edits = relationship("Edit", back_populates="element", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Element(element_id={self.element_id}, type='{self.element_type}', selector='{self.selector}')>"


# =============================================================================
# Edits and pull requests
# =============================================================================

class PullRequest(Base):
    """A provider pull request created from a batch of edits."""
    __tablename__ = "pull_requests"
    __table_args__ = (
        Index('idx_pull_requests_project_status', 'project_id', 'status'),
        Index('idx_pull_requests_fingerprint', 'project_id', 'edit_fingerprint'),
    )

    pull_request_id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    project_id = Column(UUID(), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(), nullable=True)
    pr_number = Column(Integer, nullable=False)
    pr_url = Column(String(2048), nullable=False)
    branch_name = Column(String(255), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default='open', nullable=False)       # open|merged|closed|draft|conflict
    edit_fingerprint = Column(String(64), nullable=False)
    merged_at = Column(TIMESTAMP, nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="pull_requests")
    edits = relationship("Edit", back_populates="pull_request")

    def __repr__(self):
        return f"<PullRequest(pull_request_id={self.pull_request_id}, number={self.pr_number}, status='{self.status}')>"


class Edit(Base):
    """A proposed change to one element's value."""
    __tablename__ = "edits"
    __table_args__ = (
        Index('idx_edits_project_status', 'project_id', 'status'),
        Index('idx_edits_element', 'element_id'),
        Index('idx_edits_pull_request', 'pull_request_id'),
    )

    edit_id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    element_id = Column(UUID(), ForeignKey("elements.element_id", ondelete="CASCADE"), nullable=False)
    project_id = Column(UUID(), ForeignKey("projects.project_id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(), nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=False)
    status = Column(String(20), default='draft', nullable=False)      # draft|pending_review|approved|rejected
    pull_request_id = Column(
        UUID(), ForeignKey("pull_requests.pull_request_id", ondelete="SET NULL"), nullable=True
    )
    created_at = Column(TIMESTAMP, default=datetime.utcnow, nullable=False)
    updated_at = Column(TIMESTAMP, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    element = relationship("Element", back_populates="edits")
    pull_request = relationship("PullRequest", back_populates="edits")

    def __repr__(self):
        return f"<Edit(edit_id={self.edit_id}, element={self.element_id}, status='{self.status}')>"
