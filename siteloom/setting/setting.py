"""Application settings for SiteLoom.

Settings are pydantic models populated from ``config/siteloom.yaml`` with a
handful of environment overrides for secrets and deployment-specific values.
Access them through ``get_settings()``, which caches the loaded instance.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "siteloom.yaml"


class DatabaseSettings(BaseModel):
    url: str = Field("sqlite:///siteloom.db", description="SQLAlchemy database URL")
    pool_size: int = Field(5, description="Connection pool size (ignored for SQLite)")
    max_overflow: int = Field(10, description="Extra connections above pool_size")
    echo: bool = Field(False, description="Log every SQL statement")


class AnalysisSettings(BaseModel):
    max_pages: int = Field(50, ge=1, description="Maximum pages visited per crawl")
    max_depth: int = Field(3, ge=0, description="Maximum link depth from the root URL")
    max_consecutive_failures: int = Field(
        3, ge=0, description="Consecutive page failures tolerated before the job fails"
    )
    min_confidence: float = Field(
        0.7, ge=0.0, le=1.0, description="Candidates below this confidence are dropped"
    )
    max_elements_per_page: int = Field(100, ge=1)
    classifier: str = Field("rules", description="Classification strategy: rules | llm")
    llm_model: str = Field("gpt-4o-mini", description="OpenAI model used by the llm classifier")
    max_jobs_per_hour: int = Field(10, ge=1, description="Per-project analysis rate limit")
    max_concurrent_jobs: int = Field(2, ge=1)
    page_timeout_ms: int = Field(30000, ge=1000)
    section_line_gap: int = Field(
        20, ge=1, description="Max line distance between elements grouped in one section"
    )
    min_search_length: int = Field(5, ge=1, description="Shortest value sent to code search")


class GitHubSettings(BaseModel):
    token: Optional[str] = None
    base_url: str = "https://api.github.com"
    webhook_secret: Optional[str] = None
    read_retries: int = Field(3, ge=1, le=3, description="Attempts for idempotent reads")


class PublishSettings(BaseModel):
    branch_prefix: str = "content-update"
    title_prefix: str = "[Content]"


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 9010
    secret_key: str = "siteloom-dev-secret-change-me"
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )


class SiteloomSettings(BaseModel):
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    publish: PublishSettings = Field(default_factory=PublishSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)


def get_config_path() -> Path:
    """Directory holding siteloom.yaml (``SITELOOM_CONFIG_DIR`` overrides)."""
    override = os.getenv("SITELOOM_CONFIG_DIR")
    if override:
        return Path(override)
    return Path(__file__).parent.parent.parent / "config"


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    env_map = {
        "DATABASE_URL": ("database", "url"),
        "GITHUB_TOKEN": ("github", "token"),
        "GITHUB_WEBHOOK_SECRET": ("github", "webhook_secret"),
        "SITELOOM_SECRET_KEY": ("server", "secret_key"),
        "SITELOOM_CLASSIFIER": ("analysis", "classifier"),
    }
    for env_name, (section, key) in env_map.items():
        value = os.getenv(env_name)
        if value:
            config.setdefault(section, {})[key] = value
    return config


def load_settings(config_file: Optional[Path] = None) -> SiteloomSettings:
    """Build settings from a YAML file plus environment overrides."""
    config_file = config_file or get_config_path() / CONFIG_FILE_NAME
    config: Dict[str, Any] = {}

    if config_file.exists():
        with open(config_file, "r") as f:
            config = yaml.safe_load(f) or {}
    else:
        logger.warning(f"{config_file} not found, using default settings")

    return SiteloomSettings(**_apply_env_overrides(config))


@lru_cache(maxsize=1)
def get_settings() -> SiteloomSettings:
    return load_settings()


def reload_settings() -> SiteloomSettings:
    """Drop the cached settings so the next read picks up file changes."""
    get_settings.cache_clear()
    return get_settings()
