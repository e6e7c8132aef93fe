"""Content analysis: crawl a deployed site and classify editable elements.

Public API:
    ElementClassifier  - rendered HTML -> candidate elements
    SiteCrawler        - same-origin breadth-first crawl
    SourceMapper       - best-effort value -> source file mapping

The job lifecycle lives in ``analysis.engine`` / ``analysis.worker``.
"""

from .models import CandidateElement, ElementType, PageResult, SourceLocation
from .classifier import ElementClassifier
from .crawler import SiteCrawler
from .source_mapper import SourceMapper
from .strategies import LLMClassificationStrategy, RuleBasedStrategy, build_strategy

__all__ = [
    "CandidateElement",
    "ElementType",
    "PageResult",
    "SourceLocation",
    "ElementClassifier",
    "SiteCrawler",
    "SourceMapper",
    "LLMClassificationStrategy",
    "RuleBasedStrategy",
    "build_strategy",
]
