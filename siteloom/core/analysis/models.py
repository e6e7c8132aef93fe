"""Data contracts for the content analysis pipeline.

Kept as dataclasses (not ORM models) for transport between the crawler,
classifier and catalog.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class ElementType(Enum):
    """Closed set of content element kinds."""
    TEXT = "text"
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    IMAGE = "image"
    LINK = "link"
    BUTTON = "button"
    SECTION = "section"
    LIST = "list"
    NAVIGATION = "navigation"
    FOOTER = "footer"
    HERO = "hero"
    CARD = "card"
    CUSTOM = "custom"

    @classmethod
    def coerce(cls, value: Optional[str]) -> "ElementType":
        """Map free-form strings (e.g. LLM output) onto the closed set."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.CUSTOM


# Types that group other candidates rather than hold a value of their own
CONTAINER_TYPES = {ElementType.SECTION, ElementType.HERO, ElementType.CARD}


@dataclass
class SourceLocation:
    """Where a literal value lives in the repository."""
    file_path: str
    line: int
    column: int


@dataclass
class CandidateElement:
    """A proposed editable element on one page."""
    name: str
    element_type: ElementType
    selector: str
    current_value: Optional[str]
    confidence: float
    xpath: Optional[str] = None
    parent_selector: Optional[str] = None
    source: Optional[SourceLocation] = None


@dataclass
class PageResult:
    """Outcome of visiting one page.

    ``error`` is set for tolerated per-page failures; such results carry no
    elements and no links.
    """
    page_url: str
    page_title: Optional[str] = None
    elements: List[CandidateElement] = field(default_factory=list)
    linked_pages: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class NodeFeatures:
    """What a strategy sees about a DOM node when scoring it."""
    tag: str
    element_type: ElementType
    text: str
    classes: List[str] = field(default_factory=list)
    node_id: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)
    depth: int = 0
    inside_main: bool = False


@dataclass
class Classification:
    """A strategy's verdict for one node."""
    element_type: ElementType
    name: str
    confidence: float
