"""Element classifier: rendered HTML in, candidate elements out.

Pipeline per page:
1. Parse the DOM (BeautifulSoup + lxml)
2. Walk nodes in document order, skipping chrome (nav, footer, hidden)
3. Extract features for value-bearing nodes and containers
4. Score with the configured strategy, drop below ``min_confidence``
5. Cap at ``max_elements_per_page`` (highest confidence, document order kept)
6. Attach parent containers and best-effort source locations
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag

from .models import (
    CONTAINER_TYPES,
    CandidateElement,
    ElementType,
    NodeFeatures,
    SourceLocation,
)
from .selectors import build_selector, build_xpath
from .source_mapper import SourceMapper
from .strategies import ClassificationStrategy, RuleBasedStrategy

logger = logging.getLogger(__name__)

# selector -> (value the location was found for, location)
KnownSources = Dict[str, Tuple[Optional[str], SourceLocation]]

CHROME_TAGS = {"nav", "footer"}
CHROME_ROLES = {"navigation", "contentinfo"}
NON_CONTENT_TAGS = {"script", "style", "svg", "noscript", "template", "iframe", "head"}

HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
LEAF_TEXT_TAGS = {
    "span", "div", "li", "td", "th", "label", "blockquote",
    "figcaption", "dt", "dd", "small", "strong", "em",
}
INLINE_TAGS = {"b", "i", "em", "strong", "small", "span", "br", "sup", "sub", "mark", "code"}
CONTAINER_TAGS = {"section", "article", "header", "div", "aside"}

_HIDDEN_STYLE = re.compile(r"display\s*:\s*none|visibility\s*:\s*hidden", re.IGNORECASE)
_HERO_HINT = re.compile(r"hero|banner|jumbotron|masthead", re.IGNORECASE)
_CARD_HINT = re.compile(r"card|tile", re.IGNORECASE)
_BUTTON_HINT = re.compile(r"\bbtn\b|button|cta", re.IGNORECASE)

# Nodes whose value already covers their descendants' text
_VALUE_TYPES = {
    ElementType.HEADING, ElementType.PARAGRAPH, ElementType.TEXT,
    ElementType.LINK, ElementType.BUTTON,
}


def _text(node: Tag) -> str:
    return " ".join(node.get_text(" ", strip=True).split())


def _hint_string(node: Tag) -> str:
    return " ".join([node.get("id") or ""] + list(node.get("class") or []))


def _is_hidden(node: Tag) -> bool:
    if node.has_attr("hidden"):
        return True
    if (node.get("aria-hidden") or "").lower() == "true":
        return True
    return bool(_HIDDEN_STYLE.search(node.get("style") or ""))


def _is_chrome(node: Tag) -> bool:
    if node.name in CHROME_TAGS or node.name in NON_CONTENT_TAGS:
        return True
    return (node.get("role") or "").lower() in CHROME_ROLES


def _is_leaf_text(node: Tag) -> bool:
    """Only inline children and at least one non-blank direct string."""
    has_direct_text = False
    for child in node.children:
        if isinstance(child, Tag):
            if child.name not in INLINE_TAGS:
                return False
        elif isinstance(child, NavigableString) and child.strip():
            has_direct_text = True
    return has_direct_text


class ElementClassifier:
    """Propose editable elements for one rendered page.

    Args:
        strategy: Scoring strategy (rule-based by default)
        min_confidence: Candidates scoring below this are dropped
        max_elements_per_page: Upper bound on candidates per page
        source_mapper: Locates values in the repository; None disables mapping
    """

    def __init__(
        self,
        strategy: Optional[ClassificationStrategy] = None,
        min_confidence: float = 0.7,
        max_elements_per_page: int = 100,
        source_mapper: Optional[SourceMapper] = None,
    ):
        self.strategy = strategy or RuleBasedStrategy()
        self.min_confidence = min_confidence
        self.max_elements_per_page = max_elements_per_page
        self.source_mapper = source_mapper

    # ── Public API ──────────────────────────────────────────────────────

    def classify_page(
        self,
        html: str,
        page_url: str,
        known_sources: Optional[KnownSources] = None,
        full_rescan: bool = False,
    ) -> List[CandidateElement]:
        soup = BeautifulSoup(html, "lxml")
        root = soup.body or soup

        nodes, features = self._extract(root)
        if not nodes:
            logger.info(f"No candidate nodes on {page_url}")
            return []

        verdicts = self.strategy.classify(features, page_url)

        scored: List[Tuple[int, Tag, CandidateElement]] = []
        for index, (node, feature, verdict) in enumerate(zip(nodes, features, verdicts)):
            if verdict is None or verdict.confidence < self.min_confidence:
                continue
            scored.append((index, node, CandidateElement(
                name=verdict.name,
                element_type=verdict.element_type,
                selector=build_selector(node),
                xpath=build_xpath(node),
                current_value=self._value_of(feature),
                confidence=verdict.confidence,
            )))

        scored = self._cap(scored)
        candidates = self._dedupe(scored)
        self._attach_parents(candidates)
        self._map_sources([c for _, c in candidates], known_sources or {}, full_rescan)

        logger.info(
            f"Classified {page_url}: {len(nodes)} nodes, "
            f"{len(candidates)} candidates >= {self.min_confidence}"
        )
        return [c for _, c in candidates]

    # ── Extraction ──────────────────────────────────────────────────────

    def _extract(self, root: Tag) -> Tuple[List[Tag], List[NodeFeatures]]:
        nodes: List[Tag] = []
        features: List[NodeFeatures] = []
        self._walk(root, depth=0, inside_main=False, claimed=False, nodes=nodes, features=features)
        return nodes, features

    def _walk(
        self,
        node: Tag,
        depth: int,
        inside_main: bool,
        claimed: bool,
        nodes: List[Tag],
        features: List[NodeFeatures],
    ) -> None:
        for child in node.children:
            if not isinstance(child, Tag):
                continue
            if _is_chrome(child) or _is_hidden(child):
                continue

            child_main = inside_main or child.name in ("main", "article")
            child_claimed = claimed
            element_type = None if claimed and child.name != "img" else self._type_of(child)

            if element_type is not None:
                nodes.append(child)
                features.append(self._features(child, element_type, depth + 1, child_main))
                if element_type in _VALUE_TYPES:
                    child_claimed = True

            self._walk(child, depth + 1, child_main, child_claimed, nodes, features)

    def _type_of(self, node: Tag) -> Optional[ElementType]:
        name = node.name
        if name in HEADING_TAGS:
            return ElementType.HEADING
        if name == "p":
            return ElementType.PARAGRAPH
        if name == "img":
            return ElementType.IMAGE
        if name == "button" or (node.get("role") or "").lower() == "button":
            return ElementType.BUTTON
        if name == "a":
            classes = " ".join(node.get("class") or [])
            return ElementType.BUTTON if _BUTTON_HINT.search(classes) else ElementType.LINK
        if name in CONTAINER_TAGS:
            hints = _hint_string(node)
            if _HERO_HINT.search(hints):
                return ElementType.HERO
            if _CARD_HINT.search(hints):
                return ElementType.CARD
            if name in ("section", "article"):
                return ElementType.SECTION
        if name in LEAF_TEXT_TAGS and _is_leaf_text(node):
            return ElementType.TEXT
        return None

    def _features(
        self,
        node: Tag,
        element_type: ElementType,
        depth: int,
        inside_main: bool,
    ) -> NodeFeatures:
        if element_type == ElementType.IMAGE:
            text = (node.get("alt") or "").strip()
        elif element_type in CONTAINER_TYPES:
            heading = node.find(list(HEADING_TAGS))
            text = _text(heading) if heading else ""
        else:
            text = _text(node)

        attributes = {}
        for key in ("src", "alt", "href", "role", "aria-label"):
            if node.get(key):
                attributes[key] = str(node.get(key))

        return NodeFeatures(
            tag=node.name,
            element_type=element_type,
            text=text,
            classes=list(node.get("class") or []),
            node_id=(node.get("id") or "").strip() or None,
            attributes=attributes,
            depth=depth,
            inside_main=inside_main,
        )

    def _value_of(self, feature: NodeFeatures) -> Optional[str]:
        if feature.element_type == ElementType.IMAGE:
            return feature.attributes.get("src")
        if feature.element_type in CONTAINER_TYPES:
            return None
        return feature.text or None

    # ── Post-processing ─────────────────────────────────────────────────

    def _cap(self, scored):
        if len(scored) <= self.max_elements_per_page:
            return scored
        best = sorted(scored, key=lambda item: -item[2].confidence)[: self.max_elements_per_page]
        return sorted(best, key=lambda item: item[0])

    def _dedupe(self, scored) -> List[Tuple[Tag, CandidateElement]]:
        seen = set()
        result = []
        for _, node, candidate in scored:
            if candidate.selector in seen:
                logger.debug(f"Duplicate selector {candidate.selector}, keeping first")
                continue
            seen.add(candidate.selector)
            result.append((node, candidate))
        return result

    def _attach_parents(self, candidates: List[Tuple[Tag, CandidateElement]]) -> None:
        containers = {
            id(node): candidate.selector
            for node, candidate in candidates
            if candidate.element_type in CONTAINER_TYPES
        }
        if not containers:
            return
        for node, candidate in candidates:
            for ancestor in node.parents:
                if id(ancestor) in containers:
                    candidate.parent_selector = containers[id(ancestor)]
                    break

    def _map_sources(
        self,
        candidates: List[CandidateElement],
        known_sources: KnownSources,
        full_rescan: bool,
    ) -> None:
        for candidate in candidates:
            if not candidate.current_value:
                continue

            known = known_sources.get(candidate.selector)
            if not full_rescan and known and known[0] == candidate.current_value:
                candidate.source = known[1]
                continue

            if self.source_mapper is None:
                continue
            try:
                candidate.source = self.source_mapper.locate(candidate.current_value)
            except Exception as e:
                logger.warning(f"Source mapping failed for {candidate.selector}: {e}")
