"""Pluggable classification strategies.

A strategy receives the features of every candidate node on a page and
returns one verdict per node (``None`` drops the node):

- RuleBasedStrategy: deterministic scores from tag, text and class hints
- LLMClassificationStrategy: one LlamaIndex completion per page, falling
  back to the rules when the model is unavailable or its output unusable
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from llama_index.core import Settings

from .models import CONTAINER_TYPES, Classification, ElementType, NodeFeatures
from .prompts import build_classification_prompt

logger = logging.getLogger(__name__)


BASE_CONFIDENCE = {
    ElementType.HEADING: 0.95,
    ElementType.PARAGRAPH: 0.9,
    ElementType.HERO: 0.85,
    ElementType.BUTTON: 0.85,
    ElementType.IMAGE: 0.8,
    ElementType.LINK: 0.75,
    ElementType.CARD: 0.75,
    ElementType.SECTION: 0.7,
    ElementType.LIST: 0.7,
    ElementType.TEXT: 0.6,
    ElementType.CUSTOM: 0.5,
}

_BOILERPLATE = re.compile(
    r"(©|&copy;|\(c\)\s*\d{4}|all rights reserved|privacy policy|terms of (service|use)|cookie)",
    re.IGNORECASE,
)
_WORD = re.compile(r"[A-Za-z0-9]+")

MAX_NAME_LENGTH = 60


def humanize(identifier: str) -> str:
    """``hero-title`` / ``heroTitle`` / ``hero_title`` -> ``Hero Title``."""
    spaced = re.sub(r"([a-z])([A-Z])", r"\1 \2", identifier)
    words = _WORD.findall(spaced)
    return " ".join(w.capitalize() for w in words)


def _snippet(text: str, max_words: int = 6) -> str:
    words = text.split()
    snippet = " ".join(words[:max_words])
    if len(words) > max_words:
        snippet += "..."
    return snippet


def suggest_name(features: NodeFeatures) -> str:
    """Human label for the editor: id first, then alt text, then content."""
    label = features.element_type.value.capitalize()
    if features.node_id:
        name = humanize(features.node_id)
    elif features.element_type == ElementType.IMAGE:
        alt = features.attributes.get("alt", "").strip()
        name = f"Image: {_snippet(alt)}" if alt else "Image"
    elif features.text:
        name = f"{label}: {_snippet(features.text)}"
    elif features.classes:
        name = f"{label} {humanize(features.classes[0])}"
    else:
        name = label
    return name[:MAX_NAME_LENGTH]


class ClassificationStrategy(ABC):
    """Scores candidate nodes on one page."""

    name = "base"

    @abstractmethod
    def classify(
        self,
        nodes: List[NodeFeatures],
        page_url: str,
    ) -> List[Optional[Classification]]:
        """Return one verdict per node, in the same order."""
        ...


class RuleBasedStrategy(ClassificationStrategy):
    """Deterministic scoring.

    Starts from a per-type base confidence and applies penalties for
    signals that the node is boilerplate rather than editorial content.
    """

    name = "rules"

    def classify(
        self,
        nodes: List[NodeFeatures],
        page_url: str,
    ) -> List[Optional[Classification]]:
        return [self.classify_node(node) for node in nodes]

    def classify_node(self, node: NodeFeatures) -> Optional[Classification]:
        text = node.text.strip()
        is_image = node.element_type == ElementType.IMAGE
        is_container = node.element_type in CONTAINER_TYPES

        if not is_image and not is_container and len(text) < 2:
            return None
        if is_image and not node.attributes.get("src"):
            return None

        confidence = BASE_CONFIDENCE.get(node.element_type, 0.5)

        if _BOILERPLATE.search(text):
            confidence -= 0.3
        if len(text) > 1000:
            confidence -= 0.2
        if node.element_type == ElementType.LINK and len(text) < 4:
            confidence -= 0.2
        if node.element_type == ElementType.TEXT and len(text.split()) < 3:
            confidence -= 0.1
        if is_image and not node.attributes.get("alt"):
            confidence -= 0.1
        if node.inside_main:
            confidence += 0.05

        confidence = max(0.0, min(1.0, confidence))
        return Classification(
            element_type=node.element_type,
            name=suggest_name(node),
            confidence=confidence,
        )


class LLMClassificationStrategy(ClassificationStrategy):
    """Ask the configured LlamaIndex LLM to name and score the nodes.

    The model sees a numbered list of nodes and answers with a JSON array of
    ``{"index", "type", "name", "confidence"}``. Nodes it leaves out are
    treated as not editable.
    """

    name = "llm"

    def __init__(self, fallback: Optional[ClassificationStrategy] = None, max_text_chars: int = 200):
        self._fallback = fallback or RuleBasedStrategy()
        self.max_text_chars = max_text_chars

    def classify(
        self,
        nodes: List[NodeFeatures],
        page_url: str,
    ) -> List[Optional[Classification]]:
        if not nodes:
            return []

        try:
            llm = Settings.llm
        except (ImportError, ValueError) as e:
            logger.warning(f"No LLM configured ({e}), using rule-based classification")
            return self._fallback.classify(nodes, page_url)

        prompt = build_classification_prompt(nodes, page_url, self.max_text_chars)
        try:
            response = llm.complete(prompt)
        except Exception as e:
            logger.error(f"LLM classification failed for {page_url}: {e}")
            return self._fallback.classify(nodes, page_url)

        parsed = self._parse_json_output(response.text.strip())
        if not isinstance(parsed, list):
            logger.warning(f"Unusable LLM classification for {page_url}, using rules")
            return self._fallback.classify(nodes, page_url)

        verdicts: List[Optional[Classification]] = [None] * len(nodes)
        for item in parsed:
            verdict = self._to_classification(item, nodes)
            if verdict is not None:
                index, classification = verdict
                verdicts[index] = classification
        return verdicts

    def _to_classification(self, item: Any, nodes: List[NodeFeatures]):
        if not isinstance(item, dict):
            return None
        try:
            index = int(item.get("index"))
            confidence = float(item.get("confidence", 0.0))
        except (TypeError, ValueError):
            return None
        if not 0 <= index < len(nodes):
            return None

        node = nodes[index]
        element_type = ElementType.coerce(item.get("type")) if item.get("type") else node.element_type
        name = str(item.get("name") or suggest_name(node))[:MAX_NAME_LENGTH]
        return index, Classification(
            element_type=element_type,
            name=name,
            confidence=max(0.0, min(1.0, confidence)),
        )

    # ── Output Parsing ──────────────────────────────────────────────────

    def _parse_json_output(self, raw: str) -> Optional[Any]:
        """Parse JSON from LLM output, stripping markdown fences."""
        cleaned = raw
        if "```json" in cleaned:
            cleaned = cleaned.split("```json", 1)[1]
        if "```" in cleaned:
            cleaned = cleaned.split("```", 1)[0]
        cleaned = cleaned.strip()

        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.warning(f"JSON parse failed: {e}. Attempting repair.")
            start = cleaned.find("[")
            end = cleaned.rfind("]")
            if start >= 0 and end > start:
                try:
                    return json.loads(cleaned[start:end + 1])
                except json.JSONDecodeError:
                    pass
            return None


def build_strategy(name: str) -> ClassificationStrategy:
    """Strategy for the ``analysis.classifier`` setting."""
    if name == "llm":
        return LLMClassificationStrategy()
    if name != "rules":
        logger.warning(f"Unknown classifier '{name}', using rules")
    return RuleBasedStrategy()
