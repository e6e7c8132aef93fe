"""Prompt template for model-backed element classification."""

from typing import List

from .models import ElementType, NodeFeatures

_TYPES = ", ".join(t.value for t in ElementType)


def build_classification_prompt(
    nodes: List[NodeFeatures],
    page_url: str,
    max_text_chars: int = 200,
) -> str:
    """Build the per-page classification prompt.

    Args:
        nodes: Candidate nodes, numbered by their position in this list
        page_url: Page the nodes were extracted from
        max_text_chars: Per-node text truncation
    """
    lines = []
    for index, node in enumerate(nodes):
        text = node.text.replace("\n", " ").strip()
        if len(text) > max_text_chars:
            text = text[:max_text_chars] + "..."
        hints = []
        if node.node_id:
            hints.append(f"id={node.node_id}")
        if node.classes:
            hints.append(f"class={' '.join(node.classes[:3])}")
        if node.attributes.get("alt"):
            hints.append(f"alt={node.attributes['alt']}")
        hint_str = f" ({', '.join(hints)})" if hints else ""
        lines.append(f"[{index}] <{node.tag}>{hint_str} {text}")

    node_list = "\n".join(lines)

    return f"""You are an expert web analyst identifying content a marketing or content team would edit.

## PAGE
{page_url}

## CANDIDATE NODES
{node_list}

## INSTRUCTIONS
For each node that is genuinely editable content, decide:
- type: one of {_TYPES}
- name: a short human-readable label (e.g. "Hero Title", "About Section Paragraph")
- confidence: 0-1, how sure you are this is editable content

Skip dynamic content, menus, cookie banners and legal boilerplate.
Leave out nodes that are not editable content.

## OUTPUT
Return ONLY a JSON array, no prose:
[{{"index": 0, "type": "heading", "name": "Hero Title", "confidence": 0.9}}]
"""
