"""Selector, xpath and URL helpers for the crawler and classifier.

Selectors are built from BeautifulSoup tags:
- ``#id`` when the node has an id
- otherwise ``tag.class1.class2:nth-child(n)`` segments joined with ``" > "``,
  walking up to (not including) ``body`` and stopping at the first ancestor
  that has an id
"""

import re
from typing import List, Optional
from urllib.parse import urldefrag, urljoin, urlsplit, urlunsplit

from bs4 import Tag

# Class names that are safe to drop into a CSS selector unescaped
_SAFE_CLASS = re.compile(r"^-?[_a-zA-Z][_a-zA-Z0-9-]*$")
_SAFE_ID = _SAFE_CLASS

_ROOT_TAGS = {"body", "html", "[document]"}


def _id_segment(node_id: str) -> str:
    if _SAFE_ID.match(node_id):
        return f"#{node_id}"
    escaped = node_id.replace("\\", "\\\\").replace('"', '\\"')
    return f'[id="{escaped}"]'


def _element_siblings(node: Tag) -> List[Tag]:
    parent = node.parent
    if parent is None:
        return [node]
    return [child for child in parent.children if isinstance(child, Tag)]


def _segment(node: Tag) -> str:
    segment = node.name
    classes = [c for c in (node.get("class") or []) if _SAFE_CLASS.match(c)][:2]
    if classes:
        segment += "." + ".".join(classes)

    siblings = _element_siblings(node)
    same_tag = [s for s in siblings if s.name == node.name]
    if len(same_tag) > 1:
        # nth-child counts every element sibling, not only same-tag ones
        position = next(i for i, s in enumerate(siblings) if s is node) + 1
        segment += f":nth-child({position})"
    return segment


def build_selector(node: Tag) -> str:
    """CSS selector that uniquely identifies ``node`` within its document."""
    node_id = (node.get("id") or "").strip()
    if node_id:
        return _id_segment(node_id)

    path: List[str] = []
    current: Optional[Tag] = node
    while current is not None and current.name not in _ROOT_TAGS:
        current_id = (current.get("id") or "").strip()
        if current_id:
            path.insert(0, _id_segment(current_id))
            break
        path.insert(0, _segment(current))
        current = current.parent

    return " > ".join(path)


def build_xpath(node: Tag) -> str:
    """Absolute, fully indexed xpath (``/html[1]/body[1]/div[2]/h1[1]``)."""
    parts: List[str] = []
    current: Optional[Tag] = node
    while current is not None and current.name != "[document]":
        siblings = [s for s in _element_siblings(current) if s.name == current.name]
        index = next(i for i, s in enumerate(siblings) if s is current) + 1
        parts.insert(0, f"{current.name}[{index}]")
        current = current.parent
    return "/" + "/".join(parts)


# ── URLs ────────────────────────────────────────────────────────────

def normalize_url(url: str) -> str:
    """Visited-set key: lower-case scheme/host, no fragment, no trailing slash.

    The query string is kept, ``/about`` and ``/about/`` collapse to one key.
    """
    url, _fragment = urldefrag(url.strip())
    parts = urlsplit(url)
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def same_origin(url: str, root_url: str) -> bool:
    a, b = urlsplit(url), urlsplit(root_url)
    return (a.scheme.lower(), a.netloc.lower()) == (b.scheme.lower(), b.netloc.lower())


def resolve_link(href: str, base_url: str) -> Optional[str]:
    """Absolute http(s) URL for an href, or None for mailto:, javascript: etc."""
    href = (href or "").strip()
    if not href or href.startswith("#"):
        return None
    absolute = urljoin(base_url, href)
    if urlsplit(absolute).scheme not in ("http", "https"):
        return None
    return absolute
