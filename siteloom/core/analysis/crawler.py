"""Breadth-first, same-origin site crawler.

The crawler is a deterministic loop over injected collaborators: a
``BrowserGateway`` to load pages and an ``ElementClassifier`` to turn each
page's DOM into candidates. Cancellation is cooperative and checked before
every page visit.
"""

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Callable, Deque, List, Optional, Set, Tuple

from ..errors import AnalysisCancelled, SiteloomError, UpstreamError
from ..gateways.base import BrowserGateway
from .classifier import ElementClassifier, KnownSources
from .models import PageResult
from .selectors import normalize_url, resolve_link, same_origin

logger = logging.getLogger(__name__)

# Links to these are downloads, not pages
SKIPPED_EXTENSIONS = (
    ".pdf", ".zip", ".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp",
    ".ico", ".mp4", ".mp3", ".css", ".js", ".xml", ".json",
)


class SiteCrawler:
    """Visit same-origin pages from a root URL and classify each one.

    Args:
        browser: Browser gateway (one tab, reused for every page)
        classifier: Turns page HTML into candidate elements
        max_pages: Upper bound on visited pages, failed ones included
        max_depth: Link distance from the root beyond which links are ignored
        max_consecutive_failures: Failures tolerated in a row before the
            crawl fails with ``UpstreamError``
        should_cancel: Sync callable polled before each page visit
        known_sources: Sync callable returning previously mapped sources
            for a page URL (incremental source mapping)
        full_rescan: Remap every value instead of reusing known sources
    """

    def __init__(
        self,
        browser: BrowserGateway,
        classifier: ElementClassifier,
        max_pages: int = 50,
        max_depth: int = 3,
        max_consecutive_failures: int = 3,
        should_cancel: Optional[Callable[[], bool]] = None,
        known_sources: Optional[Callable[[str], KnownSources]] = None,
        full_rescan: bool = False,
    ):
        self.browser = browser
        self.classifier = classifier
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.max_consecutive_failures = max_consecutive_failures
        self._should_cancel = should_cancel
        self._known_sources = known_sources
        self.full_rescan = full_rescan

        self.pages_visited = 0
        self.pages_failed = 0

    async def crawl(self, root_url: str) -> AsyncIterator[PageResult]:
        """Yield one ``PageResult`` per visited page, breadth first.

        Raises:
            AnalysisCancelled: cancel observed at a page boundary
            UpstreamError: too many consecutive failures, or no page loaded
        """
        root = normalize_url(root_url)
        frontier: Deque[Tuple[str, int]] = deque([(root, 0)])
        visited: Set[str] = {root}
        consecutive_failures = 0

        while frontier and self.pages_visited < self.max_pages:
            if await self._cancel_requested():
                logger.info(f"Crawl of {root} cancelled after {self.pages_visited} pages")
                raise AnalysisCancelled()

            url, depth = frontier.popleft()
            self.pages_visited += 1

            result = await self._visit(url)
            yield result

            if not result.ok:
                self.pages_failed += 1
                consecutive_failures += 1
                if consecutive_failures > self.max_consecutive_failures:
                    raise UpstreamError(
                        f"Crawl aborted after {consecutive_failures} consecutive page failures",
                        last_error=result.error,
                    )
                continue

            consecutive_failures = 0
            if depth >= self.max_depth:
                continue
            for link in result.linked_pages:
                if link not in visited:
                    visited.add(link)
                    frontier.append((link, depth + 1))

        if self.pages_visited and self.pages_failed == self.pages_visited:
            raise UpstreamError(f"No page of {root} could be loaded")

        logger.info(
            f"Crawl of {root} finished: {self.pages_visited} visited, "
            f"{self.pages_failed} failed, {len(frontier)} left in frontier"
        )

    # ── Per page ────────────────────────────────────────────────────────

    async def _visit(self, url: str) -> PageResult:
        try:
            load = await self.browser.navigate(url)
            html = await self.browser.extract_dom()
            links = await self.browser.get_links()
        except SiteloomError as e:
            logger.warning(f"Failed to load {url}: {e.message}")
            return PageResult(page_url=url, error=e.message)

        known = {}
        if self._known_sources is not None and not self.full_rescan:
            known = await asyncio.to_thread(self._known_sources, url)

        try:
            elements = await asyncio.to_thread(
                self.classifier.classify_page,
                html,
                url,
                known,
                self.full_rescan,
            )
        except Exception as e:
            logger.error(f"Classification failed for {url}: {e}", exc_info=True)
            return PageResult(page_url=url, page_title=load.title, error=f"Classification failed: {e}")

        return PageResult(
            page_url=url,
            page_title=load.title,
            elements=elements,
            linked_pages=self._frontier_links(links, url),
        )

    def _frontier_links(self, hrefs: List[str], page_url: str) -> List[str]:
        links: List[str] = []
        seen: Set[str] = set()
        for href in hrefs:
            absolute = resolve_link(href, page_url)
            if absolute is None or not same_origin(absolute, page_url):
                continue
            normalized = normalize_url(absolute)
            if normalized.lower().endswith(SKIPPED_EXTENSIONS) or normalized in seen:
                continue
            seen.add(normalized)
            links.append(normalized)
        return links

    async def _cancel_requested(self) -> bool:
        if self._should_cancel is None:
            return False
        return bool(await asyncio.to_thread(self._should_cancel))
