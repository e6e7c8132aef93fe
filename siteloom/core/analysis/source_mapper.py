"""Best-effort mapping of rendered values back to source files.

A value is mapped only when the repository search returns exactly one
file and that file contains the value exactly once. Anything else leaves
the location empty; mapping failures never block classification.
"""

import logging
from typing import Dict, Optional

from ..errors import SiteloomError
from ..gateways.base import VersionControlGateway
from ..utils.text import locate_unique
from .models import SourceLocation

logger = logging.getLogger(__name__)

# Code search rejects very long queries
MAX_QUERY_LENGTH = 128


class SourceMapper:
    """Locate literal values in the project's repository.

    Args:
        vcs: Version-control gateway for the project
        ref: Branch or commit to read file content from
        min_search_length: Shorter values are never searched (too ambiguous)
    """

    def __init__(self, vcs: VersionControlGateway, ref: str, min_search_length: int = 5):
        self._vcs = vcs
        self.ref = ref
        self.min_search_length = min_search_length
        self._content_cache: Dict[str, str] = {}

    def locate(self, value: Optional[str]) -> Optional[SourceLocation]:
        value = (value or "").strip()
        if len(value) < self.min_search_length:
            return None

        query = value[:MAX_QUERY_LENGTH]
        try:
            hits = self._vcs.search_code(query)
        except SiteloomError as e:
            logger.warning(f"Code search failed for {query[:40]!r}: {e.message}")
            return None

        paths = {hit.path for hit in hits}
        if len(paths) != 1:
            logger.debug(f"{len(paths)} files match {query[:40]!r}, leaving unmapped")
            return None

        path = paths.pop()
        content = self._read(path)
        if content is None:
            return None

        position = locate_unique(content, value)
        if position is None:
            return None
        line, column = position
        return SourceLocation(file_path=path, line=line, column=column)

    def _read(self, path: str) -> Optional[str]:
        if path not in self._content_cache:
            try:
                self._content_cache[path] = self._vcs.get_file_content(path, self.ref).content
            except SiteloomError as e:
                logger.warning(f"Could not read {path}@{self.ref}: {e.message}")
                return None
        return self._content_cache[path]
