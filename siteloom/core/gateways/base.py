"""Gateway interfaces for the external collaborators.

The analysis and publish pipelines only talk to the outside world through
these two interfaces, so tests can swap in in-memory fakes:

- VersionControlGateway: read files, search code, branch/commit/PR (sync)
- BrowserGateway: drive a headless browser over a deployed site (async)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class FileContent:
    path: str
    content: str
    sha: Optional[str] = None


@dataclass
class CodeSearchHit:
    path: str
    sha: Optional[str] = None


@dataclass
class FileCommit:
    path: str
    content: str
    message: str


@dataclass
class PullRequestParams:
    title: str
    body: str
    head: str          # branch holding the changes
    base: str          # branch the PR targets


@dataclass
class PullRequestRef:
    number: int
    url: str


@dataclass
class PageLoad:
    url: str           # final URL after redirects
    title: str
    status: Optional[int] = None


class VersionControlGateway(ABC):
    """Repository operations needed by source mapping and publishing.

    Implementations raise ``UpstreamError`` for provider failures and
    ``NotFoundError`` for missing files. ``get_file_content`` and
    ``search_code`` are idempotent and may retry; the write operations must
    not retry on their own.
    """

    @abstractmethod
    def get_file_content(self, path: str, ref: str) -> FileContent:
        ...

    @abstractmethod
    def search_code(self, query: str) -> List[CodeSearchHit]:
        ...

    @abstractmethod
    def create_branch(self, name: str, base_ref: str) -> None:
        ...

    @abstractmethod
    def commit_files(self, branch: str, files: List[FileCommit]) -> None:
        ...

    @abstractmethod
    def open_pull_request(self, params: PullRequestParams) -> PullRequestRef:
        ...


class BrowserGateway(ABC):
    """A single browser tab. Methods act on the most recently navigated page."""

    @abstractmethod
    async def navigate(self, url: str) -> PageLoad:
        ...

    @abstractmethod
    async def extract_dom(self) -> str:
        """Serialized HTML of the rendered page."""
        ...

    @abstractmethod
    async def capture_screenshot(self) -> bytes:
        ...

    @abstractmethod
    async def get_links(self) -> List[str]:
        """Absolute hrefs of every anchor on the page."""
        ...
