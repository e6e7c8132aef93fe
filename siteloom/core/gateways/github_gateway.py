"""GitHub implementation of the version-control gateway (PyGithub).

Idempotent reads (file content, code search) go through a bounded
exponential backoff; branch creation, commits and pull request creation are
called exactly once and surface failures to the caller.
"""

import logging
import posixpath
from typing import Callable, List, Optional

import backoff
from github import Auth, Github, GithubException, UnknownObjectException
from requests.exceptions import RequestException

from ..errors import NotFoundError, UpstreamError
from .base import (
    CodeSearchHit,
    FileCommit,
    FileContent,
    PullRequestParams,
    PullRequestRef,
    VersionControlGateway,
)

logger = logging.getLogger(__name__)

# Statuses worth retrying: rate limits and server-side failures
_RETRYABLE_STATUSES = {403, 429, 500, 502, 503, 504}

MAX_SEARCH_RESULTS = 20

# PyGithub raises GithubException for API errors and lets transport errors
# from requests through untouched
UPSTREAM_ERRORS = (GithubException, RequestException)


def _is_permanent(exc: Exception) -> bool:
    """backoff giveup predicate: stop retrying on client errors."""
    if isinstance(exc, GithubException):
        return exc.status not in _RETRYABLE_STATUSES
    return False


def _describe(exc: Exception) -> str:
    if isinstance(exc, GithubException):
        return str(exc.status)
    return type(exc).__name__


class GitHubGateway(VersionControlGateway):
    """Version-control gateway bound to one repository.

    Args:
        repo_full_name: ``owner/repo``
        token: Personal access or installation token
        base_url: API root (GitHub Enterprise support)
        root_path: Restrict code search to this subdirectory (monorepos)
        read_retries: Max attempts for idempotent reads
        client: Pre-built ``Github`` client (tests)
    """

    def __init__(
        self,
        repo_full_name: str,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        root_path: str = "",
        read_retries: int = 3,
        client: Optional[Github] = None,
    ):
        self.repo_full_name = repo_full_name
        self.root_path = (root_path or "").strip("/")
        self.read_retries = read_retries
        if client is not None:
            self._client = client
        elif token:
            self._client = Github(auth=Auth.Token(token), base_url=base_url)
        else:
            self._client = Github(base_url=base_url)
        self._repo = None

    @property
    def repo(self):
        if self._repo is None:
            try:
                self._repo = self._client.get_repo(self.repo_full_name)
            except UPSTREAM_ERRORS as e:
                raise UpstreamError(
                    f"Cannot access repository {self.repo_full_name}: {_describe(e)}",
                    repo=self.repo_full_name,
                )
        return self._repo

    # ── Retry helper ─────────────────────────────────────────────────

    def _retry_read(self, fn: Callable, *args, **kwargs):
        """Call an idempotent read with exponential backoff."""

        @backoff.on_exception(
            backoff.expo,
            UPSTREAM_ERRORS,
            max_tries=self.read_retries,
            giveup=_is_permanent,
            on_backoff=self._on_retry,
        )
        def _do_call():
            return fn(*args, **kwargs)

        return _do_call()

    def _on_retry(self, details: dict):
        logger.warning(
            f"GitHub read retry {details['tries']}/{self.read_retries} "
            f"after {details['wait']:.1f}s: {type(details.get('exception')).__name__}"
        )

    # ── Reads ────────────────────────────────────────────────────────

    def get_file_content(self, path: str, ref: str) -> FileContent:
        try:
            contents = self._retry_read(self.repo.get_contents, path, ref=ref)
        except UnknownObjectException:
            raise NotFoundError(f"File not found: {path}@{ref}", path=path, ref=ref)
        except UPSTREAM_ERRORS as e:
            raise UpstreamError(f"Failed to read {path}: {_describe(e)}", path=path)

        if isinstance(contents, list):
            raise NotFoundError(f"Path is a directory: {path}", path=path)

        return FileContent(
            path=contents.path,
            content=contents.decoded_content.decode("utf-8"),
            sha=contents.sha,
        )

    def search_code(self, query: str) -> List[CodeSearchHit]:
        escaped = query.replace('"', " ").strip()
        qualifiers = f"repo:{self.repo_full_name}"
        if self.root_path:
            qualifiers += f" path:{self.root_path}"

        def _search():
            results = self._client.search_code(f'"{escaped}" {qualifiers}')
            return [
                CodeSearchHit(path=item.path, sha=item.sha)
                for item in results[:MAX_SEARCH_RESULTS]
            ]

        try:
            return self._retry_read(_search)
        except UPSTREAM_ERRORS as e:
            raise UpstreamError(f"Code search failed: {_describe(e)}", query=query)

    # ── Writes (never retried) ───────────────────────────────────────

    def create_branch(self, name: str, base_ref: str) -> None:
        try:
            base = self.repo.get_branch(base_ref)
            self.repo.create_git_ref(ref=f"refs/heads/{name}", sha=base.commit.sha)
            logger.info(f"Created branch {name} from {base_ref} ({base.commit.sha[:7]})")
        except UPSTREAM_ERRORS as e:
            raise UpstreamError(f"Failed to create branch {name}: {_describe(e)}", branch=name)

    def commit_files(self, branch: str, files: List[FileCommit]) -> None:
        for change in files:
            try:
                try:
                    existing = self.repo.get_contents(change.path, ref=branch)
                except UnknownObjectException:
                    existing = None

                if existing is None:
                    self.repo.create_file(change.path, change.message, change.content, branch=branch)
                    logger.info(f"Created {change.path} on {branch}")
                else:
                    self.repo.update_file(
                        change.path,
                        change.message,
                        change.content,
                        existing.sha,
                        branch=branch,
                    )
                    logger.info(f"Committed {change.path} to {branch}")
            except UPSTREAM_ERRORS as e:
                raise UpstreamError(
                    f"Failed to commit {change.path}: {_describe(e)}",
                    path=change.path,
                    branch=branch,
                )

    def open_pull_request(self, params: PullRequestParams) -> PullRequestRef:
        try:
            pr = self.repo.create_pull(
                title=params.title,
                body=params.body,
                head=params.head,
                base=params.base,
            )
        except UPSTREAM_ERRORS as e:
            raise UpstreamError(f"Failed to open pull request: {_describe(e)}", branch=params.head)
        logger.info(f"Opened PR #{pr.number} ({params.head} -> {params.base})")
        return PullRequestRef(number=pr.number, url=pr.html_url)


class GitHubGatewayFactory:
    """Builds a gateway for a project from application settings."""

    def __init__(self, token: Optional[str], base_url: str = "https://api.github.com", read_retries: int = 3):
        self.token = token
        self.base_url = base_url
        self.read_retries = read_retries

    def __call__(self, project) -> GitHubGateway:
        return GitHubGateway(
            repo_full_name=project.repo_full_name,
            token=self.token,
            base_url=self.base_url,
            root_path=posixpath.normpath(project.root_path) if project.root_path else "",
            read_retries=self.read_retries,
        )
