"""Diff/changeset generation: map a batch of edits onto source files.

Replacement is literal. Each edit's old value must occur exactly once in
its file's working content (the file after earlier edits of the batch have
been applied); anything else is a diff safety failure. Every edit is
checked before failing so the caller can report all offending elements.
"""

import difflib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import AmbiguousMatch, NotFoundError, SourceUnresolved
from ..gateways.base import VersionControlGateway
from ..utils import count_occurrences

logger = logging.getLogger(__name__)

MAX_VALUE_PREVIEW = 50


def _preview(value: str) -> str:
    if len(value) > MAX_VALUE_PREVIEW:
        return value[:MAX_VALUE_PREVIEW] + "..."
    return value


@dataclass
class ChangeRequest:
    """One edit as the generator needs it."""
    element_id: str
    element_name: str
    element_type: str
    old_value: Optional[str]
    new_value: str
    source_file: Optional[str] = None
    source_line: Optional[int] = None

    @property
    def description(self) -> str:
        return f'Update {self.element_name}: "{_preview(self.old_value or "")}" -> "{_preview(self.new_value)}"'


@dataclass
class FileChange:
    """All replacements of a batch in one file."""
    path: str
    original_content: str
    new_content: str
    diff: str = ""
    requests: List[ChangeRequest] = field(default_factory=list)

    @property
    def descriptions(self) -> List[str]:
        return [r.description for r in self.requests]


@dataclass
class Changeset:
    files: List[FileChange] = field(default_factory=list)

    @property
    def edit_count(self) -> int:
        return sum(len(f.requests) for f in self.files)


class ChangesetGenerator:
    """Build a ``Changeset`` for a batch against one branch.

    Args:
        vcs: Version-control gateway of the project
        ref: Branch the file content is read from (the PR base)
    """

    def __init__(self, vcs: VersionControlGateway, ref: str):
        self._vcs = vcs
        self.ref = ref

    def generate(self, requests: List[ChangeRequest]) -> Changeset:
        """Apply every request in order, or raise for the whole batch.

        Raises:
            SourceUnresolved / AmbiguousMatch: diff safety failures; the class
                is that of the first failure and ``failures`` lists all of them
            UpstreamError: the version-control host failed
        """
        failures: List[Dict[str, Any]] = []
        files: Dict[str, FileChange] = {}

        for request in requests:
            if not request.source_file:
                failures.append(self._failure(request, "source_unresolved"))
                continue

            change = files.get(request.source_file)
            if change is None:
                content = self._fetch(request.source_file)
                if content is None:
                    failures.append(self._failure(request, "source_unresolved"))
                    continue
                change = FileChange(path=request.source_file, original_content=content, new_content=content)
                files[request.source_file] = change

            old_value = request.old_value or ""
            match_count = count_occurrences(change.new_content, old_value)
            if match_count != 1:
                failures.append(self._failure(request, "ambiguous_match", match_count=match_count))
                continue

            change.new_content = change.new_content.replace(old_value, request.new_value, 1)
            change.requests.append(request)

        if failures:
            raise self._batch_error(failures)

        changeset = Changeset()
        for change in files.values():
            change.diff = self._unified_diff(change)
            changeset.files.append(change)

        logger.info(f"Changeset: {changeset.edit_count} edits across {len(changeset.files)} files")
        return changeset

    def _fetch(self, path: str) -> Optional[str]:
        try:
            return self._vcs.get_file_content(path, self.ref).content
        except NotFoundError:
            logger.warning(f"Source file {path} no longer exists on {self.ref}")
            return None

    @staticmethod
    def _failure(request: ChangeRequest, reason: str, **extra) -> Dict[str, Any]:
        failure = {
            "element_id": request.element_id,
            "element_name": request.element_name,
            "reason": reason,
        }
        if request.source_file:
            failure["source_file"] = request.source_file
        failure.update(extra)
        return failure

    @staticmethod
    def _batch_error(failures: List[Dict[str, Any]]):
        first = failures[0]
        logger.warning(
            f"Changeset rejected: {len(failures)} unsafe edits "
            f"({', '.join(f['element_id'] for f in failures)})"
        )
        if first["reason"] == "source_unresolved":
            return SourceUnresolved(first["element_id"], failures=failures)
        return AmbiguousMatch(first["element_id"], first.get("match_count", 0), failures=failures)

    @staticmethod
    def _unified_diff(change: FileChange) -> str:
        return "".join(difflib.unified_diff(
            change.original_content.splitlines(keepends=True),
            change.new_content.splitlines(keepends=True),
            fromfile=f"a/{change.path}",
            tofile=f"b/{change.path}",
        ))
