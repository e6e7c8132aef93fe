"""Publisher: turn a changeset into a branch, commits and a pull request.

Branch creation, commits and the pull request call are never retried
here; a failed publish is re-triggered explicitly by the caller.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from ..gateways.base import FileCommit, PullRequestParams, VersionControlGateway
from .changeset import ChangeRequest, Changeset

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_PREFIX = "content-update"
DEFAULT_TITLE_PREFIX = "[Content]"


@dataclass
class PublishResult:
    pr_number: int
    pr_url: str
    branch_name: str
    title: str
    description: str


def generate_branch_name(
    project_id: str,
    prefix: str = DEFAULT_BRANCH_PREFIX,
    now: Optional[datetime] = None,
) -> str:
    """``content-update/1a2b3c4d-20260101120000123456`` (UTC, microseconds)."""
    now = now or datetime.utcnow()
    short_id = str(project_id).replace("-", "")[:8]
    return f"{prefix}/{short_id}-{now.strftime('%Y%m%d%H%M%S%f')}"


def generate_pr_title(requests: Sequence[ChangeRequest], prefix: str = DEFAULT_TITLE_PREFIX) -> str:
    """Default title from the batch.

    - one edit: ``[Content] Update Hero Title``
    - one shared type: ``[Content] Update 3 buttons``
    - otherwise: ``[Content] Update 2 elements``
    """
    if len(requests) == 1:
        return f"{prefix} Update {requests[0].element_name}"
    types = {r.element_type for r in requests}
    if len(types) == 1:
        return f"{prefix} Update {len(requests)} {types.pop()}s"
    return f"{prefix} Update {len(requests)} elements"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def generate_pr_description(changeset: Changeset) -> str:
    """Markdown body: summary, then each changed element grouped by file."""
    requests = [r for f in changeset.files for r in f.requests]
    types: List[str] = []
    for r in requests:
        if r.element_type not in types:
            types.append(r.element_type)

    lines = [
        "# Content Update",
        "",
        f"> **{_plural(len(requests), 'element')}** updated across "
        f"**{_plural(len(changeset.files), 'file')}**",
        f"> Types: {', '.join(f'`{t}`' for t in types)}",
        "",
        "---",
        "",
        "## Changes",
        "",
    ]

    for change in changeset.files:
        lines.append(f"### `{change.path}`")
        lines.append("")
        for r in change.requests:
            lines.append(f"#### {r.element_name} `{r.element_type}`")
            lines.append("")
            lines.append("```diff")
            lines.append(f"- {r.old_value or ''}")
            lines.append(f"+ {r.new_value}")
            lines.append("```")
            if r.source_line:
                lines.append("")
                lines.append(f"**Line {r.source_line}**")
            lines.append("")

    lines.extend([
        "---",
        "",
        "## Review Checklist",
        "",
        "- [ ] Content changes look correct",
        "- [ ] No unintended formatting changes",
        "",
    ])
    return "\n".join(lines)


class Publisher:
    """Create branch, commit each changed file, open the pull request."""

    def __init__(
        self,
        vcs: VersionControlGateway,
        branch_prefix: str = DEFAULT_BRANCH_PREFIX,
        title_prefix: str = DEFAULT_TITLE_PREFIX,
    ):
        self._vcs = vcs
        self.branch_prefix = branch_prefix
        self.title_prefix = title_prefix

    def publish(
        self,
        project_id: str,
        target_branch: str,
        changeset: Changeset,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PublishResult:
        """Raises UpstreamError from the gateway on any provider failure."""
        requests = [r for f in changeset.files for r in f.requests]
        if not requests:
            raise ValueError("Nothing to publish: changeset is empty")

        title = title or generate_pr_title(requests, self.title_prefix)
        description = description or generate_pr_description(changeset)
        branch_name = generate_branch_name(project_id, self.branch_prefix)

        logger.info(f"Publishing {len(requests)} edits for {project_id} on {branch_name}")
        self._vcs.create_branch(branch_name, target_branch)

        commits = [
            FileCommit(
                path=change.path,
                content=change.new_content,
                message=f"{self.title_prefix} {change.descriptions[0]}",
            )
            for change in changeset.files
        ]
        # One call per file keeps one commit per file
        for commit in commits:
            self._vcs.commit_files(branch_name, [commit])

        pr = self._vcs.open_pull_request(PullRequestParams(
            title=title,
            body=description,
            head=branch_name,
            base=target_branch,
        ))
        logger.info(f"Opened PR #{pr.number} for project {project_id}: {title}")

        return PublishResult(
            pr_number=pr.number,
            pr_url=pr.url,
            branch_name=branch_name,
            title=title,
            description=description,
        )
