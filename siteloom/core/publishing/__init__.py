"""
Publishing: edits -> changeset -> branch, commits and pull request.

Exports:
- ChangesetGenerator: exact-match search-and-replace per source file
- Publisher: branch / commit / pull request creation
- PublishService: the atomic publish boundary and outcome recording
"""

from .changeset import ChangeRequest, Changeset, ChangesetGenerator, FileChange
from .publisher import Publisher, generate_branch_name, generate_pr_description, generate_pr_title
from .service import PublishItem, PublishService, edit_fingerprint

__all__ = [
    "ChangeRequest",
    "Changeset",
    "ChangesetGenerator",
    "FileChange",
    "Publisher",
    "generate_branch_name",
    "generate_pr_description",
    "generate_pr_title",
    "PublishItem",
    "PublishService",
    "edit_fingerprint",
]
