"""
External collaborator gateways.

Exports:
- VersionControlGateway / BrowserGateway: abstract interfaces
- Value objects exchanged with gateways
"""

from .base import (
    BrowserGateway,
    CodeSearchHit,
    FileCommit,
    FileContent,
    PageLoad,
    PullRequestParams,
    PullRequestRef,
    VersionControlGateway,
)

__all__ = [
    "BrowserGateway",
    "CodeSearchHit",
    "FileCommit",
    "FileContent",
    "PageLoad",
    "PullRequestParams",
    "PullRequestRef",
    "VersionControlGateway",
]
