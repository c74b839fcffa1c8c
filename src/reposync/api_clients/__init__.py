"""Remote repository clients."""

from .base import BaseRemoteClient
from .github import GitHubClient
from .models import (
    AuthenticatedUser,
    BlobInfo,
    BranchInfo,
    CommitInfo,
    RefInfo,
    RepositoryInfo,
    TreeEntry,
    TreeInfo
)

__all__ = [
    "BaseRemoteClient",
    "GitHubClient",

    # Response models
    "AuthenticatedUser",
    "BlobInfo",
    "BranchInfo",
    "CommitInfo",
    "RefInfo",
    "RepositoryInfo",
    "TreeEntry",
    "TreeInfo"
]
