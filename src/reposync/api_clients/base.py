"""Base remote client interface."""

from abc import ABC, abstractmethod
from typing import List

from .models import (
    AuthenticatedUser,
    BlobInfo,
    BranchInfo,
    CommitInfo,
    RefInfo,
    RepositoryInfo,
    TreeEntry,
    TreeInfo,
)
from ..utils.logging import get_logger


class BaseRemoteClient(ABC):
    """Abstract remote repository service consumed by the sync engine.

    Implementations hold the bearer credential themselves; the engine only
    ever talks in owner/repo/branch terms.
    """

    def __init__(self, **kwargs):
        self.logger = get_logger(self.__class__.__name__)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Release network resources."""
        pass

    @abstractmethod
    async def get_authenticated_user(self) -> AuthenticatedUser:
        """Return the identity the credential belongs to."""

    @abstractmethod
    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        """Return repository metadata, including its default branch."""

    @abstractmethod
    async def get_branch(self, owner: str, repo: str, branch: str) -> BranchInfo:
        """Return the branch and the commit it currently points at."""

    @abstractmethod
    async def list_branches(self, owner: str, repo: str) -> List[BranchInfo]:
        """Return every branch of the repository."""

    @abstractmethod
    async def get_ref(self, owner: str, repo: str, ref: str) -> RefInfo:
        """Read a ref such as ``heads/main``."""

    @abstractmethod
    async def get_commit(self, owner: str, repo: str, commit_sha: str) -> CommitInfo:
        """Return a commit and its root tree id."""

    @abstractmethod
    async def create_blob(self, owner: str, repo: str, content_base64: str) -> BlobInfo:
        """Store base64-encoded bytes as a blob."""

    @abstractmethod
    async def create_tree(
        self,
        owner: str,
        repo: str,
        base_tree: str,
        entries: List[TreeEntry]
    ) -> TreeInfo:
        """Materialize a new tree from ``base_tree`` plus ``entries``."""

    @abstractmethod
    async def create_commit(
        self,
        owner: str,
        repo: str,
        message: str,
        tree_sha: str,
        parents: List[str]
    ) -> CommitInfo:
        """Create a commit object."""

    @abstractmethod
    async def update_ref(self, owner: str, repo: str, ref: str, sha: str) -> RefInfo:
        """Point ``ref`` at ``sha``."""

    @abstractmethod
    async def download_archive(self, owner: str, repo: str, branch: str) -> bytes:
        """Download a zip snapshot of ``branch``."""
