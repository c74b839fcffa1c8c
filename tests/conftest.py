"""Shared fixtures: an in-memory remote and isolated settings."""

import base64
import hashlib
import io
import os
import sys
import zipfile
from typing import Dict, List, Optional, Set
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from reposync.api_clients.base import BaseRemoteClient
from reposync.api_clients.models import (
    AuthenticatedUser,
    BlobInfo,
    BranchInfo,
    CommitInfo,
    RefInfo,
    RepositoryInfo,
    TreeEntry,
    TreeInfo,
)
from reposync.config.settings import AppSettings, GitHubSettings, SchedulingSettings
from reposync.core import StateStore
from reposync.database import DatabaseManager, DatabaseService
from reposync.exceptions import NotFoundError, RemoteRejectedError


class FakeRemoteClient(BaseRemoteClient):
    """Git data API for one repository, kept in memory.

    Commits, trees and blobs are content-addressed by a counter so every
    new object gets a fresh id. ``fail_on`` maps a method name to the
    exception it should raise, which lets tests break any single step.
    """

    def __init__(
        self,
        owner: str = "octo",
        repo: str = "notes",
        login: str = "octo",
        default_branch: str = "main",
        files: Optional[Dict[str, bytes]] = None
    ):
        super().__init__()
        self.owner = owner
        self.repo = repo
        self.login = login
        self.default_branch = default_branch

        self.calls: List[str] = []
        self.fail_on: Dict[str, Exception] = {}
        self.messages: List[str] = []
        self.tree_entries: List[List[TreeEntry]] = []
        self.extra_archive_entries: Dict[str, bytes] = {}

        self._counter = 0
        self.trees: Dict[str, Dict[str, bytes]] = {}
        self.commits: Dict[str, CommitInfo] = {}
        self.blobs: Dict[str, bytes] = {}
        self.heads: Dict[str, str] = {}

        self.set_files(default_branch, files or {})

    # Test helpers

    def _new_id(self, kind: str) -> str:
        self._counter += 1
        return hashlib.sha1(f"{kind}-{self._counter}".encode()).hexdigest()

    def set_files(self, branch: str, files: Dict[str, bytes], message: str = "upstream") -> str:
        """Commit ``files`` as the full content of ``branch``."""
        tree_sha = self._new_id("tree")
        self.trees[tree_sha] = dict(files)
        parents = [self.heads[branch]] if branch in self.heads else []
        commit_sha = self._new_id("commit")
        self.commits[commit_sha] = CommitInfo(sha=commit_sha, tree_sha=tree_sha, parents=parents)
        self.heads[branch] = commit_sha
        return commit_sha

    def files(self, branch: Optional[str] = None) -> Dict[str, bytes]:
        """Current content of ``branch``."""
        head = self.heads[branch or self.default_branch]
        return dict(self.trees[self.commits[head].tree_sha])

    def _record(self, name: str, owner: Optional[str] = None, repo: Optional[str] = None) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]
        if owner is not None and (owner, repo) != (self.owner, self.repo):
            raise NotFoundError(f"Repository {owner}/{repo} not found", 404)

    def _head(self, branch: str) -> str:
        if branch not in self.heads:
            raise NotFoundError(f"Branch {branch} not found", 404)
        return self.heads[branch]

    @property
    def remote_calls(self) -> Set[str]:
        return set(self.calls)

    # BaseRemoteClient

    async def get_authenticated_user(self) -> AuthenticatedUser:
        self._record("get_authenticated_user")
        return AuthenticatedUser(login=self.login)

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        self._record("get_repository", owner, repo)
        return RepositoryInfo(full_name=f"{owner}/{repo}", default_branch=self.default_branch)

    async def get_branch(self, owner: str, repo: str, branch: str) -> BranchInfo:
        self._record("get_branch", owner, repo)
        return BranchInfo(name=branch, commit_sha=self._head(branch))

    async def list_branches(self, owner: str, repo: str) -> List[BranchInfo]:
        self._record("list_branches", owner, repo)
        return [BranchInfo(name=name, commit_sha=sha) for name, sha in sorted(self.heads.items())]

    async def get_ref(self, owner: str, repo: str, ref: str) -> RefInfo:
        self._record("get_ref", owner, repo)
        branch = ref[len("heads/"):]
        return RefInfo(ref=f"refs/{ref}", sha=self._head(branch))

    async def get_commit(self, owner: str, repo: str, commit_sha: str) -> CommitInfo:
        self._record("get_commit", owner, repo)
        if commit_sha not in self.commits:
            raise NotFoundError(f"Commit {commit_sha} not found", 404)
        return self.commits[commit_sha]

    async def create_blob(self, owner: str, repo: str, content_base64: str) -> BlobInfo:
        self._record("create_blob", owner, repo)
        blob_sha = self._new_id("blob")
        self.blobs[blob_sha] = base64.b64decode(content_base64)
        return BlobInfo(sha=blob_sha)

    async def create_tree(self, owner: str, repo: str, base_tree: str, entries: List[TreeEntry]) -> TreeInfo:
        self._record("create_tree", owner, repo)
        if base_tree not in self.trees:
            raise RemoteRejectedError(f"Unknown base tree {base_tree}", 422)

        self.tree_entries.append(list(entries))
        files = dict(self.trees[base_tree])
        for entry in entries:
            if entry.is_removal:
                files.pop(entry.path, None)
            elif entry.content is not None:
                files[entry.path] = entry.content.encode("utf-8")
            else:
                files[entry.path] = self.blobs[entry.sha]

        tree_sha = self._new_id("tree")
        self.trees[tree_sha] = files
        return TreeInfo(sha=tree_sha)

    async def create_commit(
        self,
        owner: str,
        repo: str,
        message: str,
        tree_sha: str,
        parents: List[str]
    ) -> CommitInfo:
        self._record("create_commit", owner, repo)
        self.messages.append(message)
        commit_sha = self._new_id("commit")
        commit = CommitInfo(sha=commit_sha, tree_sha=tree_sha, parents=list(parents))
        self.commits[commit_sha] = commit
        return commit

    async def update_ref(self, owner: str, repo: str, ref: str, sha: str) -> RefInfo:
        self._record("update_ref", owner, repo)
        self.heads[ref[len("heads/"):]] = sha
        return RefInfo(ref=f"refs/{ref}", sha=sha)

    async def download_archive(self, owner: str, repo: str, branch: str) -> bytes:
        self._record("download_archive", owner, repo)
        head = self._head(branch)
        wrapper = f"{owner}-{repo}-{head[:7]}/"

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as bundle:
            bundle.writestr(wrapper, "")
            directories = set()
            for path, data in sorted(self.files(branch).items()):
                parts = path.split("/")[:-1]
                for depth in range(1, len(parts) + 1):
                    directory = "/".join(parts[:depth]) + "/"
                    if directory not in directories:
                        directories.add(directory)
                        bundle.writestr(wrapper + directory, "")
                bundle.writestr(wrapper + path, data)
            for name, data in self.extra_archive_entries.items():
                bundle.writestr(wrapper + name, data)
        return buffer.getvalue()


def write_files(root, files: Dict[str, bytes]) -> None:
    """Create ``files`` (relative path -> bytes) under ``root``."""
    for path, data in files.items():
        target = root.joinpath(*path.split("/"))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


def stub_session(status: int, body=None, json_error: Optional[Exception] = None) -> Mock:
    """An aiohttp-like session whose every request answers with one response."""
    response = Mock(status=status, headers={})
    response.json = AsyncMock(return_value=body, side_effect=json_error)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = Mock(closed=False)
    session.request = Mock(return_value=context)
    session.close = AsyncMock()
    return session


def read_tree(root, state_dir_name: str = ".git") -> Dict[str, bytes]:
    """Every regular file under ``root`` outside the metadata directory."""
    found = {}
    for path in root.rglob("*"):
        relative = path.relative_to(root)
        if relative.parts[0] == state_dir_name or not path.is_file():
            continue
        found[relative.as_posix()] = path.read_bytes()
    return found


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the developer environment."""
    return AppSettings(
        environment="development",
        github=GitHubSettings(token="test-token", documents_root=str(tmp_path / "Documents")),
        scheduling=SchedulingSettings(tick_seconds=60, gap_correction_enabled=True),
    )


@pytest.fixture
def remote():
    return FakeRemoteClient(files={
        "README.md": b"# Notes\n",
        "src/a.txt": b"alpha\n",
    })


@pytest.fixture
def state_store():
    return StateStore(".git")


@pytest.fixture
def local_root(tmp_path):
    root = tmp_path / "checkout"
    root.mkdir()
    return root


@pytest.fixture
def db_service():
    """Database service on a private in-memory SQLite database."""
    db_manager = DatabaseManager("sqlite:///:memory:")
    db_manager.create_tables()
    yield DatabaseService(db_manager)
    db_manager.engine.dispose()
