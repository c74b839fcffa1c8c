"""Upload local changes as a single remote commit."""

import base64
from pathlib import Path
from typing import Dict, List, Optional

from .hashing import compute_hash
from .locator import RepositoryReference
from .results import SyncResult
from .scanner import ChangeDetector, ChangeStatus, FileChange
from .state import StateStore
from ..api_clients.base import BaseRemoteClient
from ..api_clients.models import TreeEntry
from ..exceptions import LocalIOError
from ..utils.logging import get_logger


class PushEngine:
    """Turns detected local changes into tree, commit and ref updates.

    Remote calls happen in a fixed order (tree, commit, ref) so a failure
    before the ref update leaves the remote branch untouched. The manifest
    is updated only after the ref has moved.
    """

    def __init__(self, client: BaseRemoteClient, state_store: StateStore, detector: ChangeDetector):
        self.client = client
        self.state_store = state_store
        self.detector = detector
        self.logger = get_logger(self.__class__.__name__)

    async def push(self, ref: RepositoryReference, message: str) -> SyncResult:
        """Commit local changes under ``ref.local_path`` to ``ref.branch``.

        Returns without contacting the remote when nothing changed.

        Raises:
            RemoteRejectedError: If any remote call is rejected
            LocalIOError: If a changed file cannot be read
        """
        result = SyncResult(
            operation="push",
            repository=ref.full_name,
            branch=ref.branch,
            local_path=ref.local_path
        )

        changes = self.detector.detect(ref.local_path, ref.branch)
        if not changes:
            result.revision = self.state_store.load(ref.local_path, ref.branch).revision or None
            result.success = True
            self.logger.info("Nothing to push", repository=ref.full_name, branch=ref.branch)
            return result

        branch_ref = f"heads/{ref.branch}"
        head = await self.client.get_ref(ref.owner, ref.repo, branch_ref)
        parent = await self.client.get_commit(ref.owner, ref.repo, head.sha)

        contents = self._read_changed(Path(ref.local_path), changes)
        entries = await self._build_entries(ref, changes, contents)

        tree = await self.client.create_tree(ref.owner, ref.repo, parent.tree_sha, entries)
        commit = await self.client.create_commit(ref.owner, ref.repo, message, tree.sha, [head.sha])
        await self.client.update_ref(ref.owner, ref.repo, branch_ref, commit.sha)

        manifest = self.state_store.load(ref.local_path, ref.branch)
        for change in changes:
            if change.status == ChangeStatus.DELETED:
                manifest.tracked_files.pop(change.path, None)
            else:
                manifest.tracked_files[change.path] = compute_hash(contents[change.path])
        manifest.revision = commit.sha
        self.state_store.save(ref.local_path, ref.branch, manifest)

        result.revision = commit.sha
        result.files_deleted_remote = sum(1 for c in changes if c.status == ChangeStatus.DELETED)
        result.files_pushed = len(changes) - result.files_deleted_remote
        result.success = True

        self.logger.info(
            "Push completed",
            repository=ref.full_name,
            branch=ref.branch,
            revision=commit.sha,
            files_pushed=result.files_pushed,
            files_deleted=result.files_deleted_remote
        )
        return result

    @staticmethod
    def _read_changed(root: Path, changes: List[FileChange]) -> Dict[str, bytes]:
        contents: Dict[str, bytes] = {}
        for change in changes:
            if change.status == ChangeStatus.DELETED:
                continue
            target = root.joinpath(*change.path.split("/"))
            try:
                contents[change.path] = target.read_bytes()
            except OSError as e:
                raise LocalIOError(f"Failed to read {target}: {e}", str(target)) from e
        return contents

    async def _build_entries(
        self,
        ref: RepositoryReference,
        changes: List[FileChange],
        contents: Dict[str, bytes]
    ) -> List[TreeEntry]:
        entries: List[TreeEntry] = []
        for change in changes:
            if change.status == ChangeStatus.DELETED:
                entries.append(TreeEntry(path=change.path))
                continue

            data = contents[change.path]
            text: Optional[str]
            try:
                text = data.decode("utf-8")
            except UnicodeDecodeError:
                text = None

            if text is not None:
                entries.append(TreeEntry(path=change.path, content=text))
            else:
                blob = await self.client.create_blob(
                    ref.owner, ref.repo, base64.b64encode(data).decode("ascii")
                )
                entries.append(TreeEntry(path=change.path, sha=blob.sha))
        return entries
