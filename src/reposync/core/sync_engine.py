"""Core sync engine composing reference resolution, pull and push."""

import shutil
import time
from pathlib import Path
from typing import Optional

from .locator import RepositoryLocator, RepositoryReference
from .pull import ProgressCallback, PullEngine
from .push import PushEngine
from .results import SyncResult, StatusReport
from .scanner import ChangeDetector
from .state import StateStore
from ..api_clients.base import BaseRemoteClient
from ..config.settings import AppSettings, get_settings
from ..utils.logging import get_logger, log_async_execution_time


DEFAULT_PUSH_MESSAGE = "Mobile Push"
DEFAULT_SYNC_MESSAGE = "Mobile Sync"
FORCE_PUSH_MESSAGE = "Force Push from App"

FORCE_MODE_REMOTE = "remote"
FORCE_MODE_LOCAL = "local"


def _silent(message: str) -> None:
    pass


class SyncEngine:
    """Entry point for every synchronization operation on one remote.

    All operations accept a user-supplied repository reference and resolve
    it first. Failures propagate to the caller as ``ReposyncError``
    subclasses; the engine never reports success for a revision it did not
    fully materialize.

    The engine does not serialize operations. Callers running more than one
    operation against the same local path and branch must serialize them
    (``RepositoryConnector`` does).
    """

    def __init__(
        self,
        client: BaseRemoteClient,
        settings: Optional[AppSettings] = None,
        state_store: Optional[StateStore] = None
    ):
        """Initialize sync engine.

        Args:
            client: Remote repository client
            settings: Application settings
            state_store: Manifest store (defaults to one using ``settings``)
        """
        self.client = client
        self.settings = settings or get_settings()
        self.state_store = state_store or StateStore(self.settings.state_dir_name)
        self.detector = ChangeDetector(self.state_store)
        self.locator = RepositoryLocator(client, self.settings.github)
        self.pull_engine = PullEngine(client, self.state_store)
        self.push_engine = PushEngine(client, self.state_store, self.detector)
        self.logger = get_logger(self.__class__.__name__)

    async def resolve(
        self,
        reference: str,
        local_path: Optional[str] = None,
        branch: Optional[str] = None
    ) -> RepositoryReference:
        return await self.locator.resolve(reference, local_path, branch)

    @log_async_execution_time
    async def pull(
        self,
        reference: str,
        local_path: Optional[str] = None,
        branch: Optional[str] = None,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        """Make the local tree match the remote branch snapshot."""
        start_time = time.monotonic()
        ref = await self.resolve(reference, local_path, branch)
        self.logger.info("Starting pull", repository=ref.full_name, branch=ref.branch)

        result = await self.pull_engine.pull(ref, progress)
        result.duration = time.monotonic() - start_time
        return result

    @log_async_execution_time
    async def push(
        self,
        reference: str,
        local_path: Optional[str] = None,
        message: str = DEFAULT_PUSH_MESSAGE,
        branch: Optional[str] = None
    ) -> SyncResult:
        """Commit local changes to the remote branch."""
        start_time = time.monotonic()
        ref = await self.resolve(reference, local_path, branch)
        self.logger.info("Starting push", repository=ref.full_name, branch=ref.branch)

        result = await self.push_engine.push(ref, message)
        result.duration = time.monotonic() - start_time
        return result

    @log_async_execution_time
    async def sync(
        self,
        reference: str,
        local_path: Optional[str] = None,
        message: str = DEFAULT_SYNC_MESSAGE,
        branch: Optional[str] = None,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        """Pull, then push whatever local changes remain.

        A failed pull aborts before anything is pushed.
        """
        notify = progress or _silent
        start_time = time.monotonic()
        ref = await self.resolve(reference, local_path, branch)
        self.logger.info("Starting sync", repository=ref.full_name, branch=ref.branch)

        notify("Syncing from remote...")
        pulled = await self.pull_engine.pull(ref, progress)

        notify("Syncing to remote...")
        pushed = await self.push_engine.push(ref, message)

        notify("Sync complete!")
        return self._combine("sync", ref, start_time, pulled, pushed)

    async def smart_sync(
        self,
        reference: str,
        local_path: Optional[str] = None,
        message: str = DEFAULT_SYNC_MESSAGE,
        branch: Optional[str] = None,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        """One-step sync for a bare ``owner/repo`` style reference."""
        return await self.sync(reference, local_path, message, branch, progress)

    @log_async_execution_time
    async def force_sync(
        self,
        reference: str,
        local_path: Optional[str] = None,
        branch: Optional[str] = None,
        mode: str = FORCE_MODE_REMOTE,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        """Destructively align one side with the other.

        ``remote`` wipes everything under the local path (sync metadata
        included) and pulls a fresh snapshot. ``local`` pushes the detected
        local changes with a fixed commit message.
        """
        if mode not in (FORCE_MODE_REMOTE, FORCE_MODE_LOCAL):
            raise ValueError(f"Unknown force sync mode: {mode}")

        notify = progress or _silent
        start_time = time.monotonic()
        ref = await self.resolve(reference, local_path, branch)
        self.logger.warning("Starting force sync", repository=ref.full_name, branch=ref.branch, mode=mode)

        if mode == FORCE_MODE_REMOTE:
            notify("Cleaning local folder...")
            self._wipe(Path(ref.local_path))

            notify("Fresh pulling from remote...")
            step = await self.pull_engine.pull(ref, progress)
        else:
            notify("Force pushing local state to remote...")
            step = await self.push_engine.push(ref, FORCE_PUSH_MESSAGE)

        return self._combine(f"force_{mode}", ref, start_time, step)

    async def force_remote(
        self,
        reference: str,
        local_path: Optional[str] = None,
        branch: Optional[str] = None,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        """Make the local tree an exact mirror of the remote branch."""
        return await self.force_sync(reference, local_path, branch, FORCE_MODE_REMOTE, progress)

    async def force_local(
        self,
        reference: str,
        local_path: Optional[str] = None,
        branch: Optional[str] = None,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        """Make the remote branch reflect the local tree."""
        return await self.force_sync(reference, local_path, branch, FORCE_MODE_LOCAL, progress)

    @log_async_execution_time
    async def fetch_status(
        self,
        reference: str,
        local_path: Optional[str] = None,
        branch: Optional[str] = None
    ) -> StatusReport:
        """Compare the remote branch with the manifest and the local tree.

        Read-only: nothing is written locally or remotely.
        """
        ref = await self.resolve(reference, local_path, branch)

        remote = await self.client.get_ref(ref.owner, ref.repo, f"heads/{ref.branch}")
        manifest = self.state_store.load(ref.local_path, ref.branch)
        changes = self.detector.detect(ref.local_path, ref.branch)

        status = StatusReport(
            remote_revision=remote.sha,
            local_revision=manifest.revision,
            is_ahead=remote.sha != manifest.revision,
            is_dirty=len(changes) > 0
        )

        self.logger.info(
            "Status fetched",
            repository=ref.full_name,
            branch=ref.branch,
            is_ahead=status.is_ahead,
            is_dirty=status.is_dirty,
            recommended_action=status.recommended_action.value
        )
        return status

    def _wipe(self, root: Path) -> None:
        """Delete every entry under ``root``, ignoring failures per entry."""
        try:
            entries = list(root.iterdir())
        except OSError as e:
            self.logger.debug("Nothing to clean", local_path=str(root), error=str(e))
            return

        for entry in entries:
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            except OSError as e:
                self.logger.warning("Failed to remove entry", path=str(entry), error=str(e))

    @staticmethod
    def _combine(operation: str, ref: RepositoryReference, start_time: float, *steps: SyncResult) -> SyncResult:
        result = SyncResult(
            operation=operation,
            repository=ref.full_name,
            branch=ref.branch,
            local_path=ref.local_path,
            success=all(step.success for step in steps),
            revision=steps[-1].revision,
            files_written=sum(step.files_written for step in steps),
            files_pruned=sum(step.files_pruned for step in steps),
            files_pushed=sum(step.files_pushed for step in steps),
            files_deleted_remote=sum(step.files_deleted_remote for step in steps),
            steps=list(steps)
        )
        result.duration = time.monotonic() - start_time
        return result
