"""Snapshot download, extraction and pruning."""

import io
import zipfile
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterator, Optional, Tuple

from .hashing import compute_hash
from .locator import RepositoryReference
from .results import SyncResult
from .state import StateStore, SyncManifest
from ..api_clients.base import BaseRemoteClient
from ..exceptions import InvalidResponseError, LocalIOError
from ..utils.logging import get_logger


ProgressCallback = Callable[[str], None]


class PullEngine:
    """Makes the local tree match a remote branch snapshot.

    Every file in the snapshot is written locally, then files tracked by the
    previous manifest but missing from the snapshot are deleted. Untracked
    local files are left alone. The manifest is only replaced once every
    file has been written.
    """

    def __init__(self, client: BaseRemoteClient, state_store: StateStore):
        self.client = client
        self.state_store = state_store
        self.logger = get_logger(self.__class__.__name__)

    async def pull(
        self,
        ref: RepositoryReference,
        progress: Optional[ProgressCallback] = None
    ) -> SyncResult:
        """Pull ``ref.branch`` into ``ref.local_path``.

        Raises:
            RemoteRejectedError: If the branch lookup or download is rejected
            NetworkFailureError: If no snapshot URL could be reached
            InvalidResponseError: If the snapshot is not a readable zip
            LocalIOError: If a snapshot file cannot be written
        """
        notify = progress or (lambda message: None)
        result = SyncResult(
            operation="pull",
            repository=ref.full_name,
            branch=ref.branch,
            local_path=ref.local_path
        )

        previous_paths = set(self.state_store.load(ref.local_path, ref.branch).tracked_files)

        notify("Fetching revision...")
        branch_info = await self.client.get_branch(ref.owner, ref.repo, ref.branch)
        revision = branch_info.commit_sha

        notify("Downloading snapshot...")
        archive = await self.client.download_archive(ref.owner, ref.repo, ref.branch)

        notify("Extracting...")
        new_files = self._extract(archive, Path(ref.local_path), notify)
        result.files_written = len(new_files)

        notify("Pruning...")
        result.files_pruned = self._prune(Path(ref.local_path), previous_paths - set(new_files))

        self.state_store.save(
            ref.local_path,
            ref.branch,
            SyncManifest(revision=revision, tracked_files=new_files)
        )

        result.revision = revision
        result.success = True
        notify("Done!")

        self.logger.info(
            "Pull completed",
            repository=ref.full_name,
            branch=ref.branch,
            revision=revision,
            files_written=result.files_written,
            files_pruned=result.files_pruned
        )
        return result

    def _extract(self, archive: bytes, root: Path, notify: ProgressCallback) -> Dict[str, str]:
        try:
            bundle = zipfile.ZipFile(io.BytesIO(archive))
        except zipfile.BadZipFile as e:
            raise InvalidResponseError(f"Snapshot is not a valid zip archive: {e}") from e

        new_files: Dict[str, str] = {}
        with bundle:
            members = list(self._members(bundle))
            total = len(members)

            for completed, (relative_path, info) in enumerate(members, start=1):
                try:
                    data = bundle.read(info)
                except (zipfile.BadZipFile, OSError) as e:
                    raise InvalidResponseError(f"Cannot read {info.filename} from snapshot: {e}") from e

                target = root.joinpath(*relative_path.split("/"))
                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    target.write_bytes(data)
                except OSError as e:
                    raise LocalIOError(f"Failed to write {target}: {e}", str(target)) from e

                new_files[relative_path] = compute_hash(data)

                if completed % 10 == 0:
                    notify(f"Progress: {completed * 100 // total}%")

        return new_files

    def _members(self, bundle: zipfile.ZipFile) -> Iterator[Tuple[str, zipfile.ZipInfo]]:
        """Yield ``(relative path, entry)`` for every file in the archive.

        The single top-level wrapper folder is stripped. Entries that would
        escape the local root or land in the metadata directory are skipped.
        """
        for info in bundle.infolist():
            if info.is_dir():
                continue

            parts = PurePosixPath(info.filename).parts[1:]
            if not parts:
                continue

            if ".." in parts or parts[0] == self.state_store.state_dir_name:
                self.logger.warning("Skipping unsafe snapshot entry", entry=info.filename)
                continue

            yield "/".join(parts), info

    def _prune(self, root: Path, stale_paths) -> int:
        pruned = 0
        for relative_path in sorted(stale_paths):
            target = root.joinpath(*relative_path.split("/"))
            try:
                target.unlink()
                pruned += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                self.logger.warning("Failed to prune file", path=str(target), error=str(e))
        return pruned
