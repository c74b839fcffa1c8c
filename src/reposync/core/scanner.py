"""Hash-based local change detection."""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from .hashing import compute_hash
from .state import StateStore
from ..utils.logging import get_logger


logger = get_logger("core.scanner")


class ChangeStatus(str, Enum):
    """Classification of a local file relative to the manifest."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNMODIFIED = "unmodified"


@dataclass(frozen=True)
class FileChange:
    """One classified change."""

    path: str
    """Repository-relative path with forward slashes"""

    status: ChangeStatus


class ChangeDetector:
    """Diffs the local tree against the stored manifest.

    Examples:
        >>> detector = ChangeDetector(StateStore())
        >>> for change in detector.detect("/sync/repo", "main"):
        ...     print(change.status.value, change.path)
    """

    def __init__(self, state_store: Optional[StateStore] = None):
        self.state_store = state_store or StateStore()

    def scan(self, local_path: Union[str, Path]) -> Dict[str, str]:
        """Hash every regular file under ``local_path``.

        The reserved metadata directory is skipped. Subtrees that cannot be
        listed and files that cannot be read are skipped as well; the scan
        always returns whatever it could collect.

        Returns:
            Mapping of relative path to digest
        """
        root = Path(local_path)
        current: Dict[str, str] = {}
        self._scan_dir(root, root, current)
        return current

    def _scan_dir(self, directory: Path, root: Path, current: Dict[str, str]) -> None:
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            logger.warning("Skipping unreadable directory", directory=str(directory), error=str(e))
            return

        for entry in entries:
            if directory == root and entry.name == self.state_store.state_dir_name:
                continue

            try:
                if entry.is_dir(follow_symlinks=False):
                    self._scan_dir(Path(entry.path), root, current)
                elif entry.is_file():
                    relative_path = Path(entry.path).relative_to(root).as_posix()
                    with open(entry.path, "rb") as f:
                        current[relative_path] = compute_hash(f.read())
            except OSError as e:
                logger.warning("Skipping unreadable entry", path=entry.path, error=str(e))

    def detect(self, local_path: Union[str, Path], branch: str) -> List[FileChange]:
        """Classify local files as added, modified or deleted.

        Unmodified files are not reported.
        """
        manifest = self.state_store.load(local_path, branch)
        tracked = manifest.tracked_files
        current = self.scan(local_path)
        changes: List[FileChange] = []

        for path, digest in current.items():
            if path not in tracked:
                changes.append(FileChange(path, ChangeStatus.ADDED))
            elif tracked[path] != digest:
                changes.append(FileChange(path, ChangeStatus.MODIFIED))

        for path in tracked:
            if path not in current:
                changes.append(FileChange(path, ChangeStatus.DELETED))

        logger.debug(
            "Change detection finished",
            local_path=str(local_path),
            branch=branch,
            scanned=len(current),
            changes=len(changes)
        )
        return changes
