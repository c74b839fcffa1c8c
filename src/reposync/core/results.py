"""Result types returned by engine operations."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RecommendedAction(str, Enum):
    """What a caller should run next, derived from a status check."""

    NONE = "none"
    PULL = "pull"
    PUSH = "push"
    SYNC = "sync"


@dataclass
class SyncResult:
    """Result of a pull, push, sync or force-sync operation."""

    operation: str
    repository: str
    branch: str
    local_path: str
    success: bool = False
    revision: Optional[str] = None
    files_written: int = 0
    files_pruned: int = 0
    files_pushed: int = 0
    files_deleted_remote: int = 0
    error_message: Optional[str] = None
    duration: Optional[float] = None
    steps: List["SyncResult"] = field(default_factory=list)

    @property
    def files_changed(self) -> int:
        """Total local and remote file changes made by the operation."""
        return self.files_written + self.files_pruned + self.files_pushed + self.files_deleted_remote

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "repository": self.repository,
            "branch": self.branch,
            "local_path": self.local_path,
            "success": self.success,
            "revision": self.revision,
            "files_written": self.files_written,
            "files_pruned": self.files_pruned,
            "files_pushed": self.files_pushed,
            "files_deleted_remote": self.files_deleted_remote,
            "error_message": self.error_message,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class StatusReport:
    """Read-only comparison of the remote branch and the local tree."""

    remote_revision: str
    local_revision: str
    is_ahead: bool
    """Remote revision differs from the one last materialized locally"""

    is_dirty: bool
    """Local tree has added, modified or deleted files"""

    @property
    def recommended_action(self) -> RecommendedAction:
        if self.is_ahead and self.is_dirty:
            return RecommendedAction.SYNC
        if self.is_ahead:
            return RecommendedAction.PULL
        if self.is_dirty:
            return RecommendedAction.PUSH
        return RecommendedAction.NONE


@dataclass
class SyncStats:
    """Statistics for a batch of managed-repository operations."""

    total_repositories: int
    successful_syncs: int
    failed_syncs: int
    total_files_changed: int
    total_duration: float
    results: List[SyncResult] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate success rate as percentage."""
        if self.total_repositories == 0:
            return 0.0
        return (self.successful_syncs / self.total_repositories) * 100
