"""Core synchronization engine."""

from .hashing import compute_hash
from .state import StateStore, SyncManifest
from .scanner import ChangeDetector, ChangeStatus, FileChange
from .locator import RepositoryLocator, RepositoryReference, parse_reference
from .results import RecommendedAction, StatusReport, SyncResult, SyncStats
from .pull import PullEngine
from .push import PushEngine
from .sync_engine import SyncEngine
from .connector import RepositoryConnector

__all__ = [
    "compute_hash",
    "StateStore",
    "SyncManifest",
    "ChangeDetector",
    "ChangeStatus",
    "FileChange",
    "RepositoryLocator",
    "RepositoryReference",
    "parse_reference",
    "RecommendedAction",
    "StatusReport",
    "SyncResult",
    "SyncStats",
    "PullEngine",
    "PushEngine",
    "SyncEngine",
    "RepositoryConnector"
]
