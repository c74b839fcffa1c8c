"""Local sync manifest persistence.

The manifest records the remote revision last materialized locally and
the digest of every file that revision contained. It lives in a reserved
directory under the local root, laid out like a tiny git directory::

    <root>/.git/HEAD                        ref: refs/heads/<branch>
    <root>/.git/refs/heads/<branch>         revision id
    <root>/.git/manifests/<branch>.json     {relative path: digest}
"""

import json
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Union

from ..config.settings import get_settings
from ..exceptions import LocalIOError, ManifestCorruptError
from ..utils.logging import get_logger


logger = get_logger("core.state")


@dataclass
class SyncManifest:
    """Last-known remote revision and per-file digests for one path/branch pair."""

    revision: str = ""
    """Remote revision id last fully materialized locally ("" if never)"""

    tracked_files: Dict[str, str] = field(default_factory=dict)
    """Relative path (forward slashes) -> content digest"""

    @property
    def is_empty(self) -> bool:
        return not self.revision and not self.tracked_files

    def copy(self) -> "SyncManifest":
        return SyncManifest(revision=self.revision, tracked_files=dict(self.tracked_files))


class StateStore:
    """Loads and saves sync manifests under a reserved metadata directory."""

    def __init__(self, state_dir_name: Optional[str] = None):
        """Initialize state store.

        Args:
            state_dir_name: Name of the metadata directory inside each local
                root (defaults to the ``state_dir_name`` setting, ``.git``)
        """
        self.state_dir_name = state_dir_name or get_settings().state_dir_name

    def state_dir(self, local_path: Union[str, Path]) -> Path:
        return Path(local_path) / self.state_dir_name

    def _revision_file(self, local_path: Union[str, Path], branch: str) -> Path:
        return self.state_dir(local_path) / "refs" / "heads" / branch

    def _manifest_file(self, local_path: Union[str, Path], branch: str) -> Path:
        return self.state_dir(local_path) / "manifests" / f"{branch}.json"

    def load(self, local_path: Union[str, Path], branch: str) -> SyncManifest:
        """Load the manifest for a path/branch pair.

        Never raises: a missing, unreadable or corrupt manifest yields the
        empty manifest, which makes a first sync and a lost manifest behave
        the same way.
        """
        try:
            return self._read(local_path, branch)
        except FileNotFoundError:
            logger.debug("No manifest found", local_path=str(local_path), branch=branch)
        except (OSError, ManifestCorruptError) as e:
            logger.warning(
                "Manifest unreadable, treating as empty",
                local_path=str(local_path),
                branch=branch,
                error=str(e)
            )
        return SyncManifest()

    def _read(self, local_path: Union[str, Path], branch: str) -> SyncManifest:
        revision = self._revision_file(local_path, branch).read_text(encoding="utf-8").strip()
        raw = self._manifest_file(local_path, branch).read_text(encoding="utf-8")

        try:
            files = json.loads(raw)
        except ValueError as e:
            raise ManifestCorruptError(f"Invalid manifest JSON: {e}") from e

        if not isinstance(files, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in files.items()
        ):
            raise ManifestCorruptError("Manifest must map paths to digest strings")

        return SyncManifest(revision=revision, tracked_files=files)

    def save(self, local_path: Union[str, Path], branch: str, manifest: SyncManifest) -> None:
        """Persist ``manifest`` so that a later ``load`` returns it unchanged.

        The digest map is written before the revision marker, each through a
        temporary file and ``os.replace``, so a reader never sees a revision
        whose file map was only partly written.

        Raises:
            LocalIOError: If the metadata directory cannot be written
        """
        state_dir = self.state_dir(local_path)

        try:
            # A stray file (e.g. an old sync marker) may occupy the directory name
            if state_dir.exists() and not state_dir.is_dir():
                state_dir.unlink()

            self._atomic_write(
                self._manifest_file(local_path, branch),
                json.dumps(manifest.tracked_files, indent=2, sort_keys=True)
            )
            self._atomic_write(self._revision_file(local_path, branch), manifest.revision)
            self._atomic_write(state_dir / "HEAD", f"ref: refs/heads/{branch}")
        except OSError as e:
            raise LocalIOError(f"Failed to save manifest under {state_dir}: {e}", str(state_dir)) from e

        logger.debug(
            "Manifest saved",
            local_path=str(local_path),
            branch=branch,
            revision=manifest.revision,
            files=len(manifest.tracked_files)
        )

    def current_branch(self, local_path: Union[str, Path]) -> Optional[str]:
        """Return the branch named by ``HEAD``, if any."""
        try:
            head = (self.state_dir(local_path) / "HEAD").read_text(encoding="utf-8").strip()
        except OSError:
            return None
        prefix = "ref: refs/heads/"
        return head[len(prefix):] if head.startswith(prefix) else None

    def clear(self, local_path: Union[str, Path]) -> bool:
        """Remove all sync metadata under ``local_path``."""
        state_dir = self.state_dir(local_path)
        if not state_dir.exists():
            return False
        if state_dir.is_dir():
            shutil.rmtree(state_dir)
        else:
            state_dir.unlink()
        return True

    @staticmethod
    def _atomic_write(target: Path, text: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
