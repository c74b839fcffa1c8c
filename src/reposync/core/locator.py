"""Repository reference resolution."""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from ..api_clients.base import BaseRemoteClient
from ..config.settings import GitHubSettings, get_settings
from ..exceptions import InvalidReferenceError, ReposyncError
from ..utils.logging import get_logger


_TREE_SEGMENT = re.compile(r"/tree/([^/?#]+)")
_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://[^/]*/?")
# ``user@host:`` (scp style) or a dotted host name; owners never contain dots
_HOST = re.compile(r"^(?:[^@/:]+@[^/:]+:|(?:[^@/:]+@)?[^/:@.]*\.[^/:@]*[:/])")


@dataclass(frozen=True)
class RepositoryReference:
    """Fully resolved repository coordinates for one operation."""

    owner: str
    repo: str
    branch: str
    local_path: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


def parse_reference(reference: str) -> Tuple[Optional[str], str, Optional[str]]:
    """Split a reference into ``(owner, repo, branch)`` without any remote calls.

    Accepts ``owner/repo``, ``owner/repo/tree/branch``, a bare repo name and
    full ``https://`` or ``git@`` URLs on any host. Only the first path
    segment after ``/tree/`` is taken as the branch, so browse URLs such as
    ``owner/repo/tree/main/docs`` name branch ``main``. ``owner`` and
    ``branch`` are ``None`` when the reference does not name them.

    Raises:
        InvalidReferenceError: If no repository name can be extracted
    """
    text = (reference or "").strip()
    branch: Optional[str] = None

    match = _TREE_SEGMENT.search(text)
    if match:
        branch = match.group(1)
        text = text[:match.start()] + text[match.end():]

    if _SCHEME.match(text):
        text = _SCHEME.sub("", text, count=1)
    else:
        text = _HOST.sub("", text, count=1)
    text = text.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    if text.endswith(".git"):
        text = text[:-4]
    text = text.strip("/")

    parts = [part for part in text.split("/") if part]
    if not parts:
        raise InvalidReferenceError(f"Invalid repository reference: {reference!r}")
    if len(parts) == 1:
        return None, parts[0], branch
    return parts[0], parts[1], branch


class RepositoryLocator:
    """Turns user-supplied references into ``RepositoryReference`` values.

    Each optional step degrades gracefully: the owner comes from the
    authenticated identity when omitted, the branch from the repository's
    default branch (falling back to ``main``), and the local path from the
    documents root.
    """

    def __init__(self, client: BaseRemoteClient, settings: Optional[GitHubSettings] = None):
        self.client = client
        self.settings = settings or get_settings().github
        self.logger = get_logger(self.__class__.__name__)

    def default_local_path(self, repo: str) -> str:
        root = self.settings.documents_root.rstrip("/")
        return f"{root}/github/{repo}"

    async def resolve(
        self,
        reference: str,
        local_path_hint: Optional[str] = None,
        branch_override: Optional[str] = None
    ) -> RepositoryReference:
        """Resolve ``reference`` into owner, repo, branch and local path.

        Raises:
            InvalidReferenceError: If the reference names no repository
            RemoteRejectedError: If the owner lookup is rejected
        """
        owner, repo, branch = parse_reference(reference)

        if owner is None:
            user = await self.client.get_authenticated_user()
            owner = user.login

        branch = branch_override or branch
        if not branch:
            branch = await self._default_branch(owner, repo)

        resolved = RepositoryReference(
            owner=owner,
            repo=repo,
            branch=branch,
            local_path=local_path_hint or self.default_local_path(repo)
        )

        self.logger.debug(
            "Reference resolved",
            reference=reference,
            repository=resolved.full_name,
            branch=resolved.branch,
            local_path=resolved.local_path
        )
        return resolved

    async def _default_branch(self, owner: str, repo: str) -> str:
        try:
            info = await self.client.get_repository(owner, repo)
            if info.default_branch:
                return info.default_branch
        except ReposyncError as e:
            self.logger.warning(
                "Default branch lookup failed, using fallback",
                repository=f"{owner}/{repo}",
                fallback=self.settings.default_branch,
                error=str(e)
            )
        return self.settings.default_branch
