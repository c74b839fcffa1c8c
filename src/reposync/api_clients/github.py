"""GitHub REST API client implementation."""

import asyncio
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiohttp

from .base import BaseRemoteClient
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
from ..config.settings import GitHubSettings, get_settings
from ..exceptions import (
    AuthenticationError,
    InvalidResponseError,
    NetworkFailureError,
    NotFoundError,
    RateLimitError,
    RemoteRejectedError,
)


class GitHubClient(BaseRemoteClient):
    """Async GitHub client covering the git data API and zipball snapshots."""

    def __init__(
        self,
        token: str,
        settings: Optional[GitHubSettings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs
    ):
        """Initialize GitHub client.

        Args:
            token: Bearer credential sent with every request
            settings: GitHub settings (defaults to application settings)
            session: Optional pre-built aiohttp session (not closed by us)
            **kwargs: Additional configuration parameters
        """
        super().__init__(**kwargs)

        if not token:
            raise AuthenticationError("A GitHub token is required")

        self.settings = settings or get_settings().github
        self.token = token
        self.api_url = self.settings.api_url.rstrip('/')
        self.codeload_url = self.settings.codeload_url.rstrip('/')
        self.session = session
        self._owns_session = session is None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.settings.api_version,
            "User-Agent": self.settings.user_agent,
        }

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
            )
            self._owns_session = True
        return self.session

    async def close(self) -> None:
        """Close the underlying session if this client created it."""
        if self.session and self._owns_session and not self.session.closed:
            await self.session.close()
        self.session = None

    async def _raise_for_status(self, response: aiohttp.ClientResponse, url: str) -> None:
        if response.status < 400:
            return

        detail = ""
        try:
            body = await response.json(content_type=None)
            if isinstance(body, dict) and body.get("message"):
                detail = f": {body['message']}"
        except (ValueError, aiohttp.ContentTypeError):
            detail = ""

        status = response.status
        message = f"GitHub API error {status} for {url}{detail}"

        if status == 401:
            raise AuthenticationError(f"Invalid or expired token{detail}", status)
        if status == 404:
            raise NotFoundError(message, status)
        if status == 429 or (status == 403 and response.headers.get("X-RateLimit-Remaining") == "0"):
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limit exceeded{detail}",
                status,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )
        raise RemoteRejectedError(message, status)

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Make an authenticated JSON API request."""
        url = path if path.startswith("http") else f"{self.api_url}{path}"
        session = self._get_session()

        self.logger.debug("GitHub request", method=method, url=url)

        try:
            async with session.request(method, url, json=payload, headers=self.headers) as response:
                await self._raise_for_status(response, url)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise InvalidResponseError(f"Response from {url} is not JSON: {e}", response.status) from e
        except aiohttp.ClientError as e:
            raise NetworkFailureError(f"Network error contacting {url}: {e}") from e
        except asyncio.TimeoutError as e:
            raise NetworkFailureError(f"Timed out contacting {url}") from e

    async def _download(self, url: str) -> bytes:
        session = self._get_session()
        try:
            async with session.get(url, headers=self.headers) as response:
                await self._raise_for_status(response, url)
                return await response.read()
        except aiohttp.ClientError as e:
            raise NetworkFailureError(f"Network error downloading {url}: {e}") from e
        except asyncio.TimeoutError as e:
            raise NetworkFailureError(f"Timed out downloading {url}") from e

    @staticmethod
    def _repo_path(owner: str, repo: str) -> str:
        return f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    async def get_authenticated_user(self) -> AuthenticatedUser:
        data = await self._request("GET", "/user")
        return AuthenticatedUser.from_payload(data)

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        data = await self._request("GET", self._repo_path(owner, repo))
        return RepositoryInfo.from_payload(data)

    async def get_branch(self, owner: str, repo: str, branch: str) -> BranchInfo:
        data = await self._request(
            "GET", f"{self._repo_path(owner, repo)}/branches/{quote(branch, safe='/')}"
        )
        return BranchInfo.from_payload(data)

    async def list_branches(self, owner: str, repo: str) -> List[BranchInfo]:
        branches: List[BranchInfo] = []
        page = 1
        while True:
            data = await self._request(
                "GET", f"{self._repo_path(owner, repo)}/branches?per_page=100&page={page}"
            )
            if not isinstance(data, list) or not data:
                break
            branches.extend(BranchInfo.from_payload(item) for item in data)
            if len(data) < 100:
                break
            page += 1
        return branches

    async def get_ref(self, owner: str, repo: str, ref: str) -> RefInfo:
        data = await self._request("GET", f"{self._repo_path(owner, repo)}/git/ref/{ref}")
        return RefInfo.from_payload(data)

    async def get_commit(self, owner: str, repo: str, commit_sha: str) -> CommitInfo:
        data = await self._request("GET", f"{self._repo_path(owner, repo)}/git/commits/{commit_sha}")
        return CommitInfo.from_payload(data)

    async def create_blob(self, owner: str, repo: str, content_base64: str) -> BlobInfo:
        data = await self._request(
            "POST",
            f"{self._repo_path(owner, repo)}/git/blobs",
            {"content": content_base64, "encoding": "base64"}
        )
        return BlobInfo.from_payload(data)

    async def create_tree(
        self,
        owner: str,
        repo: str,
        base_tree: str,
        entries: List[TreeEntry]
    ) -> TreeInfo:
        data = await self._request(
            "POST",
            f"{self._repo_path(owner, repo)}/git/trees",
            {"base_tree": base_tree, "tree": [entry.to_payload() for entry in entries]}
        )
        return TreeInfo.from_payload(data)

    async def create_commit(
        self,
        owner: str,
        repo: str,
        message: str,
        tree_sha: str,
        parents: List[str]
    ) -> CommitInfo:
        data = await self._request(
            "POST",
            f"{self._repo_path(owner, repo)}/git/commits",
            {"message": message, "tree": tree_sha, "parents": parents}
        )
        return CommitInfo.from_payload(data)

    async def update_ref(self, owner: str, repo: str, ref: str, sha: str) -> RefInfo:
        data = await self._request(
            "PATCH",
            f"{self._repo_path(owner, repo)}/git/refs/{ref}",
            {"sha": sha, "force": False}
        )
        return RefInfo.from_payload(data)

    def archive_urls(self, owner: str, repo: str, branch: str) -> List[str]:
        """Snapshot URLs in the order they are tried."""
        return [
            f"{self.api_url}{self._repo_path(owner, repo)}/zipball/{quote(branch, safe='/')}",
            f"{self.codeload_url}/{quote(owner, safe='')}/{quote(repo, safe='')}"
            f"/zip/refs/heads/{quote(branch, safe='/')}",
        ]

    async def download_archive(self, owner: str, repo: str, branch: str) -> bytes:
        """Download a zip snapshot, falling back to the codeload host.

        Raises:
            NetworkFailureError: If no URL could be reached
            RemoteRejectedError: If every URL answered with an error status
        """
        urls = self.archive_urls(owner, repo, branch)
        network_errors: List[str] = []
        last_rejection: Optional[RemoteRejectedError] = None

        for url in urls:
            try:
                data = await self._download(url)
                self.logger.info("Snapshot downloaded", url=url, size=len(data))
                return data
            except NetworkFailureError as e:
                network_errors.append(str(e))
                self.logger.warning("Snapshot download failed, trying next URL", url=url, error=str(e))
            except AuthenticationError:
                raise
            except RemoteRejectedError as e:
                last_rejection = e
                self.logger.warning("Snapshot download rejected, trying next URL", url=url, error=str(e))

        if last_rejection is not None:
            raise last_rejection

        raise NetworkFailureError(
            "Could not download snapshot: host unreachable or DNS lookup failed for "
            + ", ".join(urls)
            + f" ({'; '.join(network_errors)})"
        )
