"""Tests for the GitHub REST client with the HTTP layer mocked."""

import json
from unittest.mock import AsyncMock, Mock, patch

import pytest

from reposync.api_clients import GitHubClient, TreeEntry
from reposync.config.settings import GitHubSettings
from reposync.exceptions import (
    AuthenticationError,
    InvalidResponseError,
    NetworkFailureError,
    NotFoundError,
    RateLimitError,
    RemoteRejectedError,
)

from conftest import stub_session


def make_response(status, body=None, headers=None):
    response = Mock()
    response.status = status
    response.headers = headers or {}
    response.json = AsyncMock(return_value=body or {})
    return response


class TestGitHubClient:
    """Test request shaping, response parsing and error mapping."""

    def setup_method(self):
        self.settings = GitHubSettings(
            token="",
            api_url="https://api.github.com/",
            codeload_url="https://codeload.github.com",
            api_version="2022-11-28",
            user_agent="reposync-tests"
        )
        self.client = GitHubClient(token="secret-token", settings=self.settings)

    def test_token_required(self):
        with pytest.raises(AuthenticationError):
            GitHubClient(token="", settings=self.settings)

    def test_headers(self):
        headers = self.client.headers

        assert headers["Authorization"] == "Bearer secret-token"
        assert headers["Accept"] == "application/vnd.github+json"
        assert headers["X-GitHub-Api-Version"] == "2022-11-28"
        assert headers["User-Agent"] == "reposync-tests"

    @pytest.mark.asyncio
    async def test_get_branch(self):
        payload = {"name": "main", "commit": {"sha": "c0ffee", "url": "ignored"}, "protected": False}
        with patch.object(self.client, "_request", AsyncMock(return_value=payload)) as request:
            branch = await self.client.get_branch("octo", "notes", "main")

        assert branch.commit_sha == "c0ffee"
        request.assert_awaited_once_with("GET", "/repos/octo/notes/branches/main")

    @pytest.mark.asyncio
    async def test_get_commit(self):
        payload = {"sha": "c1", "tree": {"sha": "t1"}, "parents": [{"sha": "c0"}]}
        with patch.object(self.client, "_request", AsyncMock(return_value=payload)):
            commit = await self.client.get_commit("octo", "notes", "c1")

        assert (commit.sha, commit.tree_sha, commit.parents) == ("c1", "t1", ["c0"])

    @pytest.mark.asyncio
    async def test_create_tree_payload(self):
        entries = [
            TreeEntry(path="README.md", content="# Notes\n"),
            TreeEntry(path="logo.png", sha="b1"),
            TreeEntry(path="old.txt"),
        ]
        with patch.object(self.client, "_request", AsyncMock(return_value={"sha": "t2"})) as request:
            tree = await self.client.create_tree("octo", "notes", "t1", entries)

        assert tree.sha == "t2"
        method, path, body = request.await_args[0]
        assert (method, path) == ("POST", "/repos/octo/notes/git/trees")
        assert body["base_tree"] == "t1"
        assert body["tree"] == [
            {"path": "README.md", "mode": "100644", "type": "blob", "content": "# Notes\n"},
            {"path": "logo.png", "mode": "100644", "type": "blob", "sha": "b1"},
            {"path": "old.txt", "mode": "100644", "type": "blob", "sha": None},
        ]

    @pytest.mark.asyncio
    async def test_create_blob_payload(self):
        with patch.object(self.client, "_request", AsyncMock(return_value={"sha": "b1"})) as request:
            blob = await self.client.create_blob("octo", "notes", "AAEC")

        assert blob.sha == "b1"
        assert request.await_args[0][2] == {"content": "AAEC", "encoding": "base64"}

    @pytest.mark.asyncio
    async def test_update_ref_is_not_forced(self):
        payload = {"ref": "refs/heads/main", "object": {"sha": "c2"}}
        with patch.object(self.client, "_request", AsyncMock(return_value=payload)) as request:
            ref = await self.client.update_ref("octo", "notes", "heads/main", "c2")

        assert ref.sha == "c2"
        assert request.await_args[0][:3] == ("PATCH", "/repos/octo/notes/git/refs/heads/main", {"sha": "c2", "force": False})

    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        with patch.object(self.client, "_request", AsyncMock(return_value={"message": "?"})):
            with pytest.raises(InvalidResponseError):
                await self.client.get_ref("octo", "notes", "heads/main")

    @pytest.mark.asyncio
    async def test_non_json_body_is_invalid_response(self):
        session = stub_session(200, json_error=json.JSONDecodeError("Expecting value", "<html>", 0))
        client = GitHubClient(token="secret-token", settings=self.settings, session=session)

        with pytest.raises(InvalidResponseError) as excinfo:
            await client.get_branch("octo", "notes", "main")

        assert excinfo.value.status == 200
        assert session.request.call_args[0] == ("GET", "https://api.github.com/repos/octo/notes/branches/main")

    @pytest.mark.asyncio
    async def test_list_branches_pages(self):
        first = [{"name": f"b{i}", "commit": {"sha": f"s{i}"}} for i in range(100)]
        second = [{"name": "last", "commit": {"sha": "s-last"}}]
        with patch.object(self.client, "_request", AsyncMock(side_effect=[first, second])) as request:
            branches = await self.client.list_branches("octo", "notes")

        assert len(branches) == 101
        assert request.await_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, headers, error", [
        (401, {}, AuthenticationError),
        (404, {}, NotFoundError),
        (429, {"Retry-After": "30"}, RateLimitError),
        (403, {"X-RateLimit-Remaining": "0"}, RateLimitError),
        (403, {}, RemoteRejectedError),
        (422, {}, RemoteRejectedError),
    ])
    async def test_status_mapping(self, status, headers, error):
        response = make_response(status, {"message": "nope"}, headers)

        with pytest.raises(error) as excinfo:
            await self.client._raise_for_status(response, "https://api.github.com/x")

        assert excinfo.value.status == status

    @pytest.mark.asyncio
    async def test_retry_after_parsed(self):
        response = make_response(429, {}, {"Retry-After": "30"})

        with pytest.raises(RateLimitError) as excinfo:
            await self.client._raise_for_status(response, "https://api.github.com/x")

        assert excinfo.value.retry_after == 30

    @pytest.mark.asyncio
    async def test_success_status_passes(self):
        await self.client._raise_for_status(make_response(200), "https://api.github.com/x")

    def test_archive_urls(self):
        assert self.client.archive_urls("octo", "notes", "feature/x") == [
            "https://api.github.com/repos/octo/notes/zipball/feature/x",
            "https://codeload.github.com/octo/notes/zip/refs/heads/feature/x",
        ]

    @pytest.mark.asyncio
    async def test_archive_falls_back_to_codeload(self):
        download = AsyncMock(side_effect=[NetworkFailureError("DNS failure"), b"PK\x03\x04"])
        with patch.object(self.client, "_download", download):
            data = await self.client.download_archive("octo", "notes", "main")

        assert data == b"PK\x03\x04"
        assert download.await_args_list[1][0][0].startswith("https://codeload.github.com/")

    @pytest.mark.asyncio
    async def test_archive_unreachable(self):
        download = AsyncMock(side_effect=NetworkFailureError("DNS failure"))
        with patch.object(self.client, "_download", download):
            with pytest.raises(NetworkFailureError) as excinfo:
                await self.client.download_archive("octo", "notes", "main")

        assert "DNS" in str(excinfo.value)
        assert download.await_count == 2

    @pytest.mark.asyncio
    async def test_archive_rejection_reported_over_network_error(self):
        download = AsyncMock(side_effect=[NotFoundError("missing", 404), NetworkFailureError("DNS failure")])
        with patch.object(self.client, "_download", download):
            with pytest.raises(NotFoundError):
                await self.client.download_archive("octo", "notes", "main")

    @pytest.mark.asyncio
    async def test_archive_auth_failure_is_immediate(self):
        download = AsyncMock(side_effect=AuthenticationError("Invalid or expired token", 401))
        with patch.object(self.client, "_download", download):
            with pytest.raises(AuthenticationError):
                await self.client.download_archive("octo", "notes", "main")

        assert download.await_count == 1

    @pytest.mark.asyncio
    async def test_close_without_session(self):
        await self.client.close()

        assert self.client.session is None
