"""Tests for the service health and status endpoints."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock, patch

import pytest

from reposync.database import RepositoryCreate
from reposync.exceptions import AuthenticationError, NetworkFailureError
from reposync.main import ReposyncApp


class TestReposyncApp:
    """Test endpoint payloads without starting the service."""

    @pytest.fixture(autouse=True)
    def _app(self, settings, db_service):
        self.app = ReposyncApp()
        self.app.settings = settings
        self.app.db_service = db_service

    @pytest.mark.asyncio
    async def test_health_when_stopped(self):
        response = await self.app._health_handler(None)

        assert response.status == 503
        assert json.loads(response.text)["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_health_when_running(self):
        self.app.running = True
        self.app.started_at = datetime.now(timezone.utc)

        response = await self.app._health_handler(None)

        body = json.loads(response.text)
        assert response.status == 200
        assert body["status"] == "healthy"
        assert body["version"] == self.app.settings.version

    @pytest.mark.asyncio
    async def test_status_lists_repositories(self):
        self.app.db_service.create_repository(
            RepositoryCreate(owner="octo", repo="notes", local_path="/tmp/notes", branch="main")
        )
        self.app.scheduler_manager = Mock()
        self.app.scheduler_manager.get_scheduler_status.return_value = {"is_running": True}

        response = await self.app._status_handler(None)

        body = json.loads(response.text)
        assert body["application"]["name"] == self.app.settings.name
        assert body["scheduler"] == {"is_running": True}
        assert [r["full_name"] for r in body["repositories"]] == ["octo/notes"]

    @pytest.mark.asyncio
    async def test_startup_token_check(self):
        with patch("reposync.main.login", AsyncMock()) as login:
            await self.app._validate_token("good-token")

        login.assert_awaited_once_with("good-token", self.app.settings.github)

    @pytest.mark.asyncio
    async def test_rejected_token_stops_startup(self):
        with patch("reposync.main.login", AsyncMock(side_effect=AuthenticationError("Bad credentials", 401))):
            with pytest.raises(AuthenticationError):
                await self.app._validate_token("expired-token")

    @pytest.mark.asyncio
    async def test_unreachable_remote_does_not_stop_startup(self):
        with patch("reposync.main.login", AsyncMock(side_effect=NetworkFailureError("offline"))):
            await self.app._validate_token("good-token")
