"""Service entry point: scheduler plus health/status endpoints."""

import asyncio
import signal
import sys
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web, web_runner

from .api_clients import GitHubClient
from .auth import TokenProvider, login
from .config.manager import ConfigManager
from .config.settings import get_settings
from .core import RepositoryConnector
from .database import DatabaseService, close_database, init_database
from .exceptions import NetworkFailureError, ReposyncError
from .scheduler import SchedulerManager
from .utils.logging import get_logger, setup_logging


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ReposyncApp:
    """Background service keeping managed repositories in sync."""

    def __init__(self):
        self.settings = get_settings()
        self.logger = get_logger("Reposync")
        self.running = False
        self.started_at: Optional[datetime] = None
        self._stop_requested = asyncio.Event()

        self.web_runner: Optional[web_runner.AppRunner] = None
        self.client: Optional[GitHubClient] = None
        self.db_service: Optional[DatabaseService] = None
        self.config_manager: Optional[ConfigManager] = None
        self.connector: Optional[RepositoryConnector] = None
        self.scheduler_manager: Optional[SchedulerManager] = None

    async def startup(self):
        self.logger.info("Starting Reposync", version=self.settings.version,
                         environment=self.settings.environment)

        if self.settings.web.enabled:
            await self._start_web_server()

        init_database(create_tables=True)
        self.db_service = DatabaseService()
        self._load_managed_repositories()

        token = TokenProvider(settings=self.settings.github).get_token()
        await self._validate_token(token)
        self.client = GitHubClient(token=token, settings=self.settings.github)
        self.connector = RepositoryConnector(self.client, self.db_service, settings=self.settings)

        self.scheduler_manager = SchedulerManager(self.connector, settings=self.settings)
        await self.scheduler_manager.start()

        self.running = True
        self.started_at = _now()
        self.logger.info("Reposync started", repositories=len(self.db_service.get_all_repositories()))

    def _load_managed_repositories(self):
        """Mirror the configuration file into the database; a bad file is not fatal."""
        self.config_manager = ConfigManager(database_service=self.db_service, settings=self.settings)
        try:
            stats = self.config_manager.sync_to_database()
        except ReposyncError as e:
            self.logger.warning("Configuration sync failed", error=str(e))
        else:
            self.logger.info("Managed repositories loaded", **stats)

    async def _validate_token(self, token: str):
        """Reject a bad credential at startup; an unreachable remote only warns."""
        try:
            await login(token, self.settings.github)
        except NetworkFailureError as e:
            self.logger.warning("Token not validated, remote unreachable", error=str(e))

    async def shutdown(self):
        self.logger.info("Shutting down Reposync")
        self.running = False

        if self.scheduler_manager:
            await self.scheduler_manager.stop()
        if self.web_runner:
            await self.web_runner.cleanup()
            self.web_runner = None
        if self.client:
            await self.client.close()
        close_database()

        self.logger.info("Reposync stopped")

    def request_stop(self):
        self.running = False
        self._stop_requested.set()

    async def run(self):
        """Start, then wait for :meth:`request_stop`."""
        try:
            await self.startup()
            await self._stop_requested.wait()
        finally:
            await self.shutdown()

    async def _start_web_server(self):
        app = web.Application()
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/status", self._status_handler)

        self.web_runner = web_runner.AppRunner(app)
        await self.web_runner.setup()
        await web_runner.TCPSite(self.web_runner, self.settings.web.host, self.settings.web.port).start()

        self.logger.info("Web server started", host=self.settings.web.host, port=self.settings.web.port)

    async def _health_handler(self, request):
        uptime = (_now() - self.started_at).total_seconds() if self.started_at else 0
        return web.json_response(
            {
                "status": "healthy" if self.running else "unhealthy",
                "timestamp": _now().isoformat(),
                "version": self.settings.version,
                "environment": self.settings.environment,
                "uptime_seconds": uptime,
            },
            status=200 if self.running else 503,
        )

    async def _status_handler(self, request):
        """Application state, scheduler state and every managed repository."""
        records = self.db_service.get_all_repositories(enabled_only=False) if self.db_service else []
        scheduler = self.scheduler_manager.get_scheduler_status() if self.scheduler_manager else None

        return web.json_response({
            "application": {
                "name": self.settings.name,
                "version": self.settings.version,
                "environment": self.settings.environment,
                "running": self.running,
                "timestamp": _now().isoformat(),
            },
            "scheduler": scheduler,
            "repositories": [record.model_dump(mode="json") for record in records],
        })


async def main():
    setup_logging()

    app = ReposyncApp()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, app.request_stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            signal.signal(signum, lambda *_: loop.call_soon_threadsafe(app.request_stop))

    await app.run()


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(0)
    except ReposyncError as e:
        print(f"reposync: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
