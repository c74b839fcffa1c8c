"""Tests for serialized operations and managed repositories."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from reposync.core import RepositoryConnector, SyncResult
from reposync.database import RepositoryCreate
from reposync.exceptions import NetworkFailureError

from conftest import FakeRemoteClient, read_tree, write_files


@pytest.mark.integration
class TestRepositoryConnector:
    """Test the connector against the in-memory remote and database."""

    @pytest.fixture(autouse=True)
    def _connector(self, settings, db_service, tmp_path):
        self.client = FakeRemoteClient(files={"README.md": b"# Notes\n", "src/a.txt": b"alpha\n"})
        self.db_service = db_service
        self.connector = RepositoryConnector(self.client, db_service, settings)
        self.root = tmp_path / "notes"
        self.path = str(self.root)

    def test_lock_per_path_and_branch(self):
        lock = self.connector.lock_for("/a", "main")

        assert self.connector.lock_for("/a", "main") is lock
        assert self.connector.lock_for("/a", "dev") is not lock
        assert self.connector.lock_for("/b", "main") is not lock
        assert not self.connector.is_busy("/a", "main")

    @pytest.mark.asyncio
    async def test_operations_on_same_tree_are_serialized(self):
        active = 0
        peak = 0

        async def slow_pull(*args, **kwargs):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return SyncResult(operation="pull", repository="octo/notes", branch="main", local_path=self.path)

        self.connector.engine.pull = slow_pull

        await asyncio.gather(*(self.connector.pull("octo/notes", self.path) for _ in range(3)))

        assert peak == 1

    @pytest.mark.asyncio
    async def test_different_trees_run_concurrently(self, tmp_path):
        active = 0
        peak = 0

        async def slow_pull(reference, local_path=None, branch=None, progress=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return SyncResult(operation="pull", repository=reference, branch=branch, local_path=local_path)

        self.connector.engine.pull = slow_pull

        await asyncio.gather(
            self.connector.pull("octo/notes", str(tmp_path / "one")),
            self.connector.pull("octo/notes", str(tmp_path / "two")),
        )

        assert peak == 2

    @pytest.mark.asyncio
    async def test_ad_hoc_pull_and_status(self):
        result = await self.connector.pull("octo/notes", self.path)

        assert result.success
        assert read_tree(self.root)["README.md"] == b"# Notes\n"

        status = await self.connector.fetch_status("octo/notes", self.path)
        assert not status.is_ahead and not status.is_dirty

    @pytest.mark.asyncio
    async def test_add_repository(self):
        record = await self.connector.add_repository("notes", schedule_cron="*/30 * * * *")

        assert record.full_name == "octo/notes"
        assert record.branch == "main"
        assert record.local_path.endswith("/github/notes")
        assert self.connector.get_repository("octo/notes").schedule_cron == "*/30 * * * *"

        again = await self.connector.add_repository("octo/notes", self.path, schedule_cron=None)
        assert again.id == record.id
        assert again.local_path == self.path
        assert len(self.connector.list_repositories()) == 1

    @pytest.mark.asyncio
    async def test_sync_repository_records_success(self):
        record = await self.connector.add_repository("octo/notes", self.path)

        result = await self.connector.sync_repository("octo/notes", "pull")

        assert result.success
        stored = self.connector.get_repository("octo/notes")
        assert stored.last_sync_status == "completed"
        assert stored.last_sync_at is not None
        assert stored.last_revision == self.client.heads["main"]

        log = self.db_service.get_sync_history(record.id)[0]
        assert log.operation == "pull"
        assert log.sync_status == "completed"
        assert log.files_written == 2

    @pytest.mark.asyncio
    async def test_sync_repository_records_failure(self):
        record = await self.connector.add_repository("octo/notes", self.path)
        await self.connector.sync_repository("octo/notes", "pull")
        last_success = self.connector.get_repository("octo/notes").last_sync_at

        self.client.fail_on["download_archive"] = NetworkFailureError("DNS lookup failed")
        result = await self.connector.sync_repository("octo/notes", "pull")

        assert not result.success
        assert "DNS" in result.error_message
        stored = self.connector.get_repository("octo/notes")
        assert stored.last_sync_status == "failed"
        assert stored.last_sync_at == last_success

        log = self.db_service.get_sync_history(record.id)[0]
        assert log.sync_status == "failed"
        assert "DNS" in log.error_message

    @pytest.mark.asyncio
    async def test_sync_repository_push_uses_message(self):
        await self.connector.add_repository("octo/notes", self.path)
        await self.connector.sync_repository("octo/notes", "pull")
        write_files(self.root, {"local.txt": b"l"})

        result = await self.connector.sync_repository("octo/notes", "push", message="Nightly")

        assert result.files_pushed == 1
        assert self.client.messages == ["Nightly"]

    @pytest.mark.asyncio
    async def test_sync_repository_rejects_bad_input(self):
        with pytest.raises(ValueError):
            await self.connector.sync_repository("octo/missing")

        await self.connector.add_repository("octo/notes", self.path)
        with pytest.raises(ValueError):
            await self.connector.sync_repository("octo/notes", "merge")

    @pytest.mark.asyncio
    async def test_sync_all_continues_after_failure(self, tmp_path):
        await self.connector.add_repository("octo/notes", self.path)
        # Unknown to the remote, so its pull is rejected
        self.db_service.create_repository(
            RepositoryCreate(owner="octo", repo="other", local_path=str(tmp_path / "other"), branch="main")
        )

        stats = await self.connector.sync_all("pull")

        assert stats.total_repositories == 2
        assert stats.successful_syncs == 1
        assert stats.failed_syncs == 1
        assert stats.success_rate == 50.0
        assert stats.total_files_changed == 2
        assert (self.root / "README.md").exists()

    @pytest.mark.asyncio
    async def test_schedules(self):
        await self.connector.add_repository("octo/notes", self.path)

        assert self.connector.set_schedule("octo/notes", "0 9 * * 1-5").schedule_cron == "0 9 * * 1-5"
        assert self.connector.set_schedule("octo/missing", "0 9 * * *") is None
        assert self.connector.schedule_all("*/15 * * * *") == 1
        assert self.connector.get_repository("octo/notes").schedule_cron == "*/15 * * * *"
        assert self.connector.remove_repository("octo/notes")
        assert self.connector.list_repositories() == []

    @pytest.mark.asyncio
    async def test_sync_repository_engine_errors_become_results(self):
        await self.connector.add_repository("octo/notes", self.path)
        self.connector.engine.sync = AsyncMock(side_effect=NetworkFailureError("offline"))

        result = await self.connector.sync_repository("octo/notes")

        assert result.operation == "sync"
        assert result.error_message == "offline"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded(self):
        record = await self.connector.add_repository("octo/notes", self.path)
        self.client.fail_on["get_branch"] = ValueError("bad json body")

        result = await self.connector.sync_repository("octo/notes", "pull")

        assert not result.success
        assert result.error_message == "bad json body"
        assert self.connector.get_repository("octo/notes").last_sync_status == "failed"
        assert [log.sync_status for log in self.db_service.get_sync_history(record.id)] == ["failed"]

    @pytest.mark.asyncio
    async def test_sync_all_survives_unexpected_error(self, tmp_path):
        await self.connector.add_repository("octo/notes", self.path)
        other = self.db_service.create_repository(
            RepositoryCreate(owner="octo", repo="other", local_path=str(tmp_path / "other"), branch="main")
        )
        original_pull = self.connector.engine.pull

        async def pull(reference, local_path=None, branch=None, progress=None):
            if reference == "octo/other":
                raise ValueError("bad json body")
            return await original_pull(reference, local_path, branch, progress)

        self.connector.engine.pull = pull

        stats = await self.connector.sync_all("pull")

        assert (stats.successful_syncs, stats.failed_syncs) == (1, 1)
        assert (self.root / "README.md").exists()
        assert self.db_service.get_sync_history(other.id)[0].error_message == "bad json body"

    @pytest.mark.asyncio
    async def test_sync_all_reports_repositories_that_could_not_start(self):
        await self.connector.add_repository("octo/notes", self.path)
        self.connector.sync_repository = AsyncMock(side_effect=ValueError("Repository octo/notes not found"))

        stats = await self.connector.sync_all("pull")

        assert stats.failed_syncs == 1
        failed = stats.results[0]
        assert (failed.repository, failed.operation) == ("octo/notes", "pull")
        assert "not found" in failed.error_message
