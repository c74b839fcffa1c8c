"""Tests for pushing local changes as one remote commit."""

import pytest

from reposync.core import (
    ChangeDetector,
    PullEngine,
    PushEngine,
    RepositoryReference,
    StateStore,
    compute_hash,
)
from reposync.exceptions import RemoteRejectedError

from conftest import FakeRemoteClient, write_files


class TestPushEngine:
    """Test tree/commit/ref creation from detected changes."""

    def setup_method(self):
        self.client = FakeRemoteClient(files={"README.md": b"# Notes\n", "src/a.txt": b"alpha\n"})
        self.store = StateStore(".git")
        self.detector = ChangeDetector(self.store)
        self.pull_engine = PullEngine(self.client, self.store)
        self.engine = PushEngine(self.client, self.store, self.detector)

    def _ref(self, root) -> RepositoryReference:
        return RepositoryReference(owner="octo", repo="notes", branch="main", local_path=str(root))

    async def _checkout(self, root):
        await self.pull_engine.pull(self._ref(root))
        self.client.calls.clear()

    @pytest.mark.asyncio
    async def test_nothing_to_push_makes_no_remote_calls(self, local_root):
        await self._checkout(local_root)

        result = await self.engine.push(self._ref(local_root), "Mobile Push")

        assert result.success
        assert result.files_changed == 0
        assert result.revision == self.client.heads["main"]
        assert self.client.calls == []

    @pytest.mark.asyncio
    async def test_push_add_modify_delete(self, local_root):
        await self._checkout(local_root)
        parent = self.client.heads["main"]

        write_files(local_root, {"README.md": b"# Notes, edited\n", "new/b.txt": b"beta\n"})
        (local_root / "src" / "a.txt").unlink()

        result = await self.engine.push(self._ref(local_root), "Mobile Push")

        assert result.success
        assert result.files_pushed == 2
        assert result.files_deleted_remote == 1
        assert self.client.calls == ["get_ref", "get_commit", "create_tree", "create_commit", "update_ref"]
        assert self.client.messages == ["Mobile Push"]

        head = self.client.heads["main"]
        assert result.revision == head
        assert self.client.commits[head].parents == [parent]
        assert self.client.files() == {"README.md": b"# Notes, edited\n", "new/b.txt": b"beta\n"}

        removal = [e for e in self.client.tree_entries[0] if e.path == "src/a.txt"]
        assert removal[0].is_removal
        assert removal[0].to_payload()["sha"] is None

    @pytest.mark.asyncio
    async def test_manifest_updated_after_push(self, local_root):
        await self._checkout(local_root)
        write_files(local_root, {"README.md": b"edited"})
        (local_root / "src" / "a.txt").unlink()

        result = await self.engine.push(self._ref(local_root), "Mobile Push")

        manifest = self.store.load(local_root, "main")
        assert manifest.revision == result.revision
        assert manifest.tracked_files == {"README.md": compute_hash(b"edited")}
        assert self.detector.detect(local_root, "main") == []

    @pytest.mark.asyncio
    async def test_binary_file_goes_through_blob(self, local_root):
        await self._checkout(local_root)
        payload = b"\x89PNG\r\n\x1a\n\xff\xfe\x00"
        write_files(local_root, {"logo.png": payload})

        await self.engine.push(self._ref(local_root), "Mobile Push")

        assert "create_blob" in self.client.calls
        entry = self.client.tree_entries[0][0]
        assert entry.content is None and entry.sha is not None
        assert self.client.files()["logo.png"] == payload

    @pytest.mark.asyncio
    async def test_text_file_sent_inline(self, local_root):
        await self._checkout(local_root)
        write_files(local_root, {"notes.md": "ünïcode\n".encode("utf-8")})

        await self.engine.push(self._ref(local_root), "Mobile Push")

        assert "create_blob" not in self.client.calls
        assert self.client.tree_entries[0][0].content == "ünïcode\n"

    @pytest.mark.asyncio
    async def test_push_into_empty_manifest_sends_everything(self, local_root):
        write_files(local_root, {"fresh.txt": b"fresh"})

        result = await self.engine.push(self._ref(local_root), "Initial")

        assert result.files_pushed == 1
        assert self.client.files()["fresh.txt"] == b"fresh"
        # Remote files the local tree never tracked are left alone
        assert "README.md" in self.client.files()

    @pytest.mark.asyncio
    async def test_commit_failure_leaves_ref_and_manifest(self, local_root):
        await self._checkout(local_root)
        before_head = self.client.heads["main"]
        before_manifest = self.store.load(local_root, "main")
        write_files(local_root, {"README.md": b"edited"})
        self.client.fail_on["create_commit"] = RemoteRejectedError("Validation failed", 422)

        with pytest.raises(RemoteRejectedError):
            await self.engine.push(self._ref(local_root), "Mobile Push")

        assert self.client.heads["main"] == before_head
        assert "update_ref" not in self.client.calls
        assert self.store.load(local_root, "main") == before_manifest

    @pytest.mark.asyncio
    async def test_rejected_ref_update_keeps_manifest(self, local_root):
        await self._checkout(local_root)
        before_manifest = self.store.load(local_root, "main")
        write_files(local_root, {"README.md": b"edited"})
        self.client.fail_on["update_ref"] = RemoteRejectedError("Update is not a fast forward", 422)

        with pytest.raises(RemoteRejectedError):
            await self.engine.push(self._ref(local_root), "Mobile Push")

        assert self.store.load(local_root, "main") == before_manifest
        assert self.detector.detect(local_root, "main")
