"""Tests for the in-memory usage record backend."""

import pytest

from usagegate.app.exceptions import StorageConflictError
from usagegate.app.storage.memory import InMemoryQuotaBackend
from usagegate.app.storage.models import UserQuotaRecord


@pytest.fixture
def backend():
    return InMemoryQuotaBackend()


class TestInMemoryQuotaBackend:
    """Test InMemoryQuotaBackend operations."""

    @pytest.mark.asyncio
    async def test_read_missing(self, backend):
        assert await backend.read("nobody") is None

    @pytest.mark.asyncio
    async def test_write_and_read(self, backend):
        stored = await backend.write(UserQuotaRecord(id="alice", safe_id="alice", listening_used=2))
        assert stored.version is not None

        loaded = await backend.read("alice")
        assert loaded.listening_used == 2
        assert loaded.version == stored.version

    @pytest.mark.asyncio
    async def test_returns_copies(self, backend):
        await backend.write(UserQuotaRecord(id="alice", safe_id="alice"))
        loaded = await backend.read("alice")
        loaded.listening_used = 99

        assert (await backend.read("alice")).listening_used == 0

    @pytest.mark.asyncio
    async def test_create_conflicts_when_record_exists(self, backend):
        await backend.write(UserQuotaRecord(id="alice", safe_id="alice"))
        with pytest.raises(StorageConflictError):
            await backend.write(UserQuotaRecord(id="alice", safe_id="alice"))

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, backend):
        first = await backend.write(UserQuotaRecord(id="alice", safe_id="alice"))
        second = await backend.write(first.with_usage("listening", 1, "t1"))

        with pytest.raises(StorageConflictError):
            await backend.write(first.with_usage("listening", 5, "t2"))

        await backend.write(second.with_usage("listening", 2, "t3"))
        assert (await backend.read("alice")).listening_used == 2

    @pytest.mark.asyncio
    async def test_unconditional_writes(self):
        backend = InMemoryQuotaBackend(conditional_writes=False)
        await backend.write(UserQuotaRecord(id="alice", safe_id="alice"))
        await backend.write(UserQuotaRecord(id="alice", safe_id="alice", listening_used=3))
        assert (await backend.read("alice")).listening_used == 3

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, backend):
        await backend.write(UserQuotaRecord(id="alice", safe_id="alice"))
        await backend.remove("alice")
        await backend.remove("alice")
        assert await backend.read("alice") is None

    @pytest.mark.asyncio
    async def test_scan_lists_every_record(self, backend):
        await backend.write(UserQuotaRecord(id="alice", safe_id="alice"))
        await backend.write(UserQuotaRecord(id="bob", safe_id="bob"))

        assert sorted(r.safe_id for r in await backend.scan()) == ["alice", "bob"]

        await backend.remove("alice")
        assert [r.safe_id for r in await backend.scan()] == ["bob"]
