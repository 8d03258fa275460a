"""Tests for the quota repository and its durable-to-memory failover."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from usagegate.app.core.config import StorageOptions
from usagegate.app.exceptions import (
    InvalidIdentityError,
    StorageConflictError,
    StoragePermissionError,
    StorageUnavailableError,
)
from usagegate.app.storage.base import QuotaBackend
from usagegate.app.storage.memory import InMemoryQuotaBackend
from usagegate.app.storage.models import UserQuotaRecord
from usagegate.app.storage.repository import QuotaRepository, StorageMode


def _make_durable(**methods) -> MagicMock:
    durable = MagicMock(spec=QuotaBackend)
    durable.read = AsyncMock(return_value=None)
    durable.write = AsyncMock(side_effect=lambda record: record)
    durable.remove = AsyncMock(return_value=None)
    durable.scan = AsyncMock(return_value=[])
    for name, mock in methods.items():
        setattr(durable, name, mock)
    return durable


class TestFromOptions:
    def test_no_bucket_starts_in_memory(self):
        repo = QuotaRepository.from_options(StorageOptions())
        assert repo.mode is StorageMode.MEMORY
        assert isinstance(repo.backend, InMemoryQuotaBackend)

    def test_forced_memory(self):
        repo = QuotaRepository.from_options(StorageOptions(bucket="b", force_memory=True))
        assert repo.mode is StorageMode.MEMORY

    def test_bucket_starts_durable(self, monkeypatch):
        created = {}

        class FakeS3Backend:
            def __init__(self, **kwargs):
                created.update(kwargs)

        monkeypatch.setattr("usagegate.app.storage.s3.S3QuotaBackend", FakeS3Backend)
        repo = QuotaRepository.from_options(
            StorageOptions(bucket="b", prefix="usage", conditional_writes=False)
        )

        assert repo.mode is StorageMode.DURABLE
        assert isinstance(repo.backend, FakeS3Backend)
        assert created["bucket_name"] == "b"
        assert created["prefix"] == "usage"
        assert created["conditional_writes"] is False


class TestMemoryRepository:
    @pytest.mark.asyncio
    async def test_load_creates_zeroed_record(self, memory_repository):
        record = await memory_repository.load(" alice@example.com ")

        assert record.id == "alice@example.com"
        assert record.safe_id == "alice_example.com"
        assert record.used("listening") == 0
        assert len(await memory_repository.list_all()) == 1

    @pytest.mark.asyncio
    async def test_load_rejects_empty_id(self, memory_repository):
        with pytest.raises(InvalidIdentityError):
            await memory_repository.load("  ")

    @pytest.mark.asyncio
    async def test_save_then_load(self, memory_repository):
        record = await memory_repository.load("alice")
        await memory_repository.save("alice", record.with_usage("listening", 3, "t"))

        assert (await memory_repository.load("alice")).listening_used == 3

    @pytest.mark.asyncio
    async def test_save_with_stale_record_conflicts(self, memory_repository):
        record = await memory_repository.load("alice")
        await memory_repository.save("alice", record.with_usage("listening", 1, "t1"))

        with pytest.raises(StorageConflictError):
            await memory_repository.save("alice", record.with_usage("listening", 2, "t2"))

    @pytest.mark.asyncio
    async def test_save_keys_by_sanitized_id(self, memory_repository):
        record = await memory_repository.load("a/b")
        await memory_repository.save("a/b", record.with_usage("translation", 2, "t"))

        stored = await memory_repository.backend.read("a_b")
        assert stored.translation_used == 2

    @pytest.mark.asyncio
    async def test_delete_then_load_is_fresh(self, memory_repository):
        record = await memory_repository.load("alice")
        await memory_repository.save("alice", record.with_usage("listening", 5, "t"))

        await memory_repository.delete("alice")
        await memory_repository.delete("alice")

        assert (await memory_repository.load("alice")).listening_used == 0

    @pytest.mark.asyncio
    async def test_load_normalizes_corrupted_counts(self):
        memory = InMemoryQuotaBackend(conditional_writes=False)
        await memory.write(UserQuotaRecord(id="bob", safe_id="bob", listening_used=-7, translation_used=2.5))
        repo = QuotaRepository(memory=memory)

        record = await repo.load("bob")
        assert record.listening_used == 0
        assert record.translation_used == 2

    @pytest.mark.asyncio
    async def test_concurrent_create_uses_existing_record(self):
        memory = InMemoryQuotaBackend()
        repo = QuotaRepository(memory=memory)
        winner = await memory.write(UserQuotaRecord(id="alice", safe_id="alice", listening_used=4))
        memory.read = AsyncMock(side_effect=[None, winner])

        record = await repo.load("alice")
        assert record.listening_used == 4


class TestFailover:
    @pytest.mark.asyncio
    async def test_durable_is_used_while_healthy(self):
        durable = _make_durable()
        repo = QuotaRepository(durable=durable)

        await repo.load("alice")

        durable.read.assert_awaited_once_with("alice")
        durable.write.assert_awaited_once()
        assert repo.mode is StorageMode.DURABLE

    @pytest.mark.asyncio
    async def test_permission_error_switches_to_memory(self):
        durable = _make_durable(read=AsyncMock(side_effect=StoragePermissionError("denied")))
        memory = InMemoryQuotaBackend()
        repo = QuotaRepository(durable=durable, memory=memory)

        record = await repo.load("alice")

        assert repo.mode is StorageMode.MEMORY
        assert repo.backend is memory
        assert record.safe_id == "alice"
        assert await memory.read("alice") is not None

    @pytest.mark.asyncio
    async def test_failover_is_one_way(self):
        durable = _make_durable(scan=AsyncMock(side_effect=StoragePermissionError("denied")))
        repo = QuotaRepository(durable=durable)

        await repo.list_all()
        await repo.load("alice")
        await repo.delete("alice")

        assert repo.mode is StorageMode.MEMORY
        durable.read.assert_not_awaited()
        durable.remove.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        durable = _make_durable(read=AsyncMock(side_effect=StorageUnavailableError("down")))
        repo = QuotaRepository(durable=durable)

        with pytest.raises(StorageUnavailableError):
            await repo.load("alice")
        assert repo.mode is StorageMode.DURABLE

    @pytest.mark.asyncio
    async def test_permission_error_on_memory_propagates(self):
        memory = InMemoryQuotaBackend()
        memory.scan = AsyncMock(side_effect=StoragePermissionError("denied"))
        repo = QuotaRepository(memory=memory)

        with pytest.raises(StoragePermissionError):
            await repo.list_all()
