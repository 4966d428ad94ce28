"""Tests for incremental index maintenance."""

from __future__ import annotations

from pathlib import Path

import pytest

from cortex.errors import StorageError
from cortex.memory.maintenance import update_after_remove, update_after_write
from cortex.memory.paths import MemoryPath
from cortex.memory.record import MemoryRecord
from cortex.memory.store import FilesystemStorage


@pytest.fixture
def storage(tmp_path: Path) -> FilesystemStorage:
    storage = FilesystemStorage(tmp_path / "store")
    storage.initialize()
    return storage


def _counts(storage: FilesystemStorage, category: str) -> dict[str, int]:
    return {s.path: s.memory_count for s in storage.load_index(category).subcategories}


class TestAfterWrite:
    def test_parent_entry(self, storage: FilesystemStorage):
        storage.add("standards/naming", MemoryRecord.new("Use kebab-case"))
        index = storage.load_index("standards")
        assert [m.path for m in index.memories] == ["standards/naming"]
        assert index.memories[0].token_estimate == 4
        assert _counts(storage, "") == {"standards": 1}

    def test_aggregate_counts(self, storage: FilesystemStorage):
        storage.add("a/b/c/x", MemoryRecord.new("x"))
        storage.add("a/b/y", MemoryRecord.new("y"))
        storage.add("a/z", MemoryRecord.new("z"))
        assert _counts(storage, "a/b") == {"a/b/c": 1}
        assert _counts(storage, "a") == {"a/b": 2}
        assert _counts(storage, "") == {"a": 3}

    def test_entries_sorted(self, storage: FilesystemStorage):
        for slug in ["c", "a", "b"]:
            storage.add(f"n/{slug}", MemoryRecord.new(slug))
        assert [m.path for m in storage.load_index("n").memories] == ["n/a", "n/b", "n/c"]

    def test_replaces_existing_entry(self, storage: FilesystemStorage):
        storage.add("n/a", MemoryRecord.new("short"))
        record = storage.load("n/a")
        record.content = "a much longer body than before"
        storage.save("n/a", record)
        memories = storage.load_index("n").memories
        assert len(memories) == 1
        assert memories[0].token_estimate == 8
        assert _counts(storage, "") == {"n": 1}

    def test_missing_index_without_create(self, storage: FilesystemStorage):
        (storage.root / "n").mkdir()
        with pytest.raises(StorageError):
            update_after_write(
                storage, MemoryPath.parse("n/a"), MemoryRecord.new("x"), create_when_missing=False
            )


class TestAfterRemove:
    def test_drops_empty_chain(self, storage: FilesystemStorage):
        storage.add("a/b/c/x", MemoryRecord.new("x"))
        storage.remove("a/b/c/x")
        update_after_remove(storage, MemoryPath.parse("a/b/c/x"))
        assert storage.load_index("a/b/c").memories == []
        assert _counts(storage, "a/b") == {}
        assert _counts(storage, "a") == {}
        assert _counts(storage, "") == {}

    def test_decrements_counts(self, storage: FilesystemStorage):
        storage.add("a/b/x", MemoryRecord.new("x"))
        storage.add("a/b/y", MemoryRecord.new("y"))
        storage.remove("a/b/x")
        update_after_remove(storage, MemoryPath.parse("a/b/x"))
        assert _counts(storage, "a") == {"a/b": 1}
        assert _counts(storage, "") == {"a": 1}

    def test_described_category_kept(self, storage: FilesystemStorage):
        storage.add("a/b/x", MemoryRecord.new("x"))
        index = storage.load_index("a")
        index.subcategories[0].description = "Keep me"
        storage.write_index("a", index)

        storage.remove("a/b/x")
        update_after_remove(storage, MemoryPath.parse("a/b/x"))
        entry = storage.load_index("a").find_subcategory("a/b")
        assert entry.memory_count == 0
        assert entry.description == "Keep me"

    def test_missing_index_is_noop(self, storage: FilesystemStorage):
        update_after_remove(storage, MemoryPath.parse("ghost/x"))
        assert storage.load_index("ghost") is None
