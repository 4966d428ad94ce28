"""Tests for the filesystem storage adapter."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from cortex.errors import (
    CategoryNotEmptyError,
    CategoryNotFoundError,
    DestinationExistsError,
    InvalidPathError,
    MemoryNotFoundError,
    MoveFailedError,
    ParseError,
    StorageError,
)
from cortex.memory.base import StorageAdapter
from cortex.memory.index import CategoryIndex, IndexMemoryEntry
from cortex.memory.record import MemoryRecord
from cortex.memory.store import FilesystemStorage

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def storage(tmp_path: Path) -> FilesystemStorage:
    storage = FilesystemStorage(tmp_path / "store")
    storage.initialize()
    return storage


def _record(content: str = "Some memory body") -> MemoryRecord:
    return MemoryRecord.new(content, tags=["t"], now=T0)


class TestInitialize:
    def test_creates_root_index(self, storage: FilesystemStorage):
        assert (storage.root / "index.yaml").is_file()
        assert storage.load_index("") == CategoryIndex()

    def test_idempotent(self, storage: FilesystemStorage):
        storage.add("a/b", _record())
        before = (storage.root / "index.yaml").read_text()
        storage.initialize()
        assert (storage.root / "index.yaml").read_text() == before

    def test_satisfies_protocol(self, storage: FilesystemStorage):
        assert isinstance(storage, StorageAdapter)


class TestRecords:
    def test_index_slug_reserved(self, storage: FilesystemStorage):
        with pytest.raises(InvalidPathError) as exc:
            storage.add("a/index", _record())
        assert exc.value.rule == "reserved"
        with pytest.raises(InvalidPathError):
            storage.load("a/index")

    def test_index_slug_reserved_with_shared_extension(self, tmp_path: Path):
        storage = FilesystemStorage(tmp_path, memory_extension=".yaml")
        storage.ensure_category("a")
        with pytest.raises(InvalidPathError):
            storage.add("a/index", _record())
        with pytest.raises(InvalidPathError):
            storage.load("a/index")
        assert storage.load_index("a") == CategoryIndex()

    def test_save_and_load(self, storage: FilesystemStorage):
        record = _record()
        storage.save("standards/naming", record)
        assert (storage.root / "standards" / "naming.md").is_file()
        assert storage.load("standards/naming") == record

    def test_load_missing_returns_none(self, storage: FilesystemStorage):
        assert storage.load("standards/none") is None

    def test_load_rejects_invalid_path(self, storage: FilesystemStorage):
        with pytest.raises(InvalidPathError):
            storage.load("Standards/None")

    def test_load_corrupt_file(self, storage: FilesystemStorage):
        (storage.root / "notes").mkdir()
        (storage.root / "notes" / "bad.md").write_text("plain text", encoding="utf-8")
        with pytest.raises(ParseError) as exc:
            storage.load("notes/bad")
        assert exc.value.path == "notes/bad"
        assert exc.value.reason == "MISSING_FRONTMATTER"
        assert "notes/bad" in exc.value.message

    def test_save_overwrites(self, storage: FilesystemStorage):
        storage.save("a/b", _record("one"))
        storage.save("a/b", _record("two"))
        assert storage.load("a/b").content == "two"
        assert len(storage.load_index("a").memories) == 1

    def test_save_without_create_permission(self, storage: FilesystemStorage):
        with pytest.raises(StorageError):
            storage.save("missing/x", _record(), allow_index_create=False)
        assert not (storage.root / "missing").exists()

    def test_save_without_index_update(self, storage: FilesystemStorage):
        storage.ensure_category("a")
        storage.save("a/b", _record(), allow_index_update=False)
        assert storage.load_index("a").memories == []

    def test_add(self, storage: FilesystemStorage):
        storage.add("a/b", _record())
        assert storage.exists("a/b")

    def test_add_existing(self, storage: FilesystemStorage):
        storage.add("a/b", _record("original"))
        with pytest.raises(DestinationExistsError) as exc:
            storage.add("a/b", _record("other"))
        assert exc.value.code == "DESTINATION_EXISTS"
        assert storage.load("a/b").content == "original"

    def test_remove(self, storage: FilesystemStorage):
        storage.add("a/b", _record())
        storage.remove("a/b")
        assert storage.load("a/b") is None
        # The adapter leaves index maintenance to the caller.
        assert [m.path for m in storage.load_index("a").memories] == ["a/b"]

    def test_remove_missing(self, storage: FilesystemStorage):
        with pytest.raises(MemoryNotFoundError) as exc:
            storage.remove("a/b")
        assert exc.value.code == "MEMORY_NOT_FOUND"


class TestMove:
    def test_move(self, storage: FilesystemStorage):
        storage.add("a/x", _record("moving"))
        storage.ensure_category("b")
        storage.move("a/x", "b/y")
        assert storage.load("a/x") is None
        assert storage.load("b/y").content == "moving"

    def test_missing_source(self, storage: FilesystemStorage):
        storage.ensure_category("b")
        with pytest.raises(MemoryNotFoundError):
            storage.move("a/x", "b/y")

    def test_destination_exists(self, storage: FilesystemStorage):
        storage.add("a/x", _record("src"))
        storage.add("b/y", _record("dst"))
        with pytest.raises(DestinationExistsError):
            storage.move("a/x", "b/y")
        assert storage.load("b/y").content == "dst"
        assert storage.load("a/x").content == "src"

    def test_missing_destination_category(self, storage: FilesystemStorage):
        storage.add("a/x", _record("src"))
        with pytest.raises(MoveFailedError) as exc:
            storage.move("a/x", "nowhere/y")
        assert exc.value.code == "MOVE_FAILED"
        assert storage.load("a/x").content == "src"
        assert not (storage.root / "nowhere").exists()


class TestIndexes:
    def test_load_missing_index(self, storage: FilesystemStorage):
        assert storage.load_index("nope") is None

    def test_write_and_load(self, storage: FilesystemStorage):
        index = CategoryIndex(memories=[IndexMemoryEntry(path="a/b", token_estimate=4)])
        storage.write_index("a", index)
        assert storage.load_index("a") == index

    def test_corrupt_index(self, storage: FilesystemStorage):
        (storage.root / "index.yaml").write_text("memories: 5\n", encoding="utf-8")
        with pytest.raises(ParseError) as exc:
            storage.load_index("")
        assert exc.value.reason == "INVALID_FORMAT"

    def test_token_estimate_in_index(self, storage: FilesystemStorage):
        storage.add("a/b", _record("x" * 10))
        assert storage.load_index("a").memories[0].token_estimate == 3

    def test_without_tokenizer(self, tmp_path: Path):
        storage = FilesystemStorage(tmp_path, tokenizer=None)
        storage.add("a/b", _record())
        assert storage.load_index("a").memories[0].token_estimate is None
        assert "token_estimate" not in (tmp_path / "a" / "index.yaml").read_text()

    def test_custom_extensions(self, tmp_path: Path):
        storage = FilesystemStorage(tmp_path, memory_extension="markdown", index_extension=".yml")
        storage.add("a/b", _record())
        assert (tmp_path / "a" / "b.markdown").is_file()
        assert (tmp_path / "a" / "index.yml").is_file()


class TestCategories:
    def test_ensure_creates_chain(self, storage: FilesystemStorage):
        storage.ensure_category("a/b/c")
        for category in ["a", "a/b", "a/b/c"]:
            assert storage.category_exists(category)
            assert storage.load_index(category) == CategoryIndex()

    def test_ensure_keeps_existing_index(self, storage: FilesystemStorage):
        storage.add("a/x", _record())
        storage.ensure_category("a")
        assert len(storage.load_index("a").memories) == 1

    def test_delete_empty(self, storage: FilesystemStorage):
        storage.ensure_category("a/b")
        storage.delete_category("a/b")
        assert not storage.category_exists("a/b")
        assert storage.category_exists("a")

    def test_delete_non_empty(self, storage: FilesystemStorage):
        storage.add("a/x", _record())
        with pytest.raises(CategoryNotEmptyError) as exc:
            storage.delete_category("a")
        assert exc.value.code == "STORAGE_ERROR"
        assert storage.exists("a/x")

    def test_delete_with_subcategory(self, storage: FilesystemStorage):
        storage.ensure_category("a/b")
        with pytest.raises(CategoryNotEmptyError):
            storage.delete_category("a")

    def test_delete_missing(self, storage: FilesystemStorage):
        with pytest.raises(CategoryNotFoundError):
            storage.delete_category("ghost")

    def test_delete_root(self, storage: FilesystemStorage):
        with pytest.raises(InvalidPathError):
            storage.delete_category("")
