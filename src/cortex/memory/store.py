"""Filesystem storage adapter.

Records are files at ``{root}/{category...}/{slug}.md``; each category
directory (and the root) holds an ``index.yaml`` listing its direct children.
Record files are the source of truth; indexes are patched incrementally on
writes and rebuilt from scratch by :meth:`FilesystemStorage.reindex`.

Single writer per store: no locking is taken, so concurrent processes
mutating the same root can lose index updates. Reindex repairs that.
"""

from __future__ import annotations

import logging
from pathlib import Path

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
from cortex.memory.base import ReindexResult
from cortex.memory.index import CategoryIndex, parse_index, serialize_index
from cortex.memory.maintenance import update_after_write
from cortex.memory.paths import INDEX_NAME, MemoryPath, ancestors, validate_category_path
from cortex.memory.record import MemoryRecord, parse_record, serialize_record
from cortex.memory.reindex import reindex_store
from cortex.memory.tokens import Tokenizer, estimate_tokens

logger = logging.getLogger(__name__)


def _extension(value: str) -> str:
    value = value.strip()
    return value if value.startswith(".") else f".{value}"


class FilesystemStorage:
    """Record and index CRUD bound to one store root."""

    def __init__(
        self,
        root: Path,
        *,
        memory_extension: str = ".md",
        index_extension: str = ".yaml",
        tokenizer: Tokenizer | None = estimate_tokens,
    ) -> None:
        self.root = Path(root)
        self.memory_extension = _extension(memory_extension)
        self.index_filename = f"{INDEX_NAME}{_extension(index_extension)}"
        self.tokenizer = tokenizer

    # ── File layout ───────────────────────────────────────────

    def _record_file(self, path: MemoryPath) -> Path:
        if path.slug == INDEX_NAME:
            raise InvalidPathError(
                f"Memory slug '{INDEX_NAME}' is reserved for index files: {path}",
                path=str(path),
                rule="reserved",
            )
        return self.root.joinpath(*path.categories, f"{path.slug}{self.memory_extension}")

    def _category_dir(self, category: str) -> Path:
        return self.root.joinpath(*category.split("/")) if category else self.root

    def _index_file(self, category: str) -> Path:
        return self._category_dir(category) / self.index_filename

    def estimate_tokens(self, content: str) -> int | None:
        """Token estimate for an index entry, or None without a tokenizer."""
        if self.tokenizer is None:
            return None
        return self.tokenizer(content)

    # ── Raw I/O ───────────────────────────────────────────────

    def _read(self, file: Path) -> str | None:
        try:
            return file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {file}: {e}", path=str(file)) from e

    def _write(self, file: Path, text: str) -> None:
        try:
            file.write_text(text, encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to write {file}: {e}", path=str(file)) from e

    def _mkdir(self, directory: Path) -> None:
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Failed to create directory {directory}: {e}", path=str(directory)
            ) from e

    def initialize(self) -> None:
        """Create the store root and an empty root index. Idempotent."""
        self._mkdir(self.root)
        if not self._index_file("").exists():
            self._write(self._index_file(""), serialize_index(CategoryIndex()))
            logger.info("Initialized store at %s", self.root)

    # ── Records ───────────────────────────────────────────────

    def exists(self, path: str | MemoryPath) -> bool:
        return self._record_file(MemoryPath.parse(path)).is_file()

    def load(self, path: str | MemoryPath) -> MemoryRecord | None:
        """Read a record. Returns None when no file exists at the path."""
        memory_path = MemoryPath.parse(path)
        text = self._read(self._record_file(memory_path))
        if text is None:
            return None
        try:
            return parse_record(text)
        except ParseError as e:
            e.path = str(memory_path)
            e.message = f"Failed to parse memory '{memory_path}': {e.message}"
            raise

    def save(
        self,
        path: str | MemoryPath,
        record: MemoryRecord,
        *,
        allow_index_create: bool = True,
        allow_index_update: bool = True,
    ) -> None:
        """Write or overwrite a record file.

        With ``allow_index_create`` missing category directories and their
        index files are created; otherwise a missing category is an error.
        With ``allow_index_update`` the parent and ancestor indexes are patched.
        """
        memory_path = MemoryPath.parse(path)
        file = self._record_file(memory_path)
        if not file.parent.is_dir():
            if not allow_index_create:
                raise StorageError(
                    f"Category '{memory_path.category}' does not exist.",
                    path=str(memory_path),
                )
            self.ensure_category(memory_path.category)

        self._write(file, serialize_record(record))
        logger.debug("Wrote memory %s", memory_path)

        if allow_index_update:
            update_after_write(
                self, memory_path, record, create_when_missing=allow_index_create
            )

    def add(self, path: str | MemoryPath, record: MemoryRecord) -> None:
        """Like :meth:`save`, but never overwrites an existing record."""
        memory_path = MemoryPath.parse(path)
        if self._record_file(memory_path).exists():
            raise DestinationExistsError(
                f"Memory already exists: {memory_path}", path=str(memory_path)
            )
        self.save(memory_path, record)
        logger.info("Added memory %s", memory_path)

    def remove(self, path: str | MemoryPath) -> None:
        """Delete a record file. Indexes are left for the caller to patch."""
        memory_path = MemoryPath.parse(path)
        file = self._record_file(memory_path)
        try:
            file.unlink()
        except FileNotFoundError as e:
            raise MemoryNotFoundError(
                f"Memory not found: {memory_path}", path=str(memory_path)
            ) from e
        except OSError as e:
            raise StorageError(f"Failed to remove {file}: {e}", path=str(memory_path)) from e
        logger.info("Removed memory %s", memory_path)

    def move(self, src: str | MemoryPath, dst: str | MemoryPath) -> None:
        """Relocate a record. The destination category must already exist."""
        src_path = MemoryPath.parse(src)
        dst_path = MemoryPath.parse(dst)
        src_file = self._record_file(src_path)
        dst_file = self._record_file(dst_path)

        if not src_file.is_file():
            raise MemoryNotFoundError(f"Memory not found: {src_path}", path=str(src_path))
        if dst_file.exists():
            raise DestinationExistsError(
                f"Destination already exists: {dst_path}", path=str(dst_path)
            )
        if not dst_file.parent.is_dir():
            raise MoveFailedError(
                f"Destination category '{dst_path.category}' does not exist.",
                path=str(dst_path),
            )

        try:
            src_file.replace(dst_file)
        except OSError as e:
            raise StorageError(
                f"Failed to move {src_path} to {dst_path}: {e}", path=str(src_path)
            ) from e
        logger.info("Moved memory %s -> %s", src_path, dst_path)

    # ── Indexes & categories ──────────────────────────────────

    def load_index(self, category: str) -> CategoryIndex | None:
        """Read a category index. Returns None when the category has no index file."""
        category = validate_category_path(category)
        text = self._read(self._index_file(category))
        if text is None:
            return None
        try:
            return parse_index(text)
        except ParseError as e:
            e.path = category
            e.message = f"Failed to parse index for '{category or '/'}': {e.message}"
            raise

    def write_index(self, category: str, index: CategoryIndex) -> None:
        """Replace a category index file entirely."""
        category = validate_category_path(category)
        self._mkdir(self._category_dir(category))
        self._write(self._index_file(category), serialize_index(index))
        logger.debug("Wrote index for '%s'", category or "/")

    def category_exists(self, category: str) -> bool:
        return self._category_dir(validate_category_path(category)).is_dir()

    def ensure_category(self, category: str) -> None:
        """Create the category directory and any missing index files along its path."""
        category = validate_category_path(category)
        for level in [*ancestors(category), category] if category else [""]:
            self._mkdir(self._category_dir(level))
            if not self._index_file(level).exists():
                self._write(self._index_file(level), serialize_index(CategoryIndex()))

    def delete_category(self, category: str) -> None:
        """Remove an empty category directory. Never cascades."""
        category = validate_category_path(category)
        if not category:
            raise InvalidPathError("The store root cannot be deleted.", path="", rule="segment_count")
        directory = self._category_dir(category)
        if not directory.is_dir():
            raise CategoryNotFoundError(f"Category not found: {category}", path=category)

        leftovers = [p.name for p in directory.iterdir() if p.name != self.index_filename]
        if leftovers:
            raise CategoryNotEmptyError(
                f"Category '{category}' is not empty ({len(leftovers)} entries); "
                "remove its contents first.",
                path=category,
            )
        try:
            self._index_file(category).unlink(missing_ok=True)
            directory.rmdir()
        except OSError as e:
            raise StorageError(f"Failed to delete category {category}: {e}", path=category) from e
        logger.info("Deleted category %s", category)

    def reindex(self) -> ReindexResult:
        """Rebuild every index file from the record files on disk."""
        return reindex_store(self)
