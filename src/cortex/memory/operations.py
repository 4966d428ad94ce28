"""Memory and category operations used by the CLI and tool front ends.

Consistency model: every mutation here patches indexes incrementally
(``cortex.memory.maintenance``); ``reindex`` is the idempotent repair and
bootstrap path. Prune is the one bulk mutation and finishes with a reindex.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime

from cortex.errors import CategoryNotFoundError, InvalidPathError, MemoryNotFoundError
from cortex.memory.base import StorageAdapter
from cortex.memory.index import MAX_DESCRIPTION_LENGTH, CategoryIndex, IndexSubcategoryEntry
from cortex.memory.maintenance import update_after_remove, update_after_write
from cortex.memory.paths import MemoryPath, parent_category, validate_category_path
from cortex.memory.record import MemoryRecord, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ListedMemory:
    path: str
    token_estimate: int | None
    updated_at: datetime
    expires_at: datetime | None
    is_expired: bool
    summary: str | None = None


@dataclass
class ListedSubcategory:
    path: str
    memory_count: int
    description: str | None = None


@dataclass
class ListResult:
    category: str
    memories: list[ListedMemory] = field(default_factory=list)
    subcategories: list[ListedSubcategory] = field(default_factory=list)


@dataclass
class PrunedMemory:
    path: str
    expires_at: datetime


@dataclass
class PruneResult:
    pruned: list[PrunedMemory] = field(default_factory=list)
    dry_run: bool = False


def _dedupe(tags: list[str] | None) -> list[str]:
    seen: dict[str, None] = {}
    for tag in tags or []:
        tag = tag.strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


# ── Memories ──────────────────────────────────────────────────


def create_memory(
    storage: StorageAdapter,
    path: str,
    content: str,
    *,
    tags: list[str] | None = None,
    source: str = "user",
    expires_at: datetime | None = None,
    now: datetime | None = None,
) -> MemoryRecord:
    """Create a new record; fails with DESTINATION_EXISTS if one is already there."""
    memory_path = MemoryPath.parse(path)
    record = MemoryRecord.new(
        content, tags=_dedupe(tags), source=source, expires_at=expires_at, now=now
    )
    storage.add(memory_path, record)
    return record


def get_memory(storage: StorageAdapter, path: str) -> MemoryRecord:
    memory_path = MemoryPath.parse(path)
    record = storage.load(memory_path)
    if record is None:
        raise MemoryNotFoundError(f"Memory not found: {memory_path}", path=str(memory_path))
    return record


def update_memory(
    storage: StorageAdapter,
    path: str,
    *,
    content: str | None = None,
    tags: list[str] | None = None,
    expires_at: datetime | None = None,
    clear_expiry: bool = False,
    now: datetime | None = None,
) -> MemoryRecord:
    """Replace content, tags or expiry. ``updated_at`` is always refreshed."""
    memory_path = MemoryPath.parse(path)
    record = get_memory(storage, str(memory_path))
    if content is not None:
        record.content = content
    if tags is not None:
        record.tags = _dedupe(tags)
    if clear_expiry:
        record.expires_at = None
    elif expires_at is not None:
        record.expires_at = expires_at
    record = replace(record, updated_at=now or utcnow())

    storage.save(memory_path, record, allow_index_create=False, allow_index_update=True)
    logger.info("Updated memory %s", memory_path)
    return record


def remove_memory(storage: StorageAdapter, path: str) -> None:
    memory_path = MemoryPath.parse(path)
    storage.remove(memory_path)
    update_after_remove(storage, memory_path)


def move_memory(storage: StorageAdapter, src: str, dst: str) -> None:
    """Move a record, then patch both the source and destination indexes."""
    src_path = MemoryPath.parse(src)
    dst_path = MemoryPath.parse(dst)
    if src_path == dst_path:
        get_memory(storage, str(src_path))
        return

    storage.move(src_path, dst_path)
    update_after_remove(storage, src_path)
    update_after_write(storage, dst_path, get_memory(storage, str(dst_path)))


def list_memories(
    storage: StorageAdapter,
    category: str = "",
    *,
    include_expired: bool = False,
    now: datetime | None = None,
) -> ListResult:
    """List records of a category and its descendants from the indexes."""
    category = validate_category_path(category)
    now = now or utcnow()
    result = ListResult(category=category)

    top = storage.load_index(category)
    if top is None:
        if category and not storage.category_exists(category):
            raise CategoryNotFoundError(f"Category not found: {category}", path=category)
        return result

    result.subcategories = [
        ListedSubcategory(path=s.path, memory_count=s.memory_count, description=s.description)
        for s in top.subcategories
    ]

    visited: set[str] = set()
    pending = [category]
    while pending:
        current = pending.pop()
        if current in visited:
            continue
        visited.add(current)
        index = top if current == category else storage.load_index(current)
        if index is None:
            continue

        for entry in index.memories:
            record = storage.load(entry.path)
            if record is None:
                logger.warning("Index lists %s but no record file exists; reindex to repair", entry.path)
                continue
            expired = record.is_expired(now)
            if expired and not include_expired:
                continue
            result.memories.append(
                ListedMemory(
                    path=entry.path,
                    token_estimate=entry.token_estimate,
                    updated_at=record.updated_at,
                    expires_at=record.expires_at,
                    is_expired=expired,
                    summary=entry.summary,
                )
            )
        pending.extend(sub.path for sub in index.subcategories)

    result.memories.sort(key=lambda m: m.path)
    return result


def prune_expired(
    storage: StorageAdapter, *, dry_run: bool = False, now: datetime | None = None
) -> PruneResult:
    """Delete every record with ``expires_at <= now``.

    In dry-run mode the same set is returned and nothing is deleted.
    """
    listing = list_memories(storage, include_expired=True, now=now)
    result = PruneResult(
        pruned=[
            PrunedMemory(path=m.path, expires_at=m.expires_at)
            for m in listing.memories
            if m.is_expired and m.expires_at is not None
        ],
        dry_run=dry_run,
    )
    if dry_run or not result.pruned:
        return result

    for memory in result.pruned:
        storage.remove(memory.path)
    storage.reindex()
    logger.info("Pruned %d expired memories", len(result.pruned))
    return result


# ── Categories ────────────────────────────────────────────────


def create_category(storage: StorageAdapter, category: str) -> None:
    category = validate_category_path(category)
    if not category:
        raise InvalidPathError("Category path must not be empty.", path="", rule="segment_count")
    storage.ensure_category(category)
    logger.info("Created category %s", category)


def set_category_description(
    storage: StorageAdapter, category: str, description: str | None
) -> None:
    """Set (or clear, with None or "") the description shown in the parent index."""
    category = validate_category_path(category)
    if not category:
        raise InvalidPathError(
            "The store root has no parent index to describe it in.", path="", rule="segment_count"
        )
    description = (description or "").strip() or None
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValueError(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters.")
    if not storage.category_exists(category):
        raise CategoryNotFoundError(f"Category not found: {category}", path=category)

    parent = parent_category(category)
    parent_index = storage.load_index(parent) or CategoryIndex()
    entry = parent_index.find_subcategory(category)
    if entry is None:
        own = storage.load_index(category) or CategoryIndex()
        entry = IndexSubcategoryEntry(path=category, memory_count=own.total_count)
        parent_index.subcategories.append(entry)
    entry.description = description

    if entry.memory_count == 0 and description is None:
        parent_index.subcategories.remove(entry)
    parent_index.sort()
    storage.write_index(parent, parent_index)


def delete_category(storage: StorageAdapter, category: str) -> None:
    """Delete an empty category and drop it from its parent index."""
    category = validate_category_path(category)
    storage.delete_category(category)

    parent = parent_category(category)
    parent_index = storage.load_index(parent)
    if parent_index is None:
        return
    entry = parent_index.find_subcategory(category)
    if entry is not None:
        parent_index.subcategories.remove(entry)
        storage.write_index(parent, parent_index)
