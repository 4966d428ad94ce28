"""Incremental index maintenance.

After a single record is written or removed, patch its parent index and walk
up the category chain refreshing each ancestor's ``subcategories`` entry with
the child's aggregate record count. No filesystem scan is done; anything this
misses (crashed writes, concurrent writers, hand-edited files) is repaired by
a full reindex.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cortex.errors import StorageError
from cortex.memory.index import CategoryIndex, IndexMemoryEntry, IndexSubcategoryEntry
from cortex.memory.paths import MemoryPath, parent_category

if TYPE_CHECKING:
    from cortex.memory.record import MemoryRecord
    from cortex.memory.store import FilesystemStorage

logger = logging.getLogger(__name__)


def _load(storage: FilesystemStorage, category: str, create_when_missing: bool) -> CategoryIndex:
    index = storage.load_index(category)
    if index is not None:
        return index
    if not create_when_missing:
        raise StorageError(
            f"Category index not found for '{category or '/'}'.", path=category
        )
    return CategoryIndex()


def _refresh_ancestors(
    storage: FilesystemStorage,
    category: str,
    child_index: CategoryIndex,
    *,
    create_when_missing: bool,
) -> None:
    """Propagate aggregate counts from ``category`` up to the root index."""
    child = category
    while child:
        parent = parent_category(child)
        parent_index = _load(storage, parent, create_when_missing)
        count = child_index.total_count
        entry = parent_index.find_subcategory(child)

        if entry is None:
            if count > 0:
                parent_index.subcategories.append(IndexSubcategoryEntry(path=child, memory_count=count))
        elif count == 0 and not entry.description:
            parent_index.subcategories.remove(entry)
        else:
            entry.memory_count = count

        parent_index.sort()
        storage.write_index(parent, parent_index)
        child, child_index = parent, parent_index


def update_after_write(
    storage: FilesystemStorage,
    path: MemoryPath,
    record: MemoryRecord,
    *,
    create_when_missing: bool = True,
) -> None:
    """Insert or replace the record's entry and refresh ancestor counts."""
    category = path.category
    index = _load(storage, category, create_when_missing)

    entry = IndexMemoryEntry(path=str(path), token_estimate=storage.estimate_tokens(record.content))
    index.memories = [m for m in index.memories if m.path != entry.path]
    index.memories.append(entry)
    index.sort()
    storage.write_index(category, index)

    _refresh_ancestors(storage, category, index, create_when_missing=create_when_missing)
    logger.debug("Index updated for %s", path)


def update_after_remove(storage: FilesystemStorage, path: MemoryPath) -> None:
    """Drop the record's entry and refresh ancestor counts.

    Categories whose subtree becomes empty lose their entry in the parent
    unless they carry a description.
    """
    category = path.category
    index = storage.load_index(category)
    if index is None:
        return

    index.memories = [m for m in index.memories if m.path != str(path)]
    storage.write_index(category, index)

    _refresh_ancestors(storage, category, index, create_when_missing=True)
    logger.debug("Index entry removed for %s", path)
