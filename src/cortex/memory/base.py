"""Storage adapter protocol.

New backends implement this protocol; the filesystem adapter in
``cortex.memory.store`` is the canonical implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from cortex.memory.index import CategoryIndex
from cortex.memory.paths import MemoryPath
from cortex.memory.record import MemoryRecord


@dataclass
class ReindexResult:
    """Outcome of a full rebuild. Warnings never abort the run."""

    warnings: list[str] = field(default_factory=list)
    indexed: int = 0


@runtime_checkable
class StorageAdapter(Protocol):
    """Record and index CRUD over one store root."""

    # Records

    def estimate_tokens(self, content: str) -> int | None: ...

    def load(self, path: str | MemoryPath) -> MemoryRecord | None: ...

    def save(
        self,
        path: str | MemoryPath,
        record: MemoryRecord,
        *,
        allow_index_create: bool = True,
        allow_index_update: bool = True,
    ) -> None: ...

    def add(self, path: str | MemoryPath, record: MemoryRecord) -> None: ...

    def remove(self, path: str | MemoryPath) -> None: ...

    def move(self, src: str | MemoryPath, dst: str | MemoryPath) -> None: ...

    # Indexes and categories

    def load_index(self, category: str) -> CategoryIndex | None: ...

    def write_index(self, category: str, index: CategoryIndex) -> None: ...

    def ensure_category(self, category: str) -> None: ...

    def category_exists(self, category: str) -> bool: ...

    def delete_category(self, category: str) -> None: ...

    def reindex(self) -> ReindexResult: ...
