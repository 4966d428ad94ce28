"""Category index model and YAML codec.

One ``index.yaml`` per category directory lists its direct records and its
direct subcategories:

    memories:
    - path: standards/typescript/style
      token_estimate: 120
    subcategories:
    - path: standards/typescript/testing
      memory_count: 3
      description: Test conventions
"""

from __future__ import annotations

from dataclasses import dataclass, field

import yaml

from cortex.errors import IndexParseError

MAX_DESCRIPTION_LENGTH = 500


@dataclass
class IndexMemoryEntry:
    path: str
    token_estimate: int | None = None
    summary: str | None = None


@dataclass
class IndexSubcategoryEntry:
    path: str
    memory_count: int = 0
    description: str | None = None


@dataclass
class CategoryIndex:
    """Direct children of one category. A rebuildable view, not the source of truth."""

    memories: list[IndexMemoryEntry] = field(default_factory=list)
    subcategories: list[IndexSubcategoryEntry] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        """Records in this category and all of its descendants."""
        return len(self.memories) + sum(sub.memory_count for sub in self.subcategories)

    def find_subcategory(self, path: str) -> IndexSubcategoryEntry | None:
        return next((sub for sub in self.subcategories if sub.path == path), None)

    def sort(self) -> None:
        self.memories.sort(key=lambda entry: entry.path)
        self.subcategories.sort(key=lambda entry: entry.path)


def _entry_error(message: str, field: str | None = None) -> IndexParseError:
    return IndexParseError(message, reason="INVALID_ENTRY", field=field)


def _read_path(item: object, section: str) -> str:
    if not isinstance(item, dict):
        raise _entry_error(f"Entries in '{section}' must be mappings.")
    path = item.get("path")
    if not isinstance(path, str) or not path.strip():
        raise _entry_error(f"Missing path in '{section}' entry.", field="path")
    return path.strip()


def _read_count(item: dict, key: str, required: bool) -> int | None:
    value = item.get(key)
    if value is None:
        if required:
            raise IndexParseError(f"Missing {key} value.", reason="MISSING_FIELD", field=key)
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise IndexParseError(f"Invalid {key} value: {value!r}.", reason="INVALID_NUMBER", field=key)
    return value


def _read_text(item: dict, key: str) -> str | None:
    value = item.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise _entry_error(f"Invalid {key} value.", field=key)
    return value


def parse_index(text: str) -> CategoryIndex:
    """Parse an index file. Raises :class:`IndexParseError`."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise IndexParseError("Failed to parse category index YAML.", reason="INVALID_FORMAT") from e
    if data is None:
        return CategoryIndex()
    if not isinstance(data, dict):
        raise IndexParseError("Category index must be a mapping.", reason="INVALID_FORMAT")

    sections = {}
    for section in ("memories", "subcategories"):
        items = data.get(section) or []
        if not isinstance(items, list):
            raise IndexParseError(f"'{section}' must be a list.", reason="INVALID_FORMAT")
        sections[section] = items

    memories = []
    for item in sections["memories"]:
        path = _read_path(item, "memories")
        memories.append(
            IndexMemoryEntry(
                path=path,
                token_estimate=_read_count(item, "token_estimate", required=False),
                summary=_read_text(item, "summary"),
            )
        )

    subcategories = []
    for item in sections["subcategories"]:
        path = _read_path(item, "subcategories")
        subcategories.append(
            IndexSubcategoryEntry(
                path=path,
                memory_count=_read_count(item, "memory_count", required=True),
                description=_read_text(item, "description"),
            )
        )

    return CategoryIndex(memories=memories, subcategories=subcategories)


def serialize_index(index: CategoryIndex) -> str:
    """Render an index. Output is deterministic for equal indexes."""
    memories = []
    for entry in sorted(index.memories, key=lambda e: e.path):
        item: dict = {"path": entry.path}
        if entry.token_estimate is not None:
            item["token_estimate"] = entry.token_estimate
        if entry.summary:
            item["summary"] = entry.summary
        memories.append(item)

    subcategories = []
    for entry in sorted(index.subcategories, key=lambda e: e.path):
        item = {"path": entry.path, "memory_count": entry.memory_count}
        if entry.description:
            item["description"] = entry.description
        subcategories.append(item)

    return yaml.safe_dump(
        {"memories": memories, "subcategories": subcategories},
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
