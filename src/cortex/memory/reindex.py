"""Full index rebuild from the record files on disk.

The walk uses an explicit stack and a visited set of resolved directories
(symlink cycles are visited once). Entries are sorted at every level, so the
walk order, the collision suffixes and the written index files are all
deterministic.

File and directory names are normalized leniently into slugs and record files
are renamed to match, so every indexed path loads through the strict path
mapping. Within one category, files whose names are already canonical keep
their slug; the others follow in relative-path order, and any file whose slug
is taken gets ``-2``, ``-3``, ... (skipping suffixes that are real slugs in
that category, and the reserved ``index`` name). After one run every name is
canonical, so reindexing an unchanged tree renames nothing, reports no
collisions and rewrites byte-identical index files.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from cortex.errors import ParseError, StorageError
from cortex.memory.base import ReindexResult
from cortex.memory.index import (
    CategoryIndex,
    IndexMemoryEntry,
    IndexSubcategoryEntry,
    parse_index,
)
from cortex.memory.paths import (
    INDEX_NAME,
    SEGMENT_PATTERN,
    ancestors,
    normalize_lenient,
    parent_category,
)
from cortex.memory.record import parse_record

if TYPE_CHECKING:
    from cortex.memory.store import FilesystemStorage

logger = logging.getLogger(__name__)


@dataclass
class _Scan:
    records: list[tuple[tuple[str, ...], Path]]
    index_files: list[Path]


@dataclass
class _Candidate:
    relative: str
    slug: str
    file: Path
    canonical: bool


Placements = dict[str, list[tuple[str, _Candidate]]]


def _list_dir(directory: Path) -> list[Path]:
    try:
        return sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as e:
        raise StorageError(f"Failed to read directory {directory}: {e}", path=str(directory)) from e


def _is_canonical(parts: tuple[str, ...]) -> bool:
    return all(SEGMENT_PATTERN.match(part) for part in parts)


def _scan(storage: FilesystemStorage) -> _Scan:
    """Collect record files and existing index files under the store root."""
    scan = _Scan(records=[], index_files=[])
    stack: list[tuple[Path, tuple[str, ...]]] = [(storage.root, ())]
    visited: set[Path] = set()

    while stack:
        directory, segments = stack.pop()
        real = directory.resolve()
        if real in visited:
            continue
        visited.add(real)

        subdirs = []
        for entry in _list_dir(directory):
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                subdirs.append((entry, (*segments, entry.name)))
            elif entry.is_file():
                if entry.name == storage.index_filename:
                    scan.index_files.append(entry)
                elif entry.suffix == storage.memory_extension:
                    scan.records.append((segments, entry))
        # Reversed so the stack pops children in name order.
        stack.extend(reversed(subdirs))

    return scan


def _read_descriptions(
    storage: FilesystemStorage, index_files: list[Path], warnings: list[str]
) -> dict[str, str]:
    """Subcategory descriptions from the current index files.

    Descriptions cannot be derived from record files, so they are carried over.
    """
    descriptions: dict[str, str] = {}
    for file in index_files:
        try:
            index = parse_index(file.read_text(encoding="utf-8"))
        except (OSError, ParseError) as e:
            relative = file.relative_to(storage.root).as_posix()
            warnings.append(f"Unreadable index {relative}: descriptions not carried over ({e})")
            continue
        for sub in index.subcategories:
            if sub.description:
                descriptions[sub.path] = sub.description
    return descriptions


def _group_candidates(
    storage: FilesystemStorage,
    records: list[tuple[tuple[str, ...], Path]],
    warnings: list[str],
) -> dict[str, list[_Candidate]]:
    groups: dict[str, list[_Candidate]] = defaultdict(list)
    for segments, file in records:
        relative = "/".join((*segments, file.name))
        if not segments:
            warnings.append(f"Skipped {relative}: memories must live inside a category")
            continue

        categories = [normalize_lenient(s) for s in segments]
        stem = file.name[: -len(storage.memory_extension)]
        slug = normalize_lenient(stem)
        if not slug or not all(categories):
            warnings.append(f"Skipped {relative}: name normalizes to an empty slug")
            continue

        groups["/".join(categories)].append(
            _Candidate(
                relative=relative,
                slug=slug,
                file=file,
                canonical=_is_canonical((*segments, stem)) and stem != INDEX_NAME,
            )
        )
    return groups


def _resolve_collisions(
    category: str, candidates: list[_Candidate], warnings: list[str]
) -> list[tuple[str, _Candidate]]:
    """Assign a unique slug to every candidate of one category."""
    candidates = sorted(candidates, key=lambda c: (not c.canonical, c.relative))
    real_slugs = {c.slug for c in candidates}
    used: set[str] = {INDEX_NAME}
    resolved = []

    for candidate in candidates:
        slug = candidate.slug
        if slug in used:
            suffix = 2
            while f"{slug}-{suffix}" in used or f"{slug}-{suffix}" in real_slugs:
                suffix += 1
            slug = f"{slug}-{suffix}"
            warnings.append(f"Collision: {candidate.relative} renamed to {category}/{slug}")
        used.add(slug)
        resolved.append((slug, candidate))
    return resolved


def _rename(src: Path, dst: Path) -> None:
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        src.replace(dst)
    except OSError as e:
        raise StorageError(f"Failed to rename {src} to {dst}: {e}", path=str(src)) from e


def _relocate(storage: FilesystemStorage, placements: Placements) -> set[Path]:
    """Rename record files to their resolved paths. Returns the directories moved out of."""
    moves = []
    for category, resolved in placements.items():
        directory = storage.root.joinpath(*category.split("/"))
        for slug, candidate in resolved:
            target = directory / f"{slug}{storage.memory_extension}"
            if candidate.file != target:
                moves.append((candidate, target))

    # Staged through hidden names: a target may still be another file's current name.
    staged = []
    for n, (candidate, target) in enumerate(moves):
        temp = candidate.file.with_name(f".reindex-{n}{storage.memory_extension}")
        _rename(candidate.file, temp)
        staged.append((candidate, temp, target))

    vacated: set[Path] = set()
    for candidate, temp, target in staged:
        _rename(temp, target)
        logger.info("Renamed %s to %s", candidate.relative, target.relative_to(storage.root))
        vacated.add(candidate.file.parent)
        candidate.file = target
    return vacated


def _token_estimate(
    storage: FilesystemStorage, candidate: _Candidate, warnings: list[str]
) -> int | None:
    try:
        text = candidate.file.read_text(encoding="utf-8")
    except OSError as e:
        raise StorageError(
            f"Failed to read memory file {candidate.file}: {e}", path=str(candidate.file)
        ) from e
    try:
        content = parse_record(text).content
    except ParseError as e:
        warnings.append(f"Unparseable: {candidate.relative} ({e.message})")
        content = text
    return storage.estimate_tokens(content)


def _build_indexes(
    storage: FilesystemStorage,
    placements: Placements,
    descriptions: dict[str, str],
    warnings: list[str],
) -> dict[str, CategoryIndex]:
    indexes: dict[str, CategoryIndex] = defaultdict(CategoryIndex)
    indexes[""] = CategoryIndex()

    for category, resolved in placements.items():
        for slug, candidate in resolved:
            indexes[category].memories.append(
                IndexMemoryEntry(
                    path=f"{category}/{slug}",
                    token_estimate=_token_estimate(storage, candidate, warnings),
                )
            )

    # Described categories survive without records while their directory exists.
    for category in descriptions:
        if _is_canonical(tuple(category.split("/"))) and storage.category_exists(category):
            indexes.setdefault(category, CategoryIndex())

    # Every ancestor of a populated category gets an index too.
    for category in list(indexes):
        for ancestor in ancestors(category):
            indexes.setdefault(ancestor, CategoryIndex())

    # Bottom-up so each subcategory count covers its whole subtree.
    for category in sorted(indexes, key=lambda c: (-c.count("/"), c)):
        if category:
            indexes[parent_category(category)].subcategories.append(
                IndexSubcategoryEntry(
                    path=category,
                    memory_count=indexes[category].total_count,
                    description=descriptions.get(category),
                )
            )

    for index in indexes.values():
        index.sort()
    return dict(indexes)


def _remove_stale(storage: FilesystemStorage, written: set[Path], existing: list[Path]) -> None:
    for file in existing:
        if file.resolve() in written:
            continue
        try:
            file.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            raise StorageError(f"Failed to remove stale index {file}: {e}", path=str(file)) from e
        logger.info("Removed stale index %s", file)


def _remove_vacated(storage: FilesystemStorage, vacated: set[Path]) -> None:
    """Remove non-canonical directories that renaming left empty, walking upward."""
    for directory in sorted(vacated, key=lambda p: len(p.parts), reverse=True):
        while directory != storage.root and directory.is_dir():
            if _is_canonical(directory.relative_to(storage.root).parts):
                break
            try:
                if any(directory.iterdir()):
                    break
                directory.rmdir()
            except OSError as e:
                raise StorageError(
                    f"Failed to remove directory {directory}: {e}", path=str(directory)
                ) from e
            logger.info("Removed empty directory %s", directory)
            directory = directory.parent


def reindex_store(storage: FilesystemStorage) -> ReindexResult:
    """Rebuild every category index of ``storage`` from its record files."""
    if not storage.root.is_dir():
        raise StorageError(f"Store root does not exist: {storage.root}", path=str(storage.root))

    warnings: list[str] = []
    scan = _scan(storage)
    descriptions = _read_descriptions(storage, scan.index_files, warnings)
    groups = _group_candidates(storage, scan.records, warnings)
    placements = {
        category: _resolve_collisions(category, groups[category], warnings)
        for category in sorted(groups)
    }
    vacated = _relocate(storage, placements)
    indexes = _build_indexes(storage, placements, descriptions, warnings)

    written: set[Path] = set()
    for category in sorted(indexes):
        storage.write_index(category, indexes[category])
        written.add((storage.root / category / storage.index_filename).resolve())
    _remove_stale(storage, written, scan.index_files)
    _remove_vacated(storage, vacated)

    for warning in warnings:
        logger.warning(warning)
    indexed = sum(len(index.memories) for index in indexes.values())
    logger.info("Reindexed %s: %d memories, %d warnings", storage.root, indexed, len(warnings))
    return ReindexResult(warnings=warnings, indexed=indexed)
