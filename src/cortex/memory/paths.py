"""Memory path validation and filename normalization.

Two modes:
- strict (``validate_strict``): used for every caller-supplied path. Rejects
  anything that is not already lowercase kebab-case.
- lenient (``normalize_lenient``): used only by reindex when turning real
  filenames into slugs. Never raises; an empty result means "unindexable".
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from cortex.errors import InvalidPathError

SEGMENT_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

# Basename of every category index file; never usable as a record slug.
INDEX_NAME = "index"

_INVALID_RUN = re.compile(r"[^a-z0-9]+")


@dataclass(frozen=True)
class MemoryPath:
    """Canonical ``category/.../slug`` address of a record."""

    categories: tuple[str, ...]
    slug: str

    @classmethod
    def parse(cls, raw: str | MemoryPath) -> MemoryPath:
        if isinstance(raw, MemoryPath):
            return raw
        return validate_strict(raw)

    @property
    def category(self) -> str:
        """Category path as a string ("a/b")."""
        return "/".join(self.categories)

    @property
    def segments(self) -> tuple[str, ...]:
        return (*self.categories, self.slug)

    def __str__(self) -> str:
        return "/".join(self.segments)


def _split(raw: str) -> list[str]:
    return [segment for segment in raw.split("/") if segment]


def _check_segment(segment: str, raw: str) -> None:
    if not SEGMENT_PATTERN.match(segment):
        raise InvalidPathError(
            f"Invalid path segment '{segment}' in '{raw}': segments must be lowercase "
            "kebab-case (a-z, 0-9 and single hyphens; no uppercase, underscores or spaces).",
            path=raw,
            rule="charset",
        )


def validate_strict(raw: str) -> MemoryPath:
    """Validate a raw ``category/.../slug`` string.

    Repeated separators collapse; at least two segments must remain and every
    segment must already be lowercase kebab-case.
    """
    segments = _split(raw)
    if len(segments) < 2:
        raise InvalidPathError(
            f"Memory path '{raw}' must include at least two segments (category/slug).",
            path=raw,
            rule="segment_count",
        )
    for segment in segments:
        _check_segment(segment, raw)
    return MemoryPath(categories=tuple(segments[:-1]), slug=segments[-1])


def validate_category_path(raw: str) -> str:
    """Validate a category path. The empty string is the store root."""
    segments = _split(raw)
    for segment in segments:
        _check_segment(segment, raw)
    return "/".join(segments)


def parent_category(category: str) -> str:
    """Parent of a non-root category ("a/b" -> "a", "a" -> "")."""
    return category.rpartition("/")[0]


def ancestors(category: str) -> list[str]:
    """All proper prefixes of a category, root first ("a/b/c" -> ["", "a", "a/b"])."""
    segments = category.split("/") if category else []
    return ["/".join(segments[:i]) for i in range(len(segments))]


def normalize_lenient(raw_name: str) -> str:
    """Turn a real filename (without extension) into a slug.

    Lowercases, collapses runs of whitespace, underscores and any other
    invalid characters into a single hyphen, strips edge hyphens.
    """
    return _INVALID_RUN.sub("-", raw_name.lower()).strip("-")
