"""Memory record model and its file codec.

A record file is a YAML frontmatter block followed by the body verbatim:

    ---
    created_at: 2026-01-01 09:30:00+00:00
    updated_at: 2026-01-01 09:30:00+00:00
    tags: [typescript, style]
    source: user
    expires_at: 2026-06-01 00:00:00+00:00
    ---
    Body text...

``parse_record(serialize_record(r)) == r`` for every valid record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone

import yaml
from frontmatter.default_handlers import YAMLHandler

from cortex.errors import ParseError

_handler = YAMLHandler()
MARKER = _handler.START_DELIMITER


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MemoryRecord:
    """A stored memory: metadata plus a free-form body."""

    content: str
    created_at: datetime
    updated_at: datetime
    tags: list[str] = field(default_factory=list)
    source: str = "user"
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        self.created_at = _utc(self.created_at)
        self.updated_at = _utc(self.updated_at)
        if self.expires_at is not None:
            self.expires_at = _utc(self.expires_at)

    @classmethod
    def new(
        cls,
        content: str,
        *,
        tags: list[str] | None = None,
        source: str = "user",
        expires_at: datetime | None = None,
        now: datetime | None = None,
    ) -> MemoryRecord:
        ts = now or utcnow()
        return cls(
            content=content,
            created_at=ts,
            updated_at=ts,
            tags=list(tags or []),
            source=source,
            expires_at=expires_at,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        """True once ``expires_at <= now``. No expiry means never expired."""
        if self.expires_at is None:
            return False
        return self.expires_at <= _utc(now or utcnow())


# ── Parsing ───────────────────────────────────────────────────


def _parse_timestamp(meta: dict, key: str) -> datetime:
    value = meta[key]
    if isinstance(value, datetime):
        return _utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _utc(datetime.fromisoformat(text))
        except ValueError:
            pass
    raise ParseError(
        f"Invalid timestamp for {key}: {value!r}.", reason="INVALID_TIMESTAMP", field=key
    )


def _parse_tags(meta: dict) -> list[str]:
    tags = meta.get("tags")
    if tags is None:
        return []
    if not isinstance(tags, list) or not all(
        isinstance(tag, str) and tag.strip() for tag in tags
    ):
        raise ParseError(
            "Tags must be a list of non-empty strings.", reason="INVALID_TAGS", field="tags"
        )
    return [tag.strip() for tag in tags]


def parse_record(text: str) -> MemoryRecord:
    """Parse a record file. Raises :class:`ParseError` with a specific reason."""
    lines = text.replace("\r\n", "\n").split("\n")
    if lines[0].strip() != MARKER:
        raise ParseError(
            "Memory file must start with a frontmatter block.",
            reason="MISSING_FRONTMATTER",
            line=1,
        )

    end = next((i for i in range(1, len(lines)) if lines[i].strip() == MARKER), None)
    if end is None:
        raise ParseError(
            f"Memory file frontmatter must be closed with '{MARKER}'.",
            reason="UNTERMINATED_FRONTMATTER",
            line=len(lines),
        )

    try:
        meta = _handler.load("\n".join(lines[1:end]))
    except yaml.YAMLError as e:
        raise ParseError("Invalid YAML frontmatter.", reason="INVALID_FRONTMATTER") from e
    if not isinstance(meta, dict):
        raise ParseError("Frontmatter must be a mapping.", reason="INVALID_FRONTMATTER")

    for key in ("created_at", "updated_at", "source"):
        if meta.get(key) in (None, ""):
            raise ParseError(
                f"Missing required field: {key}.", reason="MISSING_FIELD", field=key
            )

    source = meta["source"]
    if not isinstance(source, str) or not source.strip():
        raise ParseError(
            "Source must be a non-empty string.", reason="INVALID_SOURCE", field="source"
        )

    return MemoryRecord(
        content="\n".join(lines[end + 1 :]),
        created_at=_parse_timestamp(meta, "created_at"),
        updated_at=_parse_timestamp(meta, "updated_at"),
        tags=_parse_tags(meta),
        source=source.strip(),
        expires_at=_parse_timestamp(meta, "expires_at") if meta.get("expires_at") else None,
    )


# ── Serialization ─────────────────────────────────────────────


def serialize_record(record: MemoryRecord) -> str:
    """Render a record as file text."""
    meta: dict = {
        "created_at": _utc(record.created_at),
        "updated_at": _utc(record.updated_at),
        "tags": list(record.tags),
        "source": record.source,
    }
    if record.expires_at is not None:
        meta["expires_at"] = _utc(record.expires_at)
    block = _handler.export(meta, default_flow_style=None, sort_keys=False)
    return f"{MARKER}\n{block}\n{MARKER}\n{record.content}"
