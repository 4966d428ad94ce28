"""Typed errors raised by the storage core.

Every error carries a stable ``code`` (one of the kinds below) and a
human-readable message. Front ends render them with :meth:`CortexError.to_dict`.
"""

from __future__ import annotations

INVALID_PATH = "INVALID_PATH"
MEMORY_NOT_FOUND = "MEMORY_NOT_FOUND"
DESTINATION_EXISTS = "DESTINATION_EXISTS"
MOVE_FAILED = "MOVE_FAILED"
PARSE_FAILED = "PARSE_FAILED"
STORAGE_ERROR = "STORAGE_ERROR"


class CortexError(Exception):
    """Base class for all store errors."""

    code = "CORTEX_ERROR"

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}

    def __str__(self) -> str:
        return self.message


class InvalidPathError(CortexError):
    """A path failed strict validation (segment count, character set or reserved name)."""

    code = INVALID_PATH

    def __init__(self, message: str, *, path: str | None = None, rule: str = "charset") -> None:
        super().__init__(message, path=path)
        self.rule = rule


class MemoryNotFoundError(CortexError):
    code = MEMORY_NOT_FOUND


class CategoryNotFoundError(MemoryNotFoundError):
    pass


class DestinationExistsError(CortexError):
    code = DESTINATION_EXISTS


class MoveFailedError(CortexError):
    code = MOVE_FAILED


class ParseError(CortexError):
    """A record or index file exists but its contents are corrupt."""

    code = PARSE_FAILED

    def __init__(
        self,
        message: str,
        *,
        reason: str,
        path: str | None = None,
        field: str | None = None,
        line: int | None = None,
    ) -> None:
        super().__init__(message, path=path)
        self.reason = reason
        self.field = field
        self.line = line


class IndexParseError(ParseError):
    pass


class StorageError(CortexError):
    """Underlying I/O failure. The ``OSError`` is chained as ``__cause__``."""

    code = STORAGE_ERROR


class CategoryNotEmptyError(StorageError):
    pass
