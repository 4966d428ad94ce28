"""Memory tools for automated callers.

These functions are designed to be exposed as tools to an agent (for
example over MCP). Each returns text; core errors are rendered as
``Error [CODE]: message`` instead of being raised.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from cortex.errors import CortexError
from cortex.memory import operations
from cortex.memory.record import serialize_record
from cortex.output import render_yaml

if TYPE_CHECKING:
    from cortex.memory.base import StorageAdapter

logger = logging.getLogger(__name__)


def _envelope(func: Callable[..., str]) -> Callable[..., str]:
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> str:
        try:
            return func(*args, **kwargs)
        except CortexError as e:
            logger.info("Tool %s failed: %s", func.__name__, e.code)
            return f"Error [{e.code}]: {e.message}"
        except ValueError as e:
            return f"Error [INVALID_INPUT]: {e}"

    return wrapper


def _timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def get_memory_tools(storage: StorageAdapter) -> dict[str, Callable[..., str]]:
    """Return a dict of tool_name -> callable for memory operations.

    These can be registered as MCP tools or called directly.
    """

    @_envelope
    def add_memory(
        path: str,
        content: str,
        tags: list[str] | None = None,
        expires_at: str | None = None,
        source: str = "mcp",
    ) -> str:
        """Create a new memory at category/.../slug."""
        operations.create_memory(
            storage, path, content, tags=tags, source=source, expires_at=_timestamp(expires_at)
        )
        return f"Memory created at {path}"

    @_envelope
    def get_memory(path: str) -> str:
        """Return the full memory file (metadata block + content)."""
        return serialize_record(operations.get_memory(storage, path))

    @_envelope
    def update_memory(
        path: str,
        content: str | None = None,
        tags: list[str] | None = None,
        expires_at: str | None = None,
        clear_expiry: bool = False,
    ) -> str:
        """Update content, tags or expiry of an existing memory."""
        operations.update_memory(
            storage,
            path,
            content=content,
            tags=tags,
            expires_at=_timestamp(expires_at),
            clear_expiry=clear_expiry,
        )
        return f"Memory updated at {path}"

    @_envelope
    def remove_memory(path: str) -> str:
        operations.remove_memory(storage, path)
        return f"Memory removed at {path}"

    @_envelope
    def move_memory(from_path: str, to_path: str) -> str:
        """Move a memory. The destination category must exist."""
        operations.move_memory(storage, from_path, to_path)
        return f"Memory moved from {from_path} to {to_path}"

    @_envelope
    def list_memories(category: str = "", include_expired: bool = False) -> str:
        """List memories of a category (default: whole store) as YAML."""
        return render_yaml(
            operations.list_memories(storage, category, include_expired=include_expired)
        )

    @_envelope
    def prune_memories(dry_run: bool = False) -> str:
        """Delete expired memories (or only report them with dry_run)."""
        return render_yaml(operations.prune_expired(storage, dry_run=dry_run))

    @_envelope
    def reindex_store() -> str:
        """Rebuild every category index from the files on disk."""
        return render_yaml(storage.reindex())

    @_envelope
    def create_category(path: str) -> str:
        operations.create_category(storage, path)
        return f"Category created at {path}"

    @_envelope
    def set_category_description(path: str, description: str | None = None) -> str:
        """Set the category description; empty clears it."""
        operations.set_category_description(storage, path, description)
        return f"Description updated for {path}"

    @_envelope
    def delete_category(path: str) -> str:
        """Delete an empty category."""
        operations.delete_category(storage, path)
        return f"Category deleted at {path}"

    return {
        "add_memory": add_memory,
        "get_memory": get_memory,
        "update_memory": update_memory,
        "remove_memory": remove_memory,
        "move_memory": move_memory,
        "list_memories": list_memories,
        "prune_memories": prune_memories,
        "reindex_store": reindex_store,
        "create_category": create_category,
        "set_category_description": set_category_description,
        "delete_category": delete_category,
    }
