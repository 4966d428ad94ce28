"""Entry point: python -m cortex [--store NAME] <command>

- init / add / show / update / remove / move / list   Memory commands
- reindex                                            Rebuild every category index
- prune [--dry-run]                                  Delete expired memories
- category create|describe|delete                    Category commands

Exit code 0 on success; on failure a {"code", "message"} JSON object is
written to stderr and the exit code is 1.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime

from cortex.config import CortexConfig, load_config
from cortex.errors import CortexError
from cortex.memory import operations
from cortex.memory.record import serialize_record
from cortex.memory.store import FilesystemStorage
from cortex.output import render_yaml


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def _timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid ISO 8601 timestamp: {value}") from None


def _content(args: argparse.Namespace) -> str | None:
    if args.content is not None:
        return args.content
    if args.file is not None:
        return args.file.read()
    return None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cortex", description="Hierarchical memory store")
    parser.add_argument("--store", help="store name (default: configured default store)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="create the store root and root index")

    add = sub.add_parser("add", help="create a memory")
    add.add_argument("path")
    add.add_argument("--content", "-c")
    add.add_argument("--file", "-f", type=argparse.FileType("r", encoding="utf-8"))
    add.add_argument("--tag", "-t", action="append", dest="tags")
    add.add_argument("--source", default="cli")
    add.add_argument("--expires-at", type=_timestamp)

    show = sub.add_parser("show", help="print a memory file")
    show.add_argument("path")

    update = sub.add_parser("update", help="update a memory")
    update.add_argument("path")
    update.add_argument("--content", "-c")
    update.add_argument("--file", "-f", type=argparse.FileType("r", encoding="utf-8"))
    update.add_argument("--tag", "-t", action="append", dest="tags")
    expiry = update.add_mutually_exclusive_group()
    expiry.add_argument("--expires-at", type=_timestamp)
    expiry.add_argument("--no-expiry", action="store_true")

    remove = sub.add_parser("remove", help="delete a memory")
    remove.add_argument("path")

    move = sub.add_parser("move", help="move a memory to an existing category")
    move.add_argument("src")
    move.add_argument("dst")

    listing = sub.add_parser("list", help="list memories")
    listing.add_argument("category", nargs="?", default="")
    listing.add_argument("--include-expired", action="store_true")

    sub.add_parser("reindex", help="rebuild all category indexes")

    prune = sub.add_parser("prune", help="delete expired memories")
    prune.add_argument("--dry-run", action="store_true")

    category = sub.add_parser("category", help="category commands")
    category_sub = category.add_subparsers(dest="category_command", required=True)
    category_sub.add_parser("create").add_argument("path")
    describe = category_sub.add_parser("describe")
    describe.add_argument("path")
    describe.add_argument("description", nargs="?", default=None)
    category_sub.add_parser("delete").add_argument("path")

    return parser


def _dispatch(storage: FilesystemStorage, args: argparse.Namespace) -> str | None:
    cmd = args.command
    if cmd == "init":
        storage.initialize()
        return f"Initialized store at {storage.root}"
    if cmd == "add":
        operations.create_memory(
            storage,
            args.path,
            _content(args) or "",
            tags=args.tags,
            source=args.source,
            expires_at=args.expires_at,
        )
        return f"Added {args.path}"
    if cmd == "show":
        return serialize_record(operations.get_memory(storage, args.path))
    if cmd == "update":
        operations.update_memory(
            storage,
            args.path,
            content=_content(args),
            tags=args.tags,
            expires_at=args.expires_at,
            clear_expiry=args.no_expiry,
        )
        return f"Updated {args.path}"
    if cmd == "remove":
        operations.remove_memory(storage, args.path)
        return f"Removed {args.path}"
    if cmd == "move":
        operations.move_memory(storage, args.src, args.dst)
        return f"Moved {args.src} -> {args.dst}"
    if cmd == "list":
        return render_yaml(
            operations.list_memories(storage, args.category, include_expired=args.include_expired)
        )
    if cmd == "reindex":
        return render_yaml(storage.reindex())
    if cmd == "prune":
        return render_yaml(operations.prune_expired(storage, dry_run=args.dry_run))
    if cmd == "category":
        if args.category_command == "create":
            operations.create_category(storage, args.path)
            return f"Created category {args.path}"
        if args.category_command == "describe":
            operations.set_category_description(storage, args.path, args.description)
            return f"Updated description of {args.path}"
        operations.delete_category(storage, args.path)
        return f"Deleted category {args.path}"
    return None


def run(argv: list[str] | None = None, config: CortexConfig | None = None) -> int:
    """Parse arguments, execute one command, return the exit code."""
    args = _build_parser().parse_args(argv)
    config = config or load_config()
    _setup_logging(config.log_level)

    try:
        storage = FilesystemStorage(
            config.resolve_store(args.store),
            memory_extension=config.memory_extension,
            index_extension=config.index_extension,
        )
        output = _dispatch(storage, args)
    except CortexError as e:
        print(json.dumps(e.to_dict()), file=sys.stderr)
        return 1
    except (KeyError, ValueError) as e:
        print(json.dumps({"code": "INVALID_INPUT", "message": str(e).strip("'")}), file=sys.stderr)
        return 1

    if output:
        print(output.rstrip("\n"))
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
