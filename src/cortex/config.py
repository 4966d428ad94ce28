"""Configuration loading from environment variables and cortex.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_DATA_DIR = Path.home() / ".cortex" / "memory"
_CONFIG_FILENAME = "cortex.toml"

DEFAULT_STORE = "default"


@dataclass
class CortexConfig:
    """Top-level configuration, built once at the entry point."""

    data_dir: Path = _DEFAULT_DATA_DIR
    default_store: str = DEFAULT_STORE
    stores: dict[str, Path] = field(default_factory=dict)
    memory_extension: str = ".md"
    index_extension: str = ".yaml"
    log_level: str = "INFO"

    def resolve_store(self, name: str | None = None) -> Path:
        """Map a store name to its root directory.

        The default store falls back to ``data_dir`` when not registered.
        """
        name = name or self.default_store
        if name in self.stores:
            return self.stores[name]
        if name == self.default_store:
            return self.data_dir
        raise KeyError(f"Unknown store: {name}")


def load_config(config_path: Path | None = None) -> CortexConfig:
    """Load configuration from environment variables and optional cortex.toml.

    Priority: environment variables > cortex.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.cortex/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".cortex" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    storage_data = file_data.get("storage", {})
    stores = {
        name: Path(path).expanduser() for name, path in file_data.get("stores", {}).items()
    }

    return CortexConfig(
        data_dir=Path(
            os.getenv("CORTEX_DATA_DIR", file_data.get("data_dir", str(_DEFAULT_DATA_DIR)))
        ).expanduser(),
        default_store=os.getenv("CORTEX_STORE", file_data.get("default_store", DEFAULT_STORE)),
        stores=stores,
        memory_extension=storage_data.get("memory_extension", ".md"),
        index_extension=storage_data.get("index_extension", ".yaml"),
        log_level=os.getenv("CORTEX_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
