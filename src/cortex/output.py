"""YAML rendering for front-end output."""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import datetime

import yaml


def _plain(value):
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def render_yaml(value) -> str:
    """Dataclasses, dicts and lists as block YAML; None fields are omitted."""
    return yaml.safe_dump(_plain(value), sort_keys=False, allow_unicode=True)
