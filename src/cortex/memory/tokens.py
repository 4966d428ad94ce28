"""Token estimation for index summaries."""

from __future__ import annotations

import math
from collections.abc import Callable

Tokenizer = Callable[[str], int]


def estimate_tokens(content: str) -> int:
    """Rough estimate: one token per four characters of trimmed text."""
    trimmed = content.strip()
    if not trimmed:
        return 0
    return max(1, math.ceil(len(trimmed) / 4))
