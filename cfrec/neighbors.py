from __future__ import annotations

import heapq
import math
from collections.abc import Hashable, Mapping

from .errors import ConfigError


def select_neighbors(
    entity: Hashable,
    similarities: Mapping[Hashable, float],
    k: int,
) -> list[tuple[Hashable, float]]:
    """Return up to `k` (neighbour, similarity) pairs, most similar first.

    The entity itself and NaN scores are skipped. Equal scores are ordered by
    ascending neighbour id. Fewer than `k` valid neighbours are returned as-is.
    """
    try:
        valid_k = not isinstance(k, bool) and int(k) == k and k > 0
    except (TypeError, ValueError, OverflowError) as exc:
        raise ConfigError(f"k must be a positive integer, got {k!r}") from exc
    if not valid_k:
        raise ConfigError(f"k must be a positive integer, got {k!r}")

    valid = ((other, float(s)) for other, s in similarities.items() if other != entity and not math.isnan(s))
    return heapq.nsmallest(int(k), valid, key=lambda pair: (-pair[1], pair[0]))
