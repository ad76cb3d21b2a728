from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure `import cfrec...` works when pytest uses importlib import mode.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from cfrec.data import RatingStore  # noqa: E402


@pytest.fixture
def tiny_train() -> RatingStore:
    """Train users A and B over items X, Y, Z."""
    return RatingStore.from_records(
        [
            ("A", "X", 5), ("A", "Y", 3), ("A", "Z", 4),
            ("B", "X", 3), ("B", "Y", 1), ("B", "Z", 2),
        ]
    )


@pytest.fixture
def synthetic_store() -> RatingStore:
    """Deterministic 40 users x 25 items store with ~60% density."""
    records = []
    for u in range(40):
        for i in range(25):
            if (u * 7 + i * 3) % 5 in (0, 1, 3):
                records.append((u, i, 1 + (u + 2 * i) % 5))
    return RatingStore.from_records(records)
