from __future__ import annotations

import logging

import numpy as np


_SEED_MASK = (1 << 64) - 1


def setup_logging(level: int | str = "INFO") -> None:
    """Configure stdlib logging with a consistent, project-wide format."""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        # Avoid duplicate handlers if called multiple times (e.g., notebooks + tests).
        root_logger.setLevel(level)
        return

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def seed_entropy(seed: int) -> int:
    """Any Python int as non-negative SeedSequence entropy (two's complement, 64 bits)."""
    return int(seed) & _SEED_MASK


def spawn_rngs(seed: int, n: int) -> list[np.random.Generator]:
    """Independent child generators, one per fold.

    Child `i` depends only on (seed, i), so fold 3 draws the same numbers whether
    or not folds 0..2 were generated first.
    """
    children = np.random.SeedSequence(seed_entropy(seed)).spawn(int(n))
    return [np.random.default_rng(c) for c in children]


def random_state(rng: np.random.Generator) -> int:
    """Draw an integer `random_state` for scikit-learn splitters from a Generator."""
    return int(rng.integers(0, 2**32 - 1))
