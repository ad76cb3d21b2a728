"""Error taxonomy shared by the rating store, splitter, recommenders and evaluator."""

from __future__ import annotations


class CFRecError(Exception):
    """Base class for every error raised by this package."""


class DataError(CFRecError, ValueError):
    """A rating record is malformed (out-of-scale value, conflicting duplicate)."""


class ConfigError(CFRecError, ValueError):
    """A parameter is invalid; raised before any computation starts."""


class SplitError(CFRecError, ValueError):
    """A fold has no usable test user left after exclusions."""


class ColdStartWarning(UserWarning):
    """Predictions fell back to a mean because no usable neighbour existed."""
