"""YAML configuration for rating scale, evaluation splits and recommender methods."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError


class Method(str, Enum):
    POPULAR = "POPULAR"
    UBCF = "UBCF"
    IBCF = "IBCF"


class Normalization(str, Enum):
    NONE = "none"
    CENTER = "center"


class SimilarityMethod(str, Enum):
    PEARSON = "pearson"
    COSINE = "cosine"


class SplitScheme(str, Enum):
    SPLIT = "split"
    CROSS_VALIDATION = "cross-validation"


def _parse_enum(enum_cls: type[Enum], value: Any, name: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip()
    for member in enum_cls:
        if member.value.lower() == text.lower():
            return member
    allowed = [m.value for m in enum_cls]
    raise ConfigError(f"{name} must be one of {allowed}, got {value!r}")


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")
    if isinstance(value, float) and (not math.isfinite(value) or not value.is_integer()):
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")
    if int(value) <= 0:
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")
    return int(value)


@dataclass(frozen=True)
class RatingScaleConfig:
    min: float = 1.0
    max: float = 5.0

    def __post_init__(self) -> None:
        lo, hi = float(self.min), float(self.max)
        if not (math.isfinite(lo) and math.isfinite(hi)) or lo >= hi:
            raise ConfigError(f"rating_scale needs finite min < max, got min={self.min!r} max={self.max!r}")


@dataclass(frozen=True)
class SplitConfig:
    train_proportion: float = 0.9
    given: int = 10
    folds: int = 1
    seed: int = 42
    scheme: SplitScheme = SplitScheme.SPLIT

    def __post_init__(self) -> None:
        try:
            p = float(self.train_proportion)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"train_proportion must be a float, got {self.train_proportion!r}") from exc
        if not (0.0 < p < 1.0):
            raise ConfigError(f"train_proportion must lie in (0, 1), got {self.train_proportion!r}")
        object.__setattr__(self, "train_proportion", p)
        object.__setattr__(self, "given", _positive_int(self.given, "given"))
        object.__setattr__(self, "folds", _positive_int(self.folds, "folds"))
        if isinstance(self.seed, bool) or not isinstance(self.seed, int):
            raise ConfigError(f"seed must be an integer, got {self.seed!r}")
        scheme = _parse_enum(SplitScheme, self.scheme, "scheme")
        object.__setattr__(self, "scheme", scheme)
        if scheme is SplitScheme.CROSS_VALIDATION and self.folds < 2:
            raise ConfigError("cross-validation needs folds >= 2")


@dataclass(frozen=True)
class RecommenderConfig:
    method: Method = Method.UBCF
    normalize: Normalization = Normalization.CENTER
    similarity_method: SimilarityMethod = SimilarityMethod.PEARSON
    k: int = 25
    name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", _parse_enum(Method, self.method, "method"))
        object.__setattr__(self, "normalize", _parse_enum(Normalization, self.normalize, "normalize"))
        object.__setattr__(
            self,
            "similarity_method",
            _parse_enum(SimilarityMethod, self.similarity_method, "similarity_method"),
        )
        object.__setattr__(self, "k", _positive_int(self.k, "k"))

    @property
    def label(self) -> str:
        if self.name:
            return str(self.name)
        if self.method is Method.POPULAR:
            return self.method.value
        return f"{self.method.value}({self.similarity_method.value},k={self.k})"

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "RecommenderConfig":
        if not isinstance(raw, dict):
            raise ConfigError(f"method entry must be a mapping, got {type(raw)}")
        raw = dict(raw)
        if "nn" in raw:
            if "k" in raw and raw["k"] != raw["nn"]:
                raise ConfigError(f"k and nn disagree: k={raw['k']!r} nn={raw['nn']!r}")
            raw["k"] = raw.pop("nn")
        known = {"method", "normalize", "similarity_method", "k", "name"}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ConfigError(f"unknown method options: {unknown}")
        return cls(**raw)


@dataclass(frozen=True)
class ExperimentConfig:
    rating_scale: RatingScaleConfig = field(default_factory=RatingScaleConfig)
    evaluation: SplitConfig = field(default_factory=SplitConfig)
    methods: tuple[RecommenderConfig, ...] = ()
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> "ExperimentConfig":
        def _section(name: str) -> dict[str, Any]:
            sec = obj.get(name, {})
            if sec is None:
                return {}
            if not isinstance(sec, dict):
                raise ConfigError(f"config section {name!r} must be a mapping")
            return sec

        try:
            scale = RatingScaleConfig(**_section("rating_scale"))
            evaluation = SplitConfig(**_section("evaluation"))
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc

        methods_raw = obj.get("methods") or []
        if not isinstance(methods_raw, list):
            raise ConfigError("config 'methods' must be a list")
        methods = tuple(RecommenderConfig.from_dict(m) for m in methods_raw)

        log_level = str(_section("logging").get("level", "INFO")).upper()
        return cls(rating_scale=scale, evaluation=evaluation, methods=methods, log_level=log_level)


def get_repo_root(start: Path | None = None) -> Path:
    """Return repo root by searching upwards for `config.yaml` or `.git`."""
    start = (start or Path.cwd()).resolve()
    if start.is_file():
        start = start.parent

    for candidate in (start, *start.parents):
        if (candidate / "config.yaml").is_file() or (candidate / ".git").exists():
            return candidate

    # Fallback: search upwards from this file (useful if called from elsewhere).
    here = Path(__file__).resolve().parent
    for candidate in (here, *here.parents):
        if (candidate / "config.yaml").is_file() or (candidate / ".git").exists():
            return candidate

    raise FileNotFoundError("Could not locate repo root (expected `config.yaml` or `.git`).")


def load_config(path: Path | str | None = None) -> ExperimentConfig:
    """Load and validate an experiment config from YAML."""
    if path is None:
        config_path = get_repo_root() / "config.yaml"
    else:
        config_path = Path(path)
        if not config_path.is_absolute() and not config_path.exists():
            config_path = (get_repo_root() / config_path).resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")
    obj = yaml.safe_load(config_path.read_text())
    if not isinstance(obj, dict):
        raise ConfigError(f"Expected YAML mapping at {config_path}, got {type(obj)}")
    return ExperimentConfig.from_dict(obj)
