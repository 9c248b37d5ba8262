"""Pipeline configuration assembled from YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

from deletemyex.harvest.batch import BatchConfig
from deletemyex.harvest.builder import BuilderConfig
from deletemyex.io_utils import load_yaml
from deletemyex.recognition.dedup import DedupConfig
from deletemyex.recognition.matcher import STRICT_BASE_THRESHOLD, MatchPolicy
from deletemyex.types import Quality

LOGGER = logging.getLogger("deletemyex.config")

DEFAULT_CONFIG_PATH = Path("configs/pipeline.yaml")

T = TypeVar("T")


@dataclass
class PipelineConfig:
    builder: BuilderConfig = field(default_factory=BuilderConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    match: MatchPolicy = field(default_factory=MatchPolicy)
    batch: BatchConfig = field(default_factory=BatchConfig)
    redetect_on_match: bool = True


def _coerce(section: str, cls: Type[T], raw: Optional[Dict[str, Any]]) -> T:
    if not raw:
        return cls()
    known = {f.name for f in fields(cls)}
    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            LOGGER.warning("Ignoring unknown %s config key %r", section, key)
            continue
        values[key] = value
    return cls(**values)


def _builder_from(raw: Optional[Dict[str, Any]]) -> BuilderConfig:
    config = _coerce("builder", BuilderConfig, raw)
    config.accepted_labels = frozenset(str(label).lower() for label in config.accepted_labels)
    return config


def _dedup_from(raw: Optional[Dict[str, Any]]) -> DedupConfig:
    raw = dict(raw or {})
    weights = raw.pop("quality_weights", None)
    config = _coerce("dedup", DedupConfig, raw)
    if weights:
        config.quality_weights = {Quality(key): float(value) for key, value in weights.items()}
    return config


def _match_from(raw: Optional[Dict[str, Any]]) -> MatchPolicy:
    raw = dict(raw or {})
    variant = raw.pop("variant", None)
    if variant == "strict" and "base_threshold" not in raw:
        raw["base_threshold"] = STRICT_BASE_THRESHOLD
    elif variant not in (None, "default", "strict"):
        raise ValueError(f"Unknown match variant {variant!r}; expected 'default' or 'strict'")
    return _coerce("match", MatchPolicy, raw)


def _batch_from(raw: Optional[Dict[str, Any]]) -> BatchConfig:
    config = _coerce("batch", BatchConfig, raw)
    config.det_size = tuple(int(v) for v in config.det_size)  # type: ignore[assignment]
    if config.providers is not None:
        config.providers = tuple(config.providers)
    return config


def config_from_dict(data: Dict[str, Any]) -> PipelineConfig:
    return PipelineConfig(
        builder=_builder_from(data.get("builder")),
        dedup=_dedup_from(data.get("dedup")),
        match=_match_from(data.get("match")),
        batch=_batch_from(data.get("batch")),
        redetect_on_match=bool(data.get("redetect_on_match", True)),
    )


def load_config(path: Optional[Path] = None) -> PipelineConfig:
    """Load pipeline config; a missing default file yields built-in defaults."""
    resolved = path or DEFAULT_CONFIG_PATH
    if not resolved.exists():
        if path is not None:
            raise FileNotFoundError(f"Config file not found: {resolved}")
        LOGGER.debug("No config at %s; using defaults", resolved)
        return PipelineConfig()
    return config_from_dict(load_yaml(resolved))
