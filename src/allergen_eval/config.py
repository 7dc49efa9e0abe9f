"""
Evaluation configuration.

Loaded from configs/evaluation.yaml (yaml.safe_load) into a dataclass tree.
A missing file yields defaults; unknown keys and out-of-range values raise
ConfigError.
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .safety import DEFAULT_ABSTENTION_ACCURACY
from .scoring import ScoringWeights

DEFAULT_CONFIG_PATH = "configs/evaluation.yaml"


class ConfigError(ValueError):
    """Invalid evaluation configuration."""


@dataclass
class SafetyConfig:
    abstention_default: float = DEFAULT_ABSTENTION_ACCURACY


@dataclass
class ReportConfig:
    max_workers: int = 1  # >1 evaluates models in a thread pool


@dataclass
class DataConfig:
    food_workbook: str = "data/foodpreprocessed.xlsx"
    record_dir: str = "data/predictions"
    output_dir: str = "artifacts/reports"
    n_sets: int = 20


@dataclass
class InferenceConfig:
    base_url: str = "http://localhost:8080/v1"
    api_key: str = "not-needed"
    model: str = "qwen2.5-1.5b-instruct-Q4_K_M.gguf"
    temperature: float = 0.0
    max_tokens: int = 64
    timeout: float = 120.0


@dataclass
class EvalConfig:
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    data: DataConfig = field(default_factory=DataConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_SECTIONS = {
    'scoring': ScoringWeights,
    'safety': SafetyConfig,
    'report': ReportConfig,
    'data': DataConfig,
    'inference': InferenceConfig,
}


def _build_section(name: str, cls, raw: Any):
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a mapping, got {type(raw).__name__}")
    known = {f.name: f for f in fields(cls)}
    unknown = set(raw) - set(known)
    if unknown:
        raise ConfigError(f"[{name}] unknown keys: {', '.join(sorted(unknown))}")
    values = {}
    for key, value in raw.items():
        default = getattr(cls(), key)
        try:
            values[key] = type(default)(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"[{name}] {key}: {e}") from e
    return cls(**values)


def validate_config(config: EvalConfig) -> EvalConfig:
    """Range checks; returns the config unchanged when valid."""
    for key, value in config.scoring.to_dict().items():
        if value < 0:
            raise ConfigError(f"[scoring] {key} must be >= 0, got {value}")
    if not 0.0 <= config.safety.abstention_default <= 100.0:
        raise ConfigError(
            f"[safety] abstention_default must be in [0, 100], got {config.safety.abstention_default}")
    if config.report.max_workers < 1:
        raise ConfigError(f"[report] max_workers must be >= 1, got {config.report.max_workers}")
    if config.data.n_sets < 1:
        raise ConfigError(f"[data] n_sets must be >= 1, got {config.data.n_sets}")
    if config.inference.max_tokens < 1:
        raise ConfigError(f"[inference] max_tokens must be >= 1, got {config.inference.max_tokens}")
    return config


def config_from_dict(raw: Optional[Dict[str, Any]]) -> EvalConfig:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"config root must be a mapping, got {type(raw).__name__}")
    unknown = set(raw) - set(_SECTIONS)
    if unknown:
        raise ConfigError(f"unknown sections: {', '.join(sorted(unknown))}")
    sections = {name: _build_section(name, cls, raw.get(name)) for name, cls in _SECTIONS.items()}
    return validate_config(EvalConfig(**sections))


def load_config(path: Optional[str] = DEFAULT_CONFIG_PATH) -> EvalConfig:
    """Load YAML config; defaults when the path is None or missing."""
    if path is None or not Path(path).exists():
        return EvalConfig()
    with open(path, 'r', encoding='utf-8') as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"cannot parse {path}: {e}") from e
    return config_from_dict(raw)
