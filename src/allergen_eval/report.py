"""
Report orchestration: per-model evaluation, pooled totals, ranking.

build_report() is a pure function of its input batch. Per-model work may fan
out to a thread pool; all futures are joined before ranking.
"""

from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import EvalConfig
from .confusion import ConfusionCounts
from .efficiency import EfficiencyMetrics, compute_efficiency_metrics
from .metrics import QualityMetrics, compute_quality_metrics
from .safety import SafetyMetrics, compute_safety_metrics
from .scoring import (
    ModelScore,
    build_recommendation_reason,
    display_name,
    rank_models,
    score_model,
)
from .types import PredictionRecord

ALL_MODELS = "All Models"


@dataclass
class ModelReport:
    """Quality, safety and efficiency of one model (or the pooled batch)."""
    model_name: str
    sample_count: int
    quality: QualityMetrics
    safety: SafetyMetrics
    efficiency: EfficiencyMetrics
    score: Optional[ModelScore] = None

    @property
    def short_name(self) -> str:
        return display_name(self.model_name)

    @property
    def counts(self) -> ConfusionCounts:
        return self.quality.counts

    @property
    def per_allergen_f1(self) -> Dict[str, float]:
        return self.quality.per_allergen_f1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model_name': self.model_name,
            'short_name': self.short_name,
            'sample_count': self.sample_count,
            'counts': self.counts.to_dict(),
            'quality': self.quality.to_dict(),
            'safety': self.safety.to_dict(),
            'efficiency': self.efficiency.to_dict(),
            'score': self.score.to_dict() if self.score else None,
        }


@dataclass
class EvaluationReport:
    """Per-model reports, pooled totals, ranking and recommendation."""
    models: "OrderedDict[str, ModelReport]" = field(default_factory=OrderedDict)
    overall: Optional[ModelReport] = None
    ranking: List[ModelScore] = field(default_factory=list)
    recommendation: Optional[ModelScore] = None
    reason: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.models

    def to_dict(self) -> Dict[str, Any]:
        return {
            'models': {name: r.to_dict() for name, r in self.models.items()},
            'overall': self.overall.to_dict() if self.overall else None,
            'ranking': [s.to_dict() for s in self.ranking],
            'recommendation': self.recommendation.to_dict() if self.recommendation else None,
            'reason': self.reason,
        }


def evaluate_model(
    model_name: str,
    records: Sequence[PredictionRecord],
    config: Optional[EvalConfig] = None,
) -> ModelReport:
    """Evaluate one model's records; scored only when it has samples."""
    config = config or EvalConfig()
    quality = compute_quality_metrics(records)
    safety = compute_safety_metrics(records, config.safety.abstention_default)
    n = len(records)
    score = score_model(model_name, quality, safety, n, config.scoring) if n > 0 else None
    return ModelReport(
        model_name=model_name,
        sample_count=n,
        quality=quality,
        safety=safety,
        efficiency=compute_efficiency_metrics(records),
        score=score,
    )


def select_records(
    records_by_model: Mapping[str, Sequence[PredictionRecord]],
    model_filter: Optional[str] = None,
) -> "OrderedDict[str, List[PredictionRecord]]":
    """
    Restrict the batch to one model.

    The filter matches either the raw model id or its display name;
    None or "All Models" keeps everything.
    """
    if model_filter is None or model_filter == ALL_MODELS:
        return OrderedDict((k, list(v)) for k, v in records_by_model.items())
    return OrderedDict(
        (k, list(v)) for k, v in records_by_model.items()
        if k == model_filter or display_name(k) == model_filter
    )


def build_report(
    records_by_model: Mapping[str, Sequence[PredictionRecord]],
    config: Optional[EvalConfig] = None,
    max_workers: Optional[int] = None,
) -> EvaluationReport:
    """
    Evaluate every model, pool all records, rank scored models.

    Args:
        records_by_model: Raw model id -> its records.
        config: Scoring weights and abstention default.
        max_workers: Thread pool size; defaults to config.report.max_workers.

    Returns:
        EvaluationReport. Empty input gives an empty report with no
        recommendation.
    """
    config = config or EvalConfig()
    if not records_by_model:
        return EvaluationReport()

    workers = max_workers if max_workers is not None else config.report.max_workers
    names = list(records_by_model)

    if workers > 1 and len(names) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(evaluate_model, n, records_by_model[n], config) for n in names]
            reports = [f.result() for f in futures]
    else:
        reports = [evaluate_model(n, records_by_model[n], config) for n in names]

    models = OrderedDict(zip(names, reports))

    pooled = [r for name in names for r in records_by_model[name]]
    overall = evaluate_model(ALL_MODELS, pooled, config)
    overall.score = None

    ranking = rank_models([r.score for r in reports if r.score is not None])
    return EvaluationReport(
        models=models,
        overall=overall,
        ranking=ranking,
        recommendation=ranking[0] if ranking else None,
        reason=build_recommendation_reason(ranking),
    )
