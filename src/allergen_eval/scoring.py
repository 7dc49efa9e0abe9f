"""
Model scoring and ranking.

OverallScore (0-100) weights recall 40, micro-F1 35 and anti-hallucination
safety 25:

    overall = recall * 40 + micro_f1 * 35 + (100 - hallucination_rate) * 0.25
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from .metrics import QualityMetrics
from .safety import SafetyMetrics

# Build-tag markers stripped for display (quantization, file format)
DISPLAY_NAME_MARKERS = ("-Q", ".gguf")

GOOD_SCORE = 70.0
FAIR_SCORE = 50.0


def display_name(model_name: str) -> str:
    """
    Human-readable model label: everything before the first build-tag marker.

    'qwen2.5-1.5b-instruct-Q4_K_M.gguf' -> 'qwen2.5-1.5b-instruct'.
    Labeling only; grouping always uses the raw identifier.
    """
    name = model_name
    for marker in DISPLAY_NAME_MARKERS:
        idx = name.find(marker)
        if idx >= 0:
            name = name[:idx]
    return name


@dataclass(frozen=True)
class ScoringWeights:
    recall: float = 40.0
    micro_f1: float = 35.0
    safety: float = 0.25  # per point of (100 - hallucination rate)

    def to_dict(self) -> Dict[str, float]:
        return {'recall': self.recall, 'micro_f1': self.micro_f1, 'safety': self.safety}


@dataclass(frozen=True)
class ModelScore:
    """Composite score of one model."""
    model_name: str
    short_name: str
    micro_f1: float
    recall: float
    safety_score: float  # 100 - hallucination rate
    overall_score: float
    sample_count: int

    @property
    def tier(self) -> str:
        if self.overall_score >= GOOD_SCORE:
            return 'good'
        if self.overall_score >= FAIR_SCORE:
            return 'fair'
        return 'poor'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model_name': self.model_name,
            'short_name': self.short_name,
            'micro_f1': round(self.micro_f1, 4),
            'recall': round(self.recall, 4),
            'safety_score': round(self.safety_score, 2),
            'overall_score': round(self.overall_score, 2),
            'sample_count': self.sample_count,
            'tier': self.tier,
        }


def score_model(
    model_name: str,
    quality: QualityMetrics,
    safety: SafetyMetrics,
    sample_count: int,
    weights: ScoringWeights = ScoringWeights(),
) -> ModelScore:
    safety_score = 100.0 - safety.hallucination_rate
    overall = (
        quality.recall * weights.recall
        + quality.micro_f1 * weights.micro_f1
        + safety_score * weights.safety
    )
    return ModelScore(
        model_name=model_name,
        short_name=display_name(model_name),
        micro_f1=quality.micro_f1,
        recall=quality.recall,
        safety_score=safety_score,
        overall_score=overall,
        sample_count=sample_count,
    )


def rank_models(scores: Sequence[ModelScore]) -> List[ModelScore]:
    """Descending overall score; equal scores ordered by model id ascending."""
    return sorted(scores, key=lambda s: (-s.overall_score, s.model_name))


def _leads(best: ModelScore, ranked: Sequence[ModelScore], attr: str) -> bool:
    value = getattr(best, attr)
    return all(value >= getattr(other, attr) for other in ranked)


def build_recommendation_reason(ranked: Sequence[ModelScore]) -> str:
    """
    Explain why the top-ranked model is recommended.

    Args:
        ranked: Output of rank_models(); the first entry is the recommendation.

    Returns:
        One clause per category the top model leads (ties count as leading),
        or a generic fallback, followed by its overall score.
    """
    if not ranked:
        return ""
    best = ranked[0]
    score_text = f"Score: {best.overall_score:.1f}/100"

    if len(ranked) == 1:
        return (f"Recall: {best.recall * 100:.1f}% | "
                f"F1: {best.micro_f1 * 100:.1f}% | {score_text}")

    reasons = []
    if _leads(best, ranked, 'recall'):
        reasons.append(f"highest recall ({best.recall * 100:.1f}%)")
    if _leads(best, ranked, 'micro_f1'):
        reasons.append(f"best F1 score ({best.micro_f1 * 100:.1f}%)")
    if _leads(best, ranked, 'safety_score'):
        reasons.append("lowest hallucination rate")

    if not reasons:
        reasons.append("Best overall balance across metrics")
    return f"{', '.join(reasons)} | {score_text}"
