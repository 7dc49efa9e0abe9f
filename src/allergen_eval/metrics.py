"""
Prediction quality metrics: precision, recall, micro/macro F1, EMR, Hamming loss, FNR.

Micro metrics come from the stored per-record confusion counts.
Macro-F1 is always the per-allergen definition: aggregate each allergen's
TP/FP/FN over all samples, compute its F1, then average over the 9 allergens.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Sequence

import numpy as np

from .confusion import ConfusionCounts, Outcome, PerAllergenCounts, accumulate
from .types import PredictionRecord
from .vocab import ALLERGENS, VOCABULARY_SIZE


@dataclass
class QualityMetrics:
    """Aggregated prediction quality for a batch of records."""
    n_samples: int = 0
    counts: ConfusionCounts = field(default_factory=ConfusionCounts)

    precision: float = 0.0
    recall: float = 0.0
    micro_f1: float = 0.0
    macro_f1: float = 0.0

    exact_matches: int = 0
    exact_match_ratio: float = 0.0  # percent

    hamming_loss: float = 0.0
    false_negative_rate: float = 0.0

    per_allergen_f1: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_samples': self.n_samples,
            'counts': self.counts.to_dict(),
            'precision': round(self.precision, 4),
            'recall': round(self.recall, 4),
            'micro_f1': round(self.micro_f1, 4),
            'macro_f1': round(self.macro_f1, 4),
            'exact_matches': self.exact_matches,
            'exact_match_ratio': round(self.exact_match_ratio, 2),
            'hamming_loss': round(self.hamming_loss, 4),
            'false_negative_rate': round(self.false_negative_rate, 4),
            'per_allergen_f1': {k: round(v, 4) for k, v in self.per_allergen_f1.items()},
        }


def _ratio(num: float, den: float) -> float:
    return num / den if den > 0 else 0.0


def precision(counts: ConfusionCounts) -> float:
    return _ratio(counts.tp, counts.tp + counts.fp)


def recall(counts: ConfusionCounts) -> float:
    return _ratio(counts.tp, counts.tp + counts.fn)


def micro_f1(counts: ConfusionCounts) -> float:
    return _ratio(2 * counts.tp, 2 * counts.tp + counts.fp + counts.fn)


def false_negative_rate(counts: ConfusionCounts) -> float:
    return _ratio(counts.fn, counts.tp + counts.fn)


def hamming_loss(counts: ConfusionCounts, n_samples: int) -> float:
    return _ratio(counts.fp + counts.fn, n_samples * VOCABULARY_SIZE)


def per_allergen_f1(per_allergen: PerAllergenCounts) -> np.ndarray:
    """F1 per allergen (length 9); 0 where precision + recall is 0."""
    table = per_allergen.table.astype(float)
    tp = table[:, Outcome.TP]
    fp = table[:, Outcome.FP]
    fn = table[:, Outcome.FN]

    p = np.divide(tp, tp + fp, out=np.zeros_like(tp), where=(tp + fp) > 0)
    r = np.divide(tp, tp + fn, out=np.zeros_like(tp), where=(tp + fn) > 0)
    return np.divide(2 * p * r, p + r, out=np.zeros_like(tp), where=(p + r) > 0)


def macro_f1(per_allergen: PerAllergenCounts) -> float:
    return float(np.mean(per_allergen_f1(per_allergen)))


def quality_from_counts(
    counts: ConfusionCounts,
    n_samples: int,
    exact_matches: int,
    per_allergen: PerAllergenCounts,
) -> QualityMetrics:
    """
    Derive all quality metrics from pre-aggregated inputs.

    Args:
        counts: Summed stored confusion counts.
        n_samples: Number of records summarized.
        exact_matches: Records whose predicted set equals ground truth.
        per_allergen: Per-allergen sub-totals (for macro-F1).
    """
    f1s = per_allergen_f1(per_allergen)
    return QualityMetrics(
        n_samples=n_samples,
        counts=counts,
        precision=precision(counts),
        recall=recall(counts),
        micro_f1=micro_f1(counts),
        macro_f1=float(np.mean(f1s)),
        exact_matches=exact_matches,
        exact_match_ratio=_ratio(exact_matches, n_samples) * 100.0,
        hamming_loss=hamming_loss(counts, n_samples),
        false_negative_rate=false_negative_rate(counts),
        per_allergen_f1={name: float(v) for name, v in zip(ALLERGENS, f1s)},
    )


def compute_quality_metrics(records: Sequence[PredictionRecord]) -> QualityMetrics:
    """Quality metrics for a batch; O(n * 9)."""
    counts = accumulate(r.counts for r in records)
    per_allergen = PerAllergenCounts.from_samples((r.ground_truth, r.predicted) for r in records)
    exact = sum(1 for r in records if r.is_exact_match)
    return quality_from_counts(counts, len(records), exact, per_allergen)


def record_quality(record: PredictionRecord) -> QualityMetrics:
    """Same definitions applied to a batch of one (per-row export)."""
    return compute_quality_metrics([record])
