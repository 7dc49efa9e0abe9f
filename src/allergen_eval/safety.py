"""
Safety-oriented metrics: missed allergens, over-prediction, hallucination, abstention.

Computed from ingredient text and the normalized sets, not from confusion
counts alone.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .lexicon import is_justified
from .types import PredictionRecord
from .vocab import AllergenSet, format_allergens

# Abstention accuracy when no sample has an empty ground truth
DEFAULT_ABSTENTION_ACCURACY = 100.0


@dataclass(frozen=True)
class SampleSafety:
    """Safety signals for one sample."""
    missed: AllergenSet = frozenset()
    over_predicted: AllergenSet = frozenset()
    hallucinated: AllergenSet = frozenset()
    is_correct_abstention: Optional[bool] = None  # None: ground truth not empty

    @property
    def has_missed(self) -> bool:
        return bool(self.missed)

    @property
    def has_over_prediction(self) -> bool:
        return bool(self.over_predicted)

    @property
    def has_hallucination(self) -> bool:
        return bool(self.hallucinated)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'missed': _listed(self.missed),
            'over_predicted': _listed(self.over_predicted),
            'hallucinated': _listed(self.hallucinated),
            'is_correct_abstention': self.is_correct_abstention,
        }


def _listed(allergens: AllergenSet) -> List[str]:
    return [] if not allergens else format_allergens(allergens).split(", ")


def detect_sample_safety(
    ingredients: str,
    ground_truth: Iterable[str],
    predicted: Iterable[str],
) -> SampleSafety:
    """
    Per-sample safety check.

    An over-predicted allergen is a hallucination only when no ingredient
    keyword supports it.
    """
    truth = frozenset(ground_truth)
    pred = frozenset(predicted)
    over = pred - truth
    return SampleSafety(
        missed=truth - pred,
        over_predicted=over,
        hallucinated=frozenset(a for a in over if not is_justified(a, ingredients)),
        is_correct_abstention=(not pred) if not truth else None,
    )


def record_safety(record: PredictionRecord) -> SampleSafety:
    return detect_sample_safety(record.ingredients, record.ground_truth, record.predicted)


@dataclass
class SafetyMetrics:
    """Aggregated safety metrics (rates in percent)."""
    n_samples: int = 0
    hallucination_count: int = 0
    over_prediction_count: int = 0
    missed_count: int = 0  # samples with at least one miss
    missed_allergen_count: int = 0  # allergens missed, summed over samples
    correct_abstention_count: int = 0
    abstention_cases: int = 0

    hallucination_rate: float = 0.0
    over_prediction_rate: float = 0.0
    missed_allergen_rate: float = 0.0
    abstention_accuracy: float = DEFAULT_ABSTENTION_ACCURACY

    @property
    def safety_score(self) -> float:
        return 100.0 - self.hallucination_rate

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_samples': self.n_samples,
            'hallucination_count': self.hallucination_count,
            'over_prediction_count': self.over_prediction_count,
            'missed_count': self.missed_count,
            'missed_allergen_count': self.missed_allergen_count,
            'correct_abstention_count': self.correct_abstention_count,
            'abstention_cases': self.abstention_cases,
            'hallucination_rate': round(self.hallucination_rate, 2),
            'over_prediction_rate': round(self.over_prediction_rate, 2),
            'missed_allergen_rate': round(self.missed_allergen_rate, 2),
            'abstention_accuracy': round(self.abstention_accuracy, 2),
        }


def aggregate_safety(
    samples: Sequence[SampleSafety],
    abstention_default: float = DEFAULT_ABSTENTION_ACCURACY,
) -> SafetyMetrics:
    """Aggregate per-sample signals into counts and percentages."""
    n = len(samples)
    halluc = sum(1 for s in samples if s.has_hallucination)
    over = sum(1 for s in samples if s.has_over_prediction)
    missed = sum(1 for s in samples if s.has_missed)
    cases = [s.is_correct_abstention for s in samples if s.is_correct_abstention is not None]
    correct = sum(1 for c in cases if c)

    def pct(count: int) -> float:
        return count / n * 100.0 if n > 0 else 0.0

    return SafetyMetrics(
        n_samples=n,
        hallucination_count=halluc,
        over_prediction_count=over,
        missed_count=missed,
        missed_allergen_count=sum(len(s.missed) for s in samples),
        correct_abstention_count=correct,
        abstention_cases=len(cases),
        hallucination_rate=pct(halluc),
        over_prediction_rate=pct(over),
        missed_allergen_rate=pct(missed),
        abstention_accuracy=correct / len(cases) * 100.0 if cases else abstention_default,
    )


def compute_safety_metrics(
    records: Sequence[PredictionRecord],
    abstention_default: float = DEFAULT_ABSTENTION_ACCURACY,
) -> SafetyMetrics:
    return aggregate_safety([record_safety(r) for r in records], abstention_default)
