"""
Confusion accumulation over the allergen vocabulary.

Per sample, each of the 9 allergens lands in exactly one of TP/FP/FN/TN.
Counts are summed field-wise, so partial totals (per dataset set, per model)
compose into whole-model totals in any order.
"""

from dataclasses import dataclass
from enum import IntEnum
from functools import reduce
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import numpy as np
from sklearn.metrics import multilabel_confusion_matrix
from sklearn.preprocessing import MultiLabelBinarizer

from .vocab import ALLERGENS, VOCABULARY, VOCABULARY_SIZE, Allergen


class Outcome(IntEnum):
    TP = 0
    FP = 1
    FN = 2
    TN = 3


@dataclass(frozen=True)
class ConfusionCounts:
    """Aggregate TP/FP/FN/TN counts."""
    tp: int = 0
    fp: int = 0
    fn: int = 0
    tn: int = 0

    def __add__(self, other: "ConfusionCounts") -> "ConfusionCounts":
        if not isinstance(other, ConfusionCounts):
            return NotImplemented
        return ConfusionCounts(
            tp=self.tp + other.tp,
            fp=self.fp + other.fp,
            fn=self.fn + other.fn,
            tn=self.tn + other.tn,
        )

    @classmethod
    def zero(cls) -> "ConfusionCounts":
        return cls()

    @property
    def total(self) -> int:
        return self.tp + self.fp + self.fn + self.tn

    def to_dict(self) -> Dict[str, int]:
        return {'tp': self.tp, 'fp': self.fp, 'fn': self.fn, 'tn': self.tn}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ConfusionCounts":
        return cls(
            tp=int(d.get('tp', 0) or 0),
            fp=int(d.get('fp', 0) or 0),
            fn=int(d.get('fn', 0) or 0),
            tn=int(d.get('tn', 0) or 0),
        )


def classify_sample(ground_truth: Iterable[str], predicted: Iterable[str]) -> Tuple[Outcome, ...]:
    """
    Label every vocabulary allergen for one sample.

    Returns:
        Tuple of 9 Outcomes, indexed by Allergen.
    """
    truth = set(ground_truth)
    pred = set(predicted)
    outcomes = []
    for name in ALLERGENS:
        in_truth = name in truth
        in_pred = name in pred
        if in_truth and in_pred:
            outcomes.append(Outcome.TP)
        elif in_pred:
            outcomes.append(Outcome.FP)
        elif in_truth:
            outcomes.append(Outcome.FN)
        else:
            outcomes.append(Outcome.TN)
    return tuple(outcomes)


def sample_counts(ground_truth: Iterable[str], predicted: Iterable[str]) -> ConfusionCounts:
    """Sum one sample's outcomes; the four counts always total 9."""
    tally = [0, 0, 0, 0]
    for outcome in classify_sample(ground_truth, predicted):
        tally[outcome] += 1
    return ConfusionCounts(*tally)


CountsLike = Union[ConfusionCounts, Iterable[ConfusionCounts]]


def accumulate(*counts: CountsLike) -> ConfusionCounts:
    """
    Field-wise sum of any number of counts.

    Each argument may be a ConfusionCounts or an iterable of them, so both
    accumulate(a, b, c) and accumulate(record_counts) work.
    """
    flat = []
    for c in counts:
        if isinstance(c, ConfusionCounts):
            flat.append(c)
        else:
            flat.extend(c)
    return reduce(lambda a, b: a + b, flat, ConfusionCounts.zero())


def indicator_matrices(
    pairs: Iterable[Tuple[Iterable[str], Iterable[str]]],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Binarize (ground_truth, predicted) pairs over the vocabulary.

    Returns:
        (y_true, y_pred), each of shape (n_samples, 9) in Allergen order.
        Tokens outside the vocabulary are dropped.
    """
    truths, preds = [], []
    for truth, pred in pairs:
        truths.append([a for a in truth if a in VOCABULARY])
        preds.append([a for a in pred if a in VOCABULARY])
    if not truths:
        empty = np.zeros((0, VOCABULARY_SIZE), dtype=np.int64)
        return empty, empty.copy()
    mlb = MultiLabelBinarizer(classes=list(ALLERGENS))
    y_true = mlb.fit_transform(truths)
    y_pred = mlb.transform(preds)
    return y_true, y_pred


class PerAllergenCounts:
    """Fixed (9 x 4) tally indexed by (Allergen, Outcome)."""

    def __init__(self, table: Optional[np.ndarray] = None):
        if table is None:
            table = np.zeros((VOCABULARY_SIZE, len(Outcome)), dtype=np.int64)
        else:
            table = np.array(table, dtype=np.int64)
        if table.shape != (VOCABULARY_SIZE, len(Outcome)):
            raise ValueError(f"expected shape ({VOCABULARY_SIZE}, {len(Outcome)}), got {table.shape}")
        self._table = table
        self._table.setflags(write=False)

    @classmethod
    def from_indicators(cls, y_true: np.ndarray, y_pred: np.ndarray) -> "PerAllergenCounts":
        """Build from (n_samples, 9) binary indicator matrices."""
        table = np.zeros((VOCABULARY_SIZE, len(Outcome)), dtype=np.int64)
        if len(y_true) == 0:
            return cls(table)
        # sklearn layout per label: [[tn, fp], [fn, tp]]
        mcm = multilabel_confusion_matrix(y_true, y_pred)
        table[:, Outcome.TP] = mcm[:, 1, 1]
        table[:, Outcome.FP] = mcm[:, 0, 1]
        table[:, Outcome.FN] = mcm[:, 1, 0]
        table[:, Outcome.TN] = mcm[:, 0, 0]
        return cls(table)

    @classmethod
    def from_samples(cls, pairs: Iterable[Tuple[Iterable[str], Iterable[str]]]) -> "PerAllergenCounts":
        """Build from (ground_truth, predicted) set pairs."""
        y_true, y_pred = indicator_matrices(pairs)
        return cls.from_indicators(y_true, y_pred)

    def __add__(self, other: "PerAllergenCounts") -> "PerAllergenCounts":
        if not isinstance(other, PerAllergenCounts):
            return NotImplemented
        return PerAllergenCounts(self._table + other._table)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PerAllergenCounts):
            return NotImplemented
        return bool(np.array_equal(self._table, other._table))

    @property
    def table(self) -> np.ndarray:
        return self._table

    @property
    def n_samples(self) -> int:
        # every sample contributes exactly one outcome per allergen
        return int(self._table[0].sum())

    def row(self, allergen: Allergen) -> ConfusionCounts:
        tp, fp, fn, tn = (int(v) for v in self._table[allergen])
        return ConfusionCounts(tp, fp, fn, tn)

    def totals(self) -> ConfusionCounts:
        tp, fp, fn, tn = (int(v) for v in self._table.sum(axis=0))
        return ConfusionCounts(tp, fp, fn, tn)

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {a.label: self.row(a).to_dict() for a in Allergen}
