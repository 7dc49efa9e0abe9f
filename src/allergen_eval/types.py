"""
Allergen Evaluation - Core Types

PredictionRecord (one food item x one model), its inference telemetry,
FoodItem input rows, and the IOResult returned at I/O boundaries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, Optional, TypeVar

from .confusion import ConfusionCounts, sample_counts
from .vocab import AllergenSet, normalize_allergens, to_vocabulary

NOT_MEASURED = -1

T = TypeVar('T')


@dataclass(frozen=True)
class InferenceTelemetry:
    """On-device efficiency telemetry for one inference call (-1 = not measured)."""
    latency_ms: int = NOT_MEASURED
    ttft_ms: int = NOT_MEASURED
    itps: int = NOT_MEASURED
    otps: int = NOT_MEASURED
    oet_ms: int = NOT_MEASURED
    managed_heap_kb: int = NOT_MEASURED
    native_heap_kb: int = NOT_MEASURED
    total_pss_kb: int = NOT_MEASURED

    def to_dict(self) -> Dict[str, int]:
        return {
            'latency_ms': self.latency_ms,
            'ttft_ms': self.ttft_ms,
            'itps': self.itps,
            'otps': self.otps,
            'oet_ms': self.oet_ms,
            'managed_heap_kb': self.managed_heap_kb,
            'native_heap_kb': self.native_heap_kb,
            'total_pss_kb': self.total_pss_kb,
        }

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "InferenceTelemetry":
        if not d:
            return cls()
        return cls(**{k: _as_int(d.get(k)) for k in TELEMETRY_FIELDS})


TELEMETRY_FIELDS = (
    'latency_ms', 'ttft_ms', 'itps', 'otps', 'oet_ms',
    'managed_heap_kb', 'native_heap_kb', 'total_pss_kb',
)


def _as_int(value: Any) -> int:
    if value is None or value == '':
        return NOT_MEASURED
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return NOT_MEASURED


@dataclass(frozen=True)
class PredictionRecord:
    """
    One prediction: ground truth vs. predicted allergens for a food item.

    Confusion counts are computed once in create() and stored; readers never
    recompute them from text.
    """
    record_id: str
    food_name: str
    ingredients: str
    ground_truth_text: str
    predicted_text: str
    model_name: str
    counts: ConfusionCounts
    dataset_number: int = 0
    created_at: str = ""
    telemetry: InferenceTelemetry = field(default_factory=InferenceTelemetry)

    @classmethod
    def create(
        cls,
        record_id: str,
        food_name: str,
        ingredients: str,
        ground_truth_text: str,
        predicted_text: str,
        model_name: str,
        dataset_number: int = 0,
        telemetry: Optional[InferenceTelemetry] = None,
        created_at: Optional[str] = None,
    ) -> "PredictionRecord":
        """Build a record, deriving counts from the same sets it exposes."""
        truth = to_vocabulary(normalize_allergens(ground_truth_text))
        pred = to_vocabulary(normalize_allergens(predicted_text))
        return cls(
            record_id=record_id,
            food_name=food_name,
            ingredients=ingredients,
            ground_truth_text=ground_truth_text,
            predicted_text=predicted_text,
            model_name=model_name,
            counts=sample_counts(truth, pred),
            dataset_number=dataset_number,
            created_at=created_at or datetime.now().isoformat(timespec='seconds'),
            telemetry=telemetry or InferenceTelemetry(),
        )

    @property
    def ground_truth(self) -> AllergenSet:
        return to_vocabulary(normalize_allergens(self.ground_truth_text))

    @property
    def predicted(self) -> AllergenSet:
        return to_vocabulary(normalize_allergens(self.predicted_text))

    @property
    def is_exact_match(self) -> bool:
        return self.ground_truth == self.predicted

    def to_dict(self) -> Dict[str, Any]:
        return {
            'record_id': self.record_id,
            'food_name': self.food_name,
            'ingredients': self.ingredients,
            'ground_truth': self.ground_truth_text,
            'predicted': self.predicted_text,
            'model_name': self.model_name,
            'dataset_number': self.dataset_number,
            'created_at': self.created_at,
            'counts': self.counts.to_dict(),
            'is_exact_match': self.is_exact_match,
            'telemetry': self.telemetry.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PredictionRecord":
        return cls(
            record_id=str(d.get('record_id', '')),
            food_name=d.get('food_name', '') or '',
            ingredients=d.get('ingredients', '') or '',
            ground_truth_text=d.get('ground_truth', '') or '',
            predicted_text=d.get('predicted', '') or '',
            model_name=d.get('model_name', '') or '',
            counts=ConfusionCounts.from_dict(d.get('counts') or {}),
            dataset_number=int(d.get('dataset_number', 0) or 0),
            created_at=d.get('created_at', '') or '',
            telemetry=InferenceTelemetry.from_dict(d.get('telemetry')),
        )


@dataclass
class FoodItem:
    """Input row from the food dataset workbook."""
    id: str
    name: str
    ingredients: str
    allergens_mapped: str
    link: str = ""
    allergens: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'link': self.link,
            'ingredients': self.ingredients,
            'allergens': self.allergens,
            'allergens_mapped': self.allergens_mapped,
        }


@dataclass
class IOResult(Generic[T]):
    """Outcome of a store/import/export call; failures carry a message."""
    success: bool
    value: Optional[T] = None
    message: str = ""

    @classmethod
    def ok(cls, value: T = None, message: str = "") -> "IOResult[T]":
        return cls(success=True, value=value, message=message)

    @classmethod
    def fail(cls, message: str) -> "IOResult[T]":
        return cls(success=False, value=None, message=message)
