"""
Efficiency aggregation over inference telemetry.

Each field is averaged over the records that measured it; unmeasured values
(-1) are skipped, and a field nobody measured reports 0.
"""

from dataclasses import dataclass, field
from typing import Dict, Sequence

import numpy as np

from .types import TELEMETRY_FIELDS, PredictionRecord


@dataclass
class EfficiencyMetrics:
    """Mean telemetry per model (ms, tokens/s, KB)."""
    latency_ms: int = 0
    ttft_ms: int = 0
    itps: int = 0
    otps: int = 0
    oet_ms: int = 0
    managed_heap_kb: int = 0
    native_heap_kb: int = 0
    total_pss_kb: int = 0
    measured: Dict[str, int] = field(default_factory=dict)  # samples with a value, per field

    def to_dict(self) -> Dict[str, int]:
        d = {name: getattr(self, name) for name in TELEMETRY_FIELDS}
        d['measured'] = dict(self.measured)
        return d


def compute_efficiency_metrics(records: Sequence[PredictionRecord]) -> EfficiencyMetrics:
    """Integer mean per telemetry field over measured (>= 0) values."""
    if not records:
        return EfficiencyMetrics(measured={name: 0 for name in TELEMETRY_FIELDS})

    values = np.array(
        [[getattr(r.telemetry, name) for name in TELEMETRY_FIELDS] for r in records],
        dtype=np.int64,
    )
    valid = values >= 0
    sums = np.where(valid, values, 0).sum(axis=0)
    counts = valid.sum(axis=0)

    means = {}
    measured = {}
    for i, name in enumerate(TELEMETRY_FIELDS):
        n = int(counts[i])
        means[name] = int(sums[i]) // n if n > 0 else 0
        measured[name] = n
    return EfficiencyMetrics(measured=measured, **means)
