"""
Allergen Prediction Evaluation

Multi-label evaluation and model ranking for allergen predictions over a
fixed 9-allergen vocabulary.

Usage:
    from allergen_eval import PredictionRecord, build_report, format_table

    records = {
        "qwen2.5-1.5b-instruct-Q4_K_M.gguf": [
            PredictionRecord.create("1", "Pancake", "wheat flour, milk, egg",
                                    "milk, egg, wheat", "milk, wheat",
                                    "qwen2.5-1.5b-instruct-Q4_K_M.gguf"),
        ],
    }
    report = build_report(records)
    print(format_table(report))
"""

from .config import ConfigError, EvalConfig, load_config
from .confusion import ConfusionCounts, Outcome, PerAllergenCounts, accumulate, sample_counts
from .efficiency import EfficiencyMetrics, compute_efficiency_metrics
from .inference import (
    InferenceBackend,
    InferenceError,
    OpenAICompatibleBackend,
    PredictionRunner,
    build_prompt,
    extract_allergens,
    parse_response,
)
from .metrics import QualityMetrics, compute_quality_metrics
from .render import format_model_report, format_table
from .report import ALL_MODELS, EvaluationReport, ModelReport, build_report, evaluate_model, select_records
from .safety import SafetyMetrics, compute_safety_metrics, detect_sample_safety
from .scoring import ModelScore, ScoringWeights, display_name, rank_models, score_model
from .store import JsonlRecordStore, RecordStore
from .types import FoodItem, InferenceTelemetry, IOResult, PredictionRecord
from .vocab import ALLERGENS, Allergen, format_allergens, normalize_allergens

__all__ = [
    # vocabulary
    'ALLERGENS', 'Allergen', 'normalize_allergens', 'format_allergens',
    # records
    'PredictionRecord', 'InferenceTelemetry', 'FoodItem', 'IOResult',
    # metrics
    'ConfusionCounts', 'Outcome', 'PerAllergenCounts', 'accumulate', 'sample_counts',
    'QualityMetrics', 'compute_quality_metrics',
    'SafetyMetrics', 'compute_safety_metrics', 'detect_sample_safety',
    'EfficiencyMetrics', 'compute_efficiency_metrics',
    # ranking + report
    'ScoringWeights', 'ModelScore', 'score_model', 'rank_models', 'display_name',
    'ModelReport', 'EvaluationReport', 'evaluate_model', 'build_report', 'select_records',
    'ALL_MODELS', 'format_table', 'format_model_report',
    # collaborators
    'InferenceBackend', 'InferenceError', 'OpenAICompatibleBackend', 'PredictionRunner',
    'build_prompt', 'parse_response', 'extract_allergens',
    'RecordStore', 'JsonlRecordStore',
    'EvalConfig', 'ConfigError', 'load_config',
]
