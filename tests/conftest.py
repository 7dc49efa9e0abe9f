"""Shared pytest fixtures for allergen_eval tests."""

from typing import Callable, Optional

import pytest

from allergen_eval.types import InferenceTelemetry, PredictionRecord

MODEL_A = "qwen2.5-1.5b-instruct-Q4_K_M.gguf"
MODEL_B = "llama-3.2-1b-instruct-Q8_0.gguf"


# ============================================================================
# Record Fixtures
# ============================================================================


@pytest.fixture
def make_record() -> Callable[..., PredictionRecord]:
    """Factory for PredictionRecords with sensible defaults."""
    counter = {'n': 0}

    def _make(
        ground_truth: str,
        predicted: str,
        model_name: str = MODEL_A,
        ingredients: str = "",
        record_id: Optional[str] = None,
        dataset_number: int = 1,
        telemetry: Optional[InferenceTelemetry] = None,
    ) -> PredictionRecord:
        counter['n'] += 1
        return PredictionRecord.create(
            record_id=record_id or str(counter['n']),
            food_name=f"Food {counter['n']}",
            ingredients=ingredients,
            ground_truth_text=ground_truth,
            predicted_text=predicted,
            model_name=model_name,
            dataset_number=dataset_number,
            telemetry=telemetry,
            created_at="2026-01-01T00:00:00",
        )

    return _make


@pytest.fixture
def emr_batch(make_record) -> list:
    """Four records, three exact matches (EMR 75%)."""
    return [
        make_record("milk, egg", "egg, milk"),
        make_record("EMPTY", "none"),
        make_record("wheat", "wheat"),
        make_record("soy", "soy, fish"),
    ]


@pytest.fixture
def two_model_batch(make_record) -> dict:
    """
    Model A: perfect on 4 samples.
    Model B: misses and hallucinates.
    """
    a = [
        make_record("milk", "milk", MODEL_A, "whole milk"),
        make_record("egg, wheat", "egg, wheat", MODEL_A, "egg, wheat flour"),
        make_record("EMPTY", "EMPTY", MODEL_A, "water, salt"),
        make_record("peanut", "peanut", MODEL_A, "roasted peanuts"),
    ]
    b = [
        make_record("milk", "EMPTY", MODEL_B, "whole milk"),
        make_record("egg, wheat", "egg", MODEL_B, "egg, wheat flour"),
        make_record("EMPTY", "fish", MODEL_B, "water, salt"),
        make_record("peanut", "peanut, shellfish", MODEL_B, "roasted peanuts"),
    ]
    return {MODEL_A: a, MODEL_B: b}
