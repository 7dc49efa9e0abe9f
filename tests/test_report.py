"""Tests for report orchestration."""

import pytest

from allergen_eval.config import EvalConfig, SafetyConfig
from allergen_eval.confusion import ConfusionCounts
from allergen_eval.report import ALL_MODELS, build_report, evaluate_model, select_records

from .conftest import MODEL_A, MODEL_B


class TestBuildReport:

    def test_ranking_and_recommendation(self, two_model_batch):
        report = build_report(two_model_batch)
        assert [s.model_name for s in report.ranking] == [MODEL_A, MODEL_B]
        assert report.recommendation.model_name == MODEL_A
        assert report.ranking[0].overall_score == pytest.approx(100.0)
        assert report.ranking[1].overall_score == pytest.approx(50.0)
        assert report.reason == (
            "highest recall (100.0%), best F1 score (100.0%), "
            "lowest hallucination rate | Score: 100.0/100"
        )

    def test_per_model_metrics(self, two_model_batch):
        report = build_report(two_model_batch)
        b = report.models[MODEL_B]
        assert b.sample_count == 4
        assert b.counts == ConfusionCounts(tp=2, fp=2, fn=2, tn=30)
        assert b.quality.recall == pytest.approx(0.5)
        assert b.safety.hallucination_rate == pytest.approx(50.0)
        assert b.short_name == "llama-3.2-1b-instruct"

    def test_pooled_all_models(self, two_model_batch):
        report = build_report(two_model_batch)
        assert report.overall.model_name == ALL_MODELS
        assert report.overall.sample_count == 8
        assert report.overall.counts == ConfusionCounts(tp=6, fp=2, fn=2, tn=62)
        assert report.overall.counts.total == 8 * 9
        assert report.overall.score is None

    def test_parallel_matches_sequential(self, two_model_batch):
        sequential = build_report(two_model_batch, max_workers=1)
        parallel = build_report(two_model_batch, max_workers=4)
        assert parallel.to_dict() == sequential.to_dict()

    def test_empty_input(self):
        report = build_report({})
        assert report.is_empty
        assert report.recommendation is None
        assert report.ranking == []
        assert report.reason == ""

    def test_model_without_records_not_ranked(self, two_model_batch):
        batch = dict(two_model_batch)
        batch["empty-model"] = []
        report = build_report(batch)
        assert "empty-model" in report.models
        assert report.models["empty-model"].score is None
        assert len(report.ranking) == 2

    def test_abstention_default_from_config(self, make_record):
        config = EvalConfig(safety=SafetyConfig(abstention_default=0.0))
        m = evaluate_model("m", [make_record("milk", "milk")], config)
        assert m.safety.abstention_accuracy == 0.0

    def test_to_dict_shape(self, two_model_batch):
        d = build_report(two_model_batch).to_dict()
        assert set(d) == {'models', 'overall', 'ranking', 'recommendation', 'reason'}
        model = d['models'][MODEL_A]
        assert {'quality', 'safety', 'efficiency', 'counts', 'sample_count'} <= set(model)


class TestSelectRecords:

    def test_all(self, two_model_batch):
        assert list(select_records(two_model_batch)) == [MODEL_A, MODEL_B]
        assert list(select_records(two_model_batch, ALL_MODELS)) == [MODEL_A, MODEL_B]

    def test_by_raw_id_or_display_name(self, two_model_batch):
        assert list(select_records(two_model_batch, MODEL_B)) == [MODEL_B]
        assert list(select_records(two_model_batch, "qwen2.5-1.5b-instruct")) == [MODEL_A]

    def test_unknown(self, two_model_batch):
        assert not select_records(two_model_batch, "nope")
