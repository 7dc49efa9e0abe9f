"""Tests for PredictionRecord and telemetry."""

from allergen_eval.confusion import ConfusionCounts
from allergen_eval.types import InferenceTelemetry, IOResult, PredictionRecord


class TestPredictionRecord:

    def test_create_derives_counts(self, make_record):
        r = make_record("milk, egg, wheat, soy", "milk, egg, wheat, fish")
        assert r.counts == ConfusionCounts(tp=3, fp=1, fn=1, tn=4)
        assert not r.is_exact_match

    def test_counts_consistent_with_sets(self, make_record):
        r = make_record("Milk, egg", "milk, celery")
        gt, pred = r.ground_truth, r.predicted
        assert r.counts.tp + r.counts.fn == len(gt)
        assert r.counts.tp + r.counts.fp == len(pred)
        assert r.counts.tn == 9 - len(gt) - r.counts.fp
        assert r.counts.total == 9
        assert pred == {"milk"}  # celery is outside the vocabulary

    def test_out_of_vocabulary_ground_truth_dropped(self, make_record):
        r = make_record("milk, gluten", "milk")
        assert r.ground_truth == {"milk"}
        assert r.counts.tp + r.counts.fn == len(r.ground_truth)
        assert r.is_exact_match
        assert r.ground_truth_text == "milk, gluten"

    def test_exact_match_ignores_order_and_case(self, make_record):
        assert make_record("Milk, Egg", "egg,milk").is_exact_match
        assert make_record("EMPTY", "").is_exact_match

    def test_dict_round_trip(self, make_record):
        r = make_record("soy", "soy", telemetry=InferenceTelemetry(latency_ms=5, otps=9))
        d = r.to_dict()
        assert d['counts'] == {'tp': 1, 'fp': 0, 'fn': 0, 'tn': 8}
        assert d['is_exact_match'] is True
        assert PredictionRecord.from_dict(d) == r

    def test_from_dict_keeps_stored_counts(self, make_record):
        d = make_record("milk", "milk").to_dict()
        d['counts'] = {'tp': 0, 'fp': 0, 'fn': 0, 'tn': 9}
        assert PredictionRecord.from_dict(d).counts == ConfusionCounts(0, 0, 0, 9)

    def test_created_at_defaults_to_now(self):
        r = PredictionRecord.create("1", "x", "", "milk", "milk", "m")
        assert r.created_at


def test_telemetry_from_dict_handles_missing_and_bad_values():
    t = InferenceTelemetry.from_dict({'latency_ms': '12.0', 'ttft_ms': None, 'itps': 'n/a'})
    assert t.latency_ms == 12
    assert t.ttft_ms == -1
    assert t.itps == -1
    assert InferenceTelemetry.from_dict(None) == InferenceTelemetry()


def test_io_result():
    assert IOResult.ok(3).value == 3
    failed = IOResult.fail("boom")
    assert not failed.success
    assert failed.message == "boom"
