"""Tests for workbook import/export and report files."""

import csv
import json

import pytest
from openpyxl import Workbook, load_workbook

from allergen_eval.report import build_report
from allergen_eval.tabular import (
    BASIC_HEADERS,
    DETAILED_HEADERS,
    SUMMARY_SHEET,
    SUMMARY_TITLE,
    divide_into_sets,
    export_csv,
    export_json,
    export_workbook,
    read_exported_records,
    read_food_items,
    sheet_title,
)
from allergen_eval.types import InferenceTelemetry

from .conftest import MODEL_A, MODEL_B


@pytest.fixture
def food_workbook(tmp_path):
    path = tmp_path / "foods.xlsx"
    wb = Workbook()
    ws = wb.active
    ws.append(["id", "name", "link", "ingredients", "allergens", "allergens_mapped"])
    ws.append([1, "Pancake", "http://x", "flour, milk, egg", "Milk; Egg; Gluten", "milk, egg, wheat"])
    ws.append([2, "Salad", "", "lettuce", "", "EMPTY"])
    ws.append([None, "No id", "", "water", "", ""])
    ws.append([4, None, "", "water", "", ""])
    wb.save(path)
    return str(path)


class TestReadFoodItems:

    def test_reads_and_skips(self, food_workbook):
        result = read_food_items(food_workbook)
        assert result.success
        items = result.value
        assert [i.id for i in items] == ["1", "2"]
        assert items[0].name == "Pancake"
        assert items[0].allergens_mapped == "milk, egg, wheat"
        assert "2 rows skipped" in result.message

    def test_missing_file(self, tmp_path):
        result = read_food_items(str(tmp_path / "missing.xlsx"))
        assert not result.success
        assert result.value is None


class TestDivideIntoSets:

    def test_remainder_goes_to_first_sets(self):
        sets = divide_into_sets(list(range(45)), 20)
        assert len(sets) == 20
        assert [len(s) for s in sets[:5]] == [3, 3, 3, 3, 3]
        assert all(len(s) == 2 for s in sets[5:])
        assert [x for s in sets for x in s] == list(range(45))

    def test_fewer_items_than_sets(self):
        assert divide_into_sets([1, 2, 3], 20) == [[1], [2], [3]]

    def test_empty(self):
        assert divide_into_sets([], 20) == []


class TestSheetTitle:

    def test_display_name_truncated(self):
        title = sheet_title("a-very-long-model-name-that-exceeds-limits-Q4_K_M.gguf")
        assert len(title) <= 31
        assert title == "a-very-long-model-name-that-exc"

    def test_deduplicated(self):
        taken = set()
        assert sheet_title("m-Q4.gguf", taken) == "m"
        assert sheet_title("m-Q8.gguf", taken) == "m (2)"
        assert sheet_title("Summary", taken) == "Summary (2)"


class TestWorkbookExport:

    def test_round_trip_detailed(self, two_model_batch, tmp_path, make_record):
        batch = dict(two_model_batch)
        batch[MODEL_A] = batch[MODEL_A] + [
            make_record("soy", "soy", MODEL_A, telemetry=InferenceTelemetry(latency_ms=321, ttft_ms=12)),
        ]
        path = tmp_path / "out" / "preds.xlsx"
        result = export_workbook(batch, str(path), detailed=True, verbose=False)
        assert result.success

        back = read_exported_records(str(path))
        assert back.success
        assert set(back.value) == {MODEL_A, MODEL_B}
        for model, records in batch.items():
            reread = back.value[model]
            assert [r.counts for r in reread] == [r.counts for r in records]
            assert [r.record_id for r in reread] == [r.record_id for r in records]
            assert [r.predicted_text for r in reread] == [r.predicted_text for r in records]
            assert [r.ground_truth_text for r in reread] == [r.ground_truth_text for r in records]
            assert [r.food_name for r in reread] == [r.food_name for r in records]
            assert [r.ingredients for r in reread] == [r.ingredients for r in records]
            assert [r.created_at for r in reread] == [r.created_at for r in records]
        assert back.value[MODEL_A][-1].telemetry.latency_ms == 321

    @pytest.mark.parametrize("detailed", [True, False])
    def test_round_trip_keeps_formula_like_text(self, make_record, tmp_path, detailed):
        record = make_record("milk", "=milk", ingredients="=tahini, lemon")
        path = tmp_path / "formula.xlsx"
        export_workbook({record.model_name: [record]}, str(path), detailed=detailed, verbose=False)

        back = read_exported_records(str(path)).value[record.model_name][0]
        assert back.ingredients == "=tahini, lemon"
        assert back.predicted_text == "=milk"
        assert back.created_at == "2026-01-01T00:00:00"
        assert back == record

    def test_round_trip_basic(self, two_model_batch, tmp_path):
        path = tmp_path / "basic.xlsx"
        export_workbook(two_model_batch, str(path), detailed=False, verbose=False)
        wb = load_workbook(path)
        assert [c.value for c in wb["qwen2.5-1.5b-instruct"][1]] == BASIC_HEADERS
        back = read_exported_records(str(path)).value
        assert [r.counts for r in back[MODEL_B]] == [r.counts for r in two_model_batch[MODEL_B]]
        assert back[MODEL_B][0].dataset_number == 1

    def test_detailed_headers_and_summary(self, two_model_batch, tmp_path):
        path = tmp_path / "detailed.xlsx"
        report = build_report(two_model_batch)
        export_workbook(two_model_batch, str(path), report=report, verbose=False)
        wb = load_workbook(path)
        assert wb.sheetnames == ["qwen2.5-1.5b-instruct", "llama-3.2-1b-instruct", SUMMARY_SHEET]
        assert [c.value for c in wb["llama-3.2-1b-instruct"][1]] == DETAILED_HEADERS

        summary = [[c.value for c in row] for row in wb[SUMMARY_SHEET].iter_rows()]
        assert summary[0][0] == SUMMARY_TITLE
        assert ["Model: qwen2.5-1.5b-instruct", None] == summary[2][:2]
        assert summary[3][:2] == ["Total Samples:", 4]
        assert summary[4][:2] == ["Exact Match Ratio (EMR):", "100.00%"]
        flat = [v for row in summary for v in row if v is not None]
        assert "Model Ranking" in flat
        assert report.reason in flat

    def test_detailed_row_values(self, make_record, tmp_path):
        record = make_record("EMPTY", "shellfish", ingredients="rice, water")
        path = tmp_path / "row.xlsx"
        export_workbook({record.model_name: [record]}, str(path), verbose=False)
        ws = load_workbook(path).worksheets[0]
        row = dict(zip(DETAILED_HEADERS, [c.value for c in ws[2]]))
        assert row["FP"] == 1
        assert row["Exact Match"] == "NO"
        assert row["Hallucinated"] == "shellfish"
        assert row["Correct Abstention"] == "NO"
        assert row["Latency(ms)"] == -1

    def test_unwritable_path(self, two_model_batch, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        result = export_workbook(two_model_batch, str(blocker / "out.xlsx"), verbose=False)
        assert not result.success


class TestReportFiles:

    def test_json(self, two_model_batch, tmp_path):
        report = build_report(two_model_batch)
        path = tmp_path / "report.json"
        assert export_json(report, str(path), verbose=False).success
        data = json.loads(path.read_text(encoding='utf-8'))
        assert data['recommendation']['model_name'] == MODEL_A
        assert data['models'][MODEL_B]['quality']['recall'] == 0.5

    def test_csv_rank_order(self, two_model_batch, tmp_path):
        report = build_report(two_model_batch)
        path = tmp_path / "cmp.csv"
        assert export_csv(report, str(path), verbose=False).success
        with open(path, newline='', encoding='utf-8') as f:
            rows = list(csv.DictReader(f))
        assert [r['model_name'] for r in rows] == [MODEL_A, MODEL_B]
        assert rows[0]['rank'] == '1'
        assert float(rows[1]['overall_score']) == pytest.approx(50.0)
