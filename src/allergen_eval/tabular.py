"""
Tabular import/export.

- read_food_items: food dataset workbook -> FoodItem list
- divide_into_sets: contiguous dataset sets for batched prediction runs
- export_workbook / read_exported_records: per-model prediction sheets + Summary
- export_json / export_csv: evaluation report files
"""

import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from .confusion import ConfusionCounts
from .metrics import record_quality
from .report import EvaluationReport
from .safety import record_safety
from .scoring import display_name
from .types import NOT_MEASURED, FoodItem, InferenceTelemetry, IOResult, PredictionRecord

logger = logging.getLogger(__name__)

SUMMARY_SHEET = "Summary"
SUMMARY_TITLE = "Food Allergen Prediction - Model Comparison Summary"
MAX_SHEET_NAME = 31
_INVALID_SHEET_CHARS = '[]:*?/\\'

FOOD_COLUMNS = ('id', 'name', 'link', 'ingredients', 'allergens', 'allergens_mapped')

BASIC_HEADERS = [
    "ID", "Food Name", "Ingredients", "Ground Truth", "Predicted Allergens",
    "TP", "FP", "FN", "TN", "Exact Match", "Model", "Dataset", "Created At",
]

DETAILED_HEADERS = [
    "ID", "Food Name", "Ingredients", "Ground Truth", "Predicted Allergens",
    # quality
    "TP", "FP", "FN", "TN", "Precision", "Recall", "F1(Micro)", "F1(Macro)",
    "Exact Match", "Hamming Loss", "FNR",
    # safety
    "Missed Allergens", "Over-Predicted", "Hallucinated", "Correct Abstention",
    # efficiency
    "Latency(ms)", "TTFT(ms)", "ITPS", "OTPS", "OET(ms)",
    "Managed Heap(KB)", "Native Heap(KB)", "PSS(KB)",
    "Model", "Dataset", "Created At",
]

# written as plain strings so a leading "=" is not stored as a formula
TEXT_HEADERS = frozenset([
    "ID", "Food Name", "Ingredients", "Ground Truth", "Predicted Allergens",
    "Model", "Created At",
])

TELEMETRY_HEADERS = {
    "Latency(ms)": 'latency_ms',
    "TTFT(ms)": 'ttft_ms',
    "ITPS": 'itps',
    "OTPS": 'otps',
    "OET(ms)": 'oet_ms',
    "Managed Heap(KB)": 'managed_heap_kb',
    "Native Heap(KB)": 'native_heap_kb',
    "PSS(KB)": 'total_pss_kb',
}

HEADER_FILL = PatternFill("solid", start_color="D9D9D9", end_color="D9D9D9")
MODEL_FILL = PatternFill("solid", start_color="5B9BD5", end_color="5B9BD5")
TIER_FILLS = {
    'good': PatternFill("solid", start_color="C6EFCE", end_color="C6EFCE"),
    'fair': PatternFill("solid", start_color="FFEB9C", end_color="FFEB9C"),
    'poor': PatternFill("solid", start_color="FFC7CE", end_color="FFC7CE"),
}


# ============================================================
# Import
# ============================================================

def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def read_food_items(path: str) -> IOResult[List[FoodItem]]:
    """
    Read the food dataset from the first sheet of a workbook.

    Columns: id, name, link, ingredients, allergens, allergens_mapped.
    The header row is skipped, as is any row without an id or name.
    """
    try:
        wb = load_workbook(path, read_only=True, data_only=True)
    except (OSError, ValueError, KeyError) as e:
        logger.error("Cannot open food workbook %s: %s", path, e)
        return IOResult.fail(f"cannot open {path}: {e}")

    items = []
    skipped = 0
    try:
        ws = wb.worksheets[0]
        for row_no, row in enumerate(ws.iter_rows(min_row=2, values_only=True), 2):
            cells = [_cell_text(v) for v in row[:len(FOOD_COLUMNS)]]
            cells += [""] * (len(FOOD_COLUMNS) - len(cells))
            values = dict(zip(FOOD_COLUMNS, cells))
            if not values['id'] or not values['name']:
                logger.debug("Skipping row %d of %s: missing id or name", row_no, path)
                skipped += 1
                continue
            items.append(FoodItem(**values))
    finally:
        wb.close()

    message = f"{len(items)} items read, {skipped} rows skipped"
    return IOResult.ok(items, message=message)


def divide_into_sets(items: Sequence[Any], n_sets: int = 20) -> List[List[Any]]:
    """
    Split items into up to n_sets contiguous sets.

    Sizes differ by at most one; the first len(items) % n_sets sets take the
    extra item. Fewer items than sets gives one set per item.
    """
    if not items:
        return []
    if n_sets < 1:
        raise ValueError(f"n_sets must be >= 1, got {n_sets}")
    size, remainder = divmod(len(items), n_sets)
    sets = []
    start = 0
    for i in range(n_sets):
        end = start + size + (1 if i < remainder else 0)
        if start >= len(items):
            break
        sets.append(list(items[start:end]))
        start = end
    return sets


# ============================================================
# Workbook export
# ============================================================

def sheet_title(model_name: str, taken: Optional[set] = None) -> str:
    """Display name made valid as a unique Excel sheet title (<= 31 chars)."""
    base = display_name(model_name) or "model"
    for ch in _INVALID_SHEET_CHARS:
        base = base.replace(ch, '_')
    base = base[:MAX_SHEET_NAME]
    taken = taken if taken is not None else set()
    title = base
    n = 2
    while title in taken or title == SUMMARY_SHEET:
        suffix = f" ({n})"
        title = base[:MAX_SHEET_NAME - len(suffix)] + suffix
        n += 1
    taken.add(title)
    return title


def _yes_no(flag: Optional[bool]) -> str:
    if flag is None:
        return "N/A"
    return "YES" if flag else "NO"


def _joined(allergens) -> str:
    return ", ".join(sorted(allergens))


def _basic_row(r: PredictionRecord) -> List[Any]:
    c = r.counts
    return [
        r.record_id, r.food_name, r.ingredients, r.ground_truth_text, r.predicted_text,
        c.tp, c.fp, c.fn, c.tn, _yes_no(r.is_exact_match),
        r.model_name, r.dataset_number, r.created_at,
    ]


def _detailed_row(r: PredictionRecord) -> List[Any]:
    q = record_quality(r)
    s = record_safety(r)
    t = r.telemetry
    c = r.counts
    return [
        r.record_id, r.food_name, r.ingredients, r.ground_truth_text, r.predicted_text,
        c.tp, c.fp, c.fn, c.tn,
        round(q.precision, 4), round(q.recall, 4), round(q.micro_f1, 4), round(q.macro_f1, 4),
        _yes_no(r.is_exact_match), round(q.hamming_loss, 4), round(q.false_negative_rate, 4),
        _joined(s.missed), _joined(s.over_predicted), _joined(s.hallucinated),
        _yes_no(s.is_correct_abstention),
        t.latency_ms, t.ttft_ms, t.itps, t.otps, t.oet_ms,
        t.managed_heap_kb, t.native_heap_kb, t.total_pss_kb,
        r.model_name, r.dataset_number, r.created_at,
    ]


def _write_header(ws, headers: Sequence[str]) -> None:
    ws.freeze_panes = "A2"
    for ci, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=ci, value=header)
        cell.font = Font(bold=True)
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        ws.column_dimensions[get_column_letter(ci)].width = max(10, min(len(header) + 4, 40))


def _write_model_sheet(wb, title: str, records: Sequence[PredictionRecord], detailed: bool) -> None:
    ws = wb.create_sheet(title)
    headers = DETAILED_HEADERS if detailed else BASIC_HEADERS
    _write_header(ws, headers)
    row_fn = _detailed_row if detailed else _basic_row
    text_columns = [ci for ci, header in enumerate(headers, 1) if header in TEXT_HEADERS]
    for r in records:
        ws.append(row_fn(r))
        for ci in text_columns:
            ws.cell(row=ws.max_row, column=ci).data_type = 's'


def _write_summary_sheet(
    wb,
    records_by_model: Mapping[str, Sequence[PredictionRecord]],
    report: Optional[EvaluationReport],
) -> None:
    ws = wb.create_sheet(SUMMARY_SHEET)
    ws.column_dimensions['A'].width = 32
    ws.column_dimensions['B'].width = 36
    ws.append([SUMMARY_TITLE])
    ws['A1'].font = Font(bold=True, size=13)
    ws.append([])

    for model_name, records in records_by_model.items():
        n = len(records)
        exact = sum(1 for r in records if r.is_exact_match)
        emr = exact / n * 100 if n > 0 else 0.0
        ws.append([f"Model: {display_name(model_name)}"])
        head = ws.cell(row=ws.max_row, column=1)
        head.font = Font(bold=True, color="FFFFFF")
        head.fill = MODEL_FILL
        ws.append(["Total Samples:", n])
        ws.append(["Exact Match Ratio (EMR):", f"{emr:.2f}%"])
        ws.append([])

    if report is None or not report.ranking:
        return

    ws.append(["Model Ranking"])
    ws.cell(row=ws.max_row, column=1).font = Font(bold=True, size=12)
    ranking_headers = ["Rank", "Model", "F1(Micro)", "Recall", "Safety", "Score"]
    ws.append(ranking_headers)
    for ci in range(1, len(ranking_headers) + 1):
        cell = ws.cell(row=ws.max_row, column=ci)
        cell.font = Font(bold=True)
        cell.fill = HEADER_FILL
    for rank, s in enumerate(report.ranking, 1):
        ws.append([
            rank, s.short_name,
            f"{s.micro_f1 * 100:.1f}%", f"{s.recall * 100:.1f}%",
            f"{s.safety_score:.0f}%", round(s.overall_score, 1),
        ])
        ws.cell(row=ws.max_row, column=6).fill = TIER_FILLS[s.tier]
    ws.append([])
    ws.append(["Recommended:", report.recommendation.short_name])
    ws.append(["Reason:", report.reason])


def export_workbook(
    records_by_model: Mapping[str, Sequence[PredictionRecord]],
    path: str,
    detailed: bool = True,
    report: Optional[EvaluationReport] = None,
    verbose: bool = True,
) -> IOResult[str]:
    """
    Write one sheet per model plus a Summary sheet.

    Returns:
        IOResult whose value is the written path.
    """
    wb = Workbook()
    wb.remove(wb.active)
    taken = set()
    for model_name, records in records_by_model.items():
        _write_model_sheet(wb, sheet_title(model_name, taken), records, detailed)
    _write_summary_sheet(wb, records_by_model, report)

    out_path = Path(path)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(out_path)
    except OSError as e:
        logger.error("Workbook export to %s failed: %s", out_path, e)
        return IOResult.fail(f"cannot write {out_path}: {e}")
    if verbose:
        print(f"XLSX exported: {out_path}")
    return IOResult.ok(str(out_path))


def _int_or(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _record_from_row(values: Dict[str, Any], fallback_model: str) -> PredictionRecord:
    telemetry = InferenceTelemetry(**{
        attr: _int_or(values.get(header), NOT_MEASURED)
        for header, attr in TELEMETRY_HEADERS.items()
    })
    return PredictionRecord(
        record_id=_cell_text(values.get("ID")),
        food_name=_cell_text(values.get("Food Name")),
        ingredients=_cell_text(values.get("Ingredients")),
        ground_truth_text=_cell_text(values.get("Ground Truth")),
        predicted_text=_cell_text(values.get("Predicted Allergens")),
        model_name=_cell_text(values.get("Model")) or fallback_model,
        counts=ConfusionCounts(
            tp=_int_or(values.get("TP"), 0),
            fp=_int_or(values.get("FP"), 0),
            fn=_int_or(values.get("FN"), 0),
            tn=_int_or(values.get("TN"), 0),
        ),
        dataset_number=_int_or(values.get("Dataset"), 0),
        created_at=_cell_text(values.get("Created At")),
        telemetry=telemetry,
    )


def read_exported_records(path: str) -> IOResult[Dict[str, List[PredictionRecord]]]:
    """
    Re-read model sheets written by export_workbook().

    Counts are taken as written; records group by the Model column.
    """
    try:
        wb = load_workbook(path, read_only=True, data_only=True)
    except (OSError, ValueError, KeyError) as e:
        logger.error("Cannot open exported workbook %s: %s", path, e)
        return IOResult.fail(f"cannot open {path}: {e}")

    grouped: Dict[str, List[PredictionRecord]] = {}
    try:
        for ws in wb.worksheets:
            if ws.title == SUMMARY_SHEET:
                continue
            rows = ws.iter_rows(values_only=True)
            headers = next(rows, None)
            if not headers:
                continue
            headers = [_cell_text(h).strip() for h in headers]
            for row in rows:
                values = dict(zip(headers, row))
                if not _cell_text(values.get("ID")):
                    continue
                record = _record_from_row(values, ws.title)
                grouped.setdefault(record.model_name, []).append(record)
    finally:
        wb.close()
    return IOResult.ok(grouped)


# ============================================================
# Report files
# ============================================================

def export_json(report: EvaluationReport, path: str, verbose: bool = True) -> IOResult[str]:
    """Export the full report as JSON."""
    out_path = Path(path)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, 'w', encoding='utf-8') as f:
            json.dump(report.to_dict(), f, ensure_ascii=False, indent=2)
    except OSError as e:
        logger.error("JSON export to %s failed: %s", out_path, e)
        return IOResult.fail(f"cannot write {out_path}: {e}")
    if verbose:
        print(f"JSON exported: {out_path}")
    return IOResult.ok(str(out_path))


CSV_FIELDS = [
    'rank', 'model_name', 'short_name', 'n_samples',
    'precision', 'recall', 'micro_f1', 'macro_f1',
    'exact_match_ratio', 'hamming_loss', 'false_negative_rate',
    'hallucination_rate', 'over_prediction_rate', 'abstention_accuracy',
    'latency_ms', 'ttft_ms', 'itps', 'otps', 'oet_ms',
    'overall_score',
]


def export_csv(report: EvaluationReport, path: str, verbose: bool = True) -> IOResult[str]:
    """Export one summary row per model, in rank order."""
    ranks = {s.model_name: i for i, s in enumerate(report.ranking, 1)}
    ordered = sorted(report.models.values(), key=lambda m: ranks.get(m.model_name, len(ranks) + 1))

    out_path = Path(path)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, 'w', newline='', encoding='utf-8') as f:
            writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
            writer.writeheader()
            for m in ordered:
                q, s, eff = m.quality, m.safety, m.efficiency
                writer.writerow({
                    'rank': ranks.get(m.model_name, ''),
                    'model_name': m.model_name,
                    'short_name': m.short_name,
                    'n_samples': m.sample_count,
                    'precision': round(q.precision, 4),
                    'recall': round(q.recall, 4),
                    'micro_f1': round(q.micro_f1, 4),
                    'macro_f1': round(q.macro_f1, 4),
                    'exact_match_ratio': round(q.exact_match_ratio, 2),
                    'hamming_loss': round(q.hamming_loss, 4),
                    'false_negative_rate': round(q.false_negative_rate, 4),
                    'hallucination_rate': round(s.hallucination_rate, 2),
                    'over_prediction_rate': round(s.over_prediction_rate, 2),
                    'abstention_accuracy': round(s.abstention_accuracy, 2),
                    'latency_ms': eff.latency_ms,
                    'ttft_ms': eff.ttft_ms,
                    'itps': eff.itps,
                    'otps': eff.otps,
                    'oet_ms': eff.oet_ms,
                    'overall_score': round(m.score.overall_score, 2) if m.score else '',
                })
    except OSError as e:
        logger.error("CSV export to %s failed: %s", out_path, e)
        return IOResult.fail(f"cannot write {out_path}: {e}")
    if verbose:
        print(f"CSV exported: {out_path}")
    return IOResult.ok(str(out_path))
