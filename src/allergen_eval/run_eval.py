"""
Allergen Evaluation Runner - single entry point

Phases:
1. predict:  food workbook -> dataset sets -> backend -> record store
2. evaluate: record store -> report -> table + JSON/CSV/XLSX exports
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from .config import DEFAULT_CONFIG_PATH, ConfigError, EvalConfig, load_config
from .inference import OpenAICompatibleBackend, PredictionRunner
from .render import format_model_report, format_table
from .report import build_report, select_records
from .store import JsonlRecordStore
from .tabular import divide_into_sets, export_csv, export_json, export_workbook, read_food_items
from .types import PredictionRecord


def run_predict(
    config: EvalConfig,
    model: str,
    set_number: Optional[int] = None,
    limit: Optional[int] = None,
) -> int:
    """
    Phase 1: predictions

    Args:
        set_number: 1-based dataset set to run; None runs every set.
        limit: Cap on items per set (smoke runs).

    Returns:
        Number of records produced.
    """
    print("=" * 60)
    print("Phase 1: Prediction")
    print("=" * 60)

    result = read_food_items(config.data.food_workbook)
    if not result.success:
        print(f"[Error] {result.message}")
        return 0
    print(f"[Data] {config.data.food_workbook}: {result.message}")

    sets = divide_into_sets(result.value, config.data.n_sets)
    if set_number is not None:
        if not 1 <= set_number <= len(sets):
            print(f"[Error] set {set_number} out of range (1-{len(sets)})")
            return 0
        selected = [(set_number, sets[set_number - 1])]
    else:
        selected = list(enumerate(sets, 1))

    inf = config.inference
    backend = OpenAICompatibleBackend(
        base_url=inf.base_url,
        api_key=inf.api_key,
        temperature=inf.temperature,
        max_tokens=inf.max_tokens,
        timeout=inf.timeout,
    )
    runner = PredictionRunner(backend, store=JsonlRecordStore(config.data.record_dir))

    produced = 0
    failed = 0
    for number, items in selected:
        if limit:
            items = items[:limit]
        print(f"\n[Set {number}/{len(sets)}] {len(items)} items, model={model}")
        summary = runner.run(items, model, dataset_number=number)
        produced += len(summary.records)
        failed += len(summary.failures)

    print(f"\n[Predict] records={produced}, failures={failed}")
    return produced


def run_evaluate(
    config: EvalConfig,
    model_filter: Optional[str] = None,
    detailed: bool = True,
) -> Optional[Dict[str, List[PredictionRecord]]]:
    """Phase 2: evaluation and exports."""
    print("=" * 60)
    print("Phase 2: Evaluation")
    print("=" * 60)

    store = JsonlRecordStore(config.data.record_dir)
    loaded = store.load_grouped()
    if not loaded.success:
        print(f"[Error] {loaded.message}")
        return None
    if loaded.message:
        print(f"[Store] {loaded.message}")

    records_by_model = select_records(loaded.value, model_filter)
    if not records_by_model:
        print(f"[Evaluate] no records in {config.data.record_dir}"
              + (f" for model '{model_filter}'" if model_filter else ""))
        return records_by_model

    report = build_report(records_by_model, config)

    for m in report.models.values():
        print()
        print(format_model_report(m))
    print()
    print(format_table(report))

    output_dir = Path(config.data.output_dir)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    for result in (
        export_json(report, str(output_dir / "evaluation_report.json")),
        export_csv(report, str(output_dir / "model_comparison.csv")),
        export_workbook(
            records_by_model,
            str(output_dir / f"FoodAllergen_Predictions_{timestamp}.xlsx"),
            detailed=detailed,
            report=report,
        ),
    ):
        if not result.success:
            print(f"[Export] failed: {result.message}")

    return records_by_model


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Allergen prediction evaluation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # predict set 1 with the configured model, then evaluate
  python -m allergen_eval.run_eval --phase all --set 1

  # evaluate stored predictions for one model
  python -m allergen_eval.run_eval --phase evaluate --model qwen2.5-1.5b-instruct

  # quick smoke run
  python -m allergen_eval.run_eval --phase predict --set 1 --limit 5
        """
    )

    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="config file path")
    parser.add_argument("--phase", choices=['all', 'predict', 'evaluate'],
                        default='evaluate', help="phase to run")
    parser.add_argument("--model", help="model id (predict) or filter (evaluate)")
    parser.add_argument("--set", type=int, dest="set_number", help="1-based dataset set to predict")
    parser.add_argument("--limit", type=int, help="max items per set")
    parser.add_argument("--output-dir", help="override data.output_dir")
    parser.add_argument("--max-workers", type=int, help="override report.max_workers")
    parser.add_argument("--basic", action="store_true", help="basic (non-detailed) workbook export")
    parser.add_argument("--log-level", default="WARNING",
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help="library log level")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"[Config] {e}", file=sys.stderr)
        return 2

    if args.output_dir:
        config.data.output_dir = args.output_dir
    if args.max_workers is not None:
        if args.max_workers < 1:
            print("[Config] --max-workers must be >= 1", file=sys.stderr)
            return 2
        config.report.max_workers = args.max_workers

    print("=" * 60)
    print("Food Allergen Prediction Evaluation")
    print("=" * 60)
    print(f"Config: {args.config}")
    print(f"Phase: {args.phase}")

    if args.phase in ['all', 'predict']:
        run_predict(
            config,
            model=args.model or config.inference.model,
            set_number=args.set_number,
            limit=args.limit,
        )

    if args.phase in ['all', 'evaluate']:
        model_filter = args.model if args.phase == 'evaluate' else None
        run_evaluate(config, model_filter=model_filter, detailed=not args.basic)

    return 0


if __name__ == "__main__":
    sys.exit(main())
