"""
Plain-text rendering of evaluation reports.
"""

from .report import EvaluationReport, ModelReport
from .vocab import ALLERGENS


def format_table(report: EvaluationReport) -> str:
    """Format the model ranking as an ASCII table."""
    if report.is_empty:
        return "No prediction records."

    header = (
        f"{'Rank':>4} | {'Model':<32} | {'F1':>6} | {'Recall':>6} | "
        f"{'Safety':>6} | {'Score':>6} | {'N':>5}"
    )
    sep = '-' * len(header)
    lines = [sep, header, sep]

    for i, s in enumerate(report.ranking, 1):
        lines.append(
            f"{i:>4} | {s.short_name[:32]:<32} | {s.micro_f1*100:>5.1f}% | "
            f"{s.recall*100:>5.1f}% | {s.safety_score:>5.0f}% | "
            f"{s.overall_score:>6.1f} | {s.sample_count:>5}"
        )
    lines.append(sep)

    if report.ranking:
        best_f1 = max(report.ranking, key=lambda s: s.micro_f1)
        best_recall = max(report.ranking, key=lambda s: s.recall)
        lines.append(f"\nBest F1:     {best_f1.short_name} ({best_f1.micro_f1*100:.1f}%)")
        lines.append(f"Best Recall: {best_recall.short_name} ({best_recall.recall*100:.1f}%)")
        lines.append(f"\nRecommended: {report.recommendation.short_name}")
        lines.append(f"Reason:      {report.reason}")

    if report.overall is not None:
        lines.append(f"Samples: {report.overall.sample_count}, Models: {len(report.models)}")

    return '\n'.join(lines)


def format_model_report(m: ModelReport) -> str:
    """Quality / safety / efficiency block for one model."""
    q, s, e = m.quality, m.safety, m.efficiency
    lines = [
        f"[{m.short_name}] ({m.sample_count} samples)",
        "  Quality:",
        f"    Precision: {q.precision*100:.1f}%  Recall: {q.recall*100:.1f}%",
        f"    F1 micro: {q.micro_f1*100:.1f}%  F1 macro: {q.macro_f1*100:.1f}%",
        f"    EMR: {q.exact_match_ratio:.2f}%  Hamming: {q.hamming_loss:.4f}  FNR: {q.false_negative_rate*100:.1f}%",
        f"    TP={q.counts.tp} FP={q.counts.fp} FN={q.counts.fn} TN={q.counts.tn}",
        "  Safety:",
        f"    Hallucination: {s.hallucination_rate:.2f}%  Over-prediction: {s.over_prediction_rate:.2f}%",
        f"    Abstention accuracy: {s.abstention_accuracy:.2f}% ({s.correct_abstention_count}/{s.abstention_cases})",
        f"    Missed allergens: {s.missed_allergen_count} in {s.missed_count} samples",
        "  Efficiency:",
        f"    Latency: {e.latency_ms}ms  TTFT: {e.ttft_ms}ms  OET: {e.oet_ms}ms",
        f"    ITPS: {e.itps}  OTPS: {e.otps}",
        f"    Managed heap: {e.managed_heap_kb}KB  Native heap: {e.native_heap_kb}KB  PSS: {e.total_pss_kb}KB",
    ]

    if q.per_allergen_f1:
        lines.append("  Per-allergen F1:")
        for name in ALLERGENS:
            lines.append(f"    {name:<10} {q.per_allergen_f1.get(name, 0.0):.3f}")

    return '\n'.join(lines)
