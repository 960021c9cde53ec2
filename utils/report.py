"""
Utils: Report
Plain-text and dict summaries of session Results for copy/share or saving.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from pipeline.process_profiles import METRIC_ORDER
from pipeline.step5_scorer import MetricResult, Results
from pipeline.step6_session import format_elapsed


METRIC_LABELS = {
    'angle': "Angle",
    'stability': "Stability",
    'speed': "Travel speed",
    'approach': "Approach speed",
    'straightness': "Straightness",
    'distance': "Distance",
}


def format_score(metric: Optional[MetricResult]) -> str:
    """'87%' or '--' for an unavailable metric."""
    if metric is None or not metric.available:
        return "--"
    return f"{metric.score:.0f}%"


def format_report(results: Results, title: str = "Weld Coach AR results") -> str:
    """Human-readable summary of one session."""
    process = results.process_name or results.process_kind.value
    lines = [
        f"{title} ({process})",
        f"Duration: {format_elapsed(results.duration_ms)}",
    ]

    if not results.has_data:
        lines.append("Score: --")
    else:
        lines.append(f"Score: {results.final_score}/100 ({results.skill_level})")

    lines.append("")
    for name in METRIC_ORDER:
        metric = results.metrics.get(name)
        line = f"{METRIC_LABELS[name]}: {format_score(metric)}"
        if metric is not None and metric.available and metric.feedback:
            line += f" - {metric.feedback}"
        lines.append(line)

    if results.angle_optimal_percentage is not None:
        lines.append(f"Time in optimal angle: {results.angle_optimal_percentage:.0f}%")

    lines.append("")
    lines.append("Recommendations:")
    for tip in results.recommendations:
        lines.append(f"- {tip}")

    return "\n".join(lines)


def results_to_dict(results: Results) -> Dict[str, Any]:
    """JSON-friendly dict. Unavailable values become None."""
    return {
        'process_kind': results.process_kind.value,
        'process_name': results.process_name,
        'has_data': results.has_data,
        'final_score': results.final_score if results.has_data else None,
        'skill_level': results.skill_level,
        'duration_ms': results.duration_ms,
        'sample_count': results.sample_count,
        'angle_optimal_percentage': results.angle_optimal_percentage,
        'metrics': {
            name: {
                'score': None if metric.score is None else round(metric.score, 1),
                'average': None if metric.average is None else round(metric.average, 2),
                'feedback': metric.feedback,
            }
            for name, metric in results.metrics.items()
        },
        'recommendations': list(results.recommendations),
    }


def save_report(results: Results, output_path: str) -> Path:
    """Write the report as .json (by suffix) or plain text."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == '.json':
        path.write_text(json.dumps(results_to_dict(results), indent=2), encoding='utf-8')
    else:
        path.write_text(format_report(results) + "\n", encoding='utf-8')
    return path
