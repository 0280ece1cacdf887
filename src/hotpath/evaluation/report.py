"""
Tabular Profile Report

Flattens a decoded ``ProfileData`` into pandas DataFrames (one row per
function, one row per sampled line), exports them as CSV, and computes a
small numpy summary used by the CLI.
"""

import pandas as pd
import numpy as np
from pathlib import Path
from typing import Any, Dict, Optional

from ..schemas import ProfileData
from ..utils.logger import get_logger

log = get_logger("Report")

FUNCTION_COLUMNS = [
    'function', 'file', 'start_line', 'self_ms', 'total_ms',
    'self_percent', 'total_percent', 'samples',
]
LINE_COLUMNS = ['file', 'line', 'function', 'time_ms', 'percent', 'samples']


def functions_frame(profile: ProfileData) -> pd.DataFrame:
    """One row per function, hottest (by total time) first."""
    data = []
    for fn in profile.top_functions:
        data.append({
            'function': fn.name,
            'file': fn.file_name,
            'start_line': fn.start_line,
            'self_ms': fn.self_time / 1e6,
            'total_ms': fn.total_time / 1e6,
            'self_percent': fn.self_percent,
            'total_percent': fn.total_percent,
            'samples': fn.samples,
        })
    df = pd.DataFrame(data, columns=FUNCTION_COLUMNS)
    return df.sort_values('total_ms', ascending=False, kind='stable').reset_index(drop=True)


def lines_frame(profile: ProfileData) -> pd.DataFrame:
    """One row per (file, sampled line), hottest first."""
    data = []
    for file_name, metrics in profile.file_metrics.items():
        for line, m in metrics.line_metrics.items():
            data.append({
                'file': file_name,
                'line': line,
                'function': m.location.function_name,
                'time_ms': m.total_time / 1e6,
                'percent': m.total_percent,
                'samples': m.samples,
            })
    df = pd.DataFrame(data, columns=LINE_COLUMNS)
    return df.sort_values('time_ms', ascending=False, kind='stable').reset_index(drop=True)


def export_csv(profile: ProfileData, output_path: Path) -> Path:
    """Write the function table to ``output_path`` and the line table beside it."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    functions_frame(profile).to_csv(output_path, index=False)
    lines_path = output_path.with_name(output_path.stem + "_lines.csv")
    lines_frame(profile).to_csv(lines_path, index=False)
    log.info(f"Exported report to {output_path} and {lines_path}")
    return output_path


def summarize(profile: ProfileData, top_n: int = 10) -> Dict[str, Any]:
    """Headline numbers: hottest line and how concentrated time is in the top-N lines."""
    lines = lines_frame(profile)
    summary: Dict[str, Any] = {
        'total_samples': profile.total_samples,
        'duration_s': profile.duration_ns / 1e9,
        'files': len(profile.file_metrics),
        'functions': len(profile.top_functions),
        'lines': len(lines),
        'hottest_line': None,
        'top_n_share': 0.0,
    }
    if lines.empty:
        return summary

    times = lines['time_ms'].to_numpy(dtype=np.float64)
    hottest = int(np.argmax(times))
    row = lines.iloc[hottest]
    summary['hottest_line'] = {
        'file': row['file'],
        'line': int(row['line']),
        'function': row['function'],
        'percent': float(row['percent']),
    }

    total = float(np.sum(times))
    if total > 0:
        top = np.sort(times)[::-1][:top_n]
        summary['top_n_share'] = float(np.sum(top) / total * 100)
    return summary


def format_summary(summary: Dict[str, Any], top_n: int = 10) -> str:
    parts = [
        f"Samples: {summary['total_samples']}  Duration: {summary['duration_s']:.2f}s",
        f"Files: {summary['files']}  Functions: {summary['functions']}  Lines: {summary['lines']}",
    ]
    hot: Optional[Dict[str, Any]] = summary['hottest_line']
    if hot:
        parts.append(f"Hottest line: {hot['file']}:{hot['line']} ({hot['function']}) {hot['percent']:.2f}%")
        parts.append(f"Top {top_n} lines hold {summary['top_n_share']:.1f}% of sampled time")
    return "\n".join(parts)
