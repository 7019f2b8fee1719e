"""
Report rendering for clipping scans.

Pure formatting over already-computed aggregates. Calendar labels are
optional: a time bucket ``b`` maps to ``epoch + b`` seconds, rendered either
in UTC or in the local timezone.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from iq_clip_scanner import BreakoutResult, FullScanResult

log = logging.getLogger(__name__)

ANALYZER_VERSION = '1.0.0'


def to_datetime(epoch: int, localtime: bool = False) -> datetime:
    dt = datetime.fromtimestamp(epoch, tz=timezone.utc)
    if localtime:
        dt = dt.astimezone()
    return dt


def format_epoch_header(epoch: int, localtime: bool = False) -> str:
    """Long-form capture start time, e.g. 'Sunday, June  1, 2025 at 14:05 UTC'."""
    dt = to_datetime(epoch, localtime)
    date_part = f"{dt:%A, %B} {dt.day:2d}, {dt.year}"
    if localtime:
        hour12 = dt.hour % 12 or 12
        return f"{date_part} at {hour12}:{dt:%M %p} {dt.tzname()}"
    return f"{date_part} at {dt:%H:%M} UTC"


def format_second_label(second: int, epoch: Optional[int] = None,
                        localtime: bool = False) -> str:
    if epoch is None:
        return f"second {second:>6}"
    return f"{to_datetime(epoch + second, localtime):%H:%M:%S}"


def render_full_report(filepath, result: FullScanResult,
                       epoch: Optional[int] = None, localtime: bool = False) -> List[str]:
    counters = result.counters
    lines = [f"File: {filepath}"]
    if epoch is not None:
        lines.append(format_epoch_header(epoch, localtime))

    lines += [
        f"Total I/Q pairs processed: {result.total_pairs}",
        "--- Clipping Statistics ---",
        f"I = 0     : {counters.i_low:>10}",
        f"I = 255   : {counters.i_high:>10}",
        f"Q = 0     : {counters.q_low:>10}",
        f"Q = 255   : {counters.q_high:>10}",
        f"Clipping percentage: {result.clipping_percentage:.6f}%",
        "",
        "--- Clipping per second ---",
    ]
    for sec, count in result.sorted_seconds():
        lines.append(f"{format_second_label(sec, epoch, localtime)}: {count} clipped samples")
    return lines


def render_breakout_report(result: BreakoutResult) -> List[str]:
    counters = result.counters
    return [
        f"--- Detailed Clipping for Second {result.second} ---",
        f"second {result.second:>6}: {counters.total} clipped samples",
        f"         I: 0:{counters.i_low:<6} 255:{counters.i_high:<6}",
        f"         Q: 0:{counters.q_low:<6} 255:{counters.q_high:<6}",
    ]


def write_report(lines: List[str], stream: Optional[TextIO] = None):
    stream = stream or sys.stdout
    for line in lines:
        print(line, file=stream)


def build_metrics_payload(filepath: Path, sample_rate: float, metrics: Dict[str, Any],
                          epoch: Optional[int] = None, localtime: bool = False,
                          mode: str = 'full') -> Dict[str, Any]:
    file_metadata = {}
    if filepath.exists():
        stat = filepath.stat()
        file_metadata = {
            'source_file': str(filepath.absolute()),
            'filename': filepath.name,
            'file_size_bytes': stat.st_size,
            'file_size_mb': round(stat.st_size / 1e6, 2),
            'file_modified': datetime.fromtimestamp(stat.st_mtime).isoformat(),
        }
    analysis_config = {
        'mode': mode,
        'sample_rate_hz': sample_rate,
        'epoch_utc': epoch,
        'output_localtime': localtime,
    }
    if epoch is not None:
        analysis_config['capture_start'] = to_datetime(epoch, localtime).isoformat()
    return {
        'analysis_timestamp': datetime.now().isoformat(),
        'analyzer_version': ANALYZER_VERSION,
        'file_metadata': file_metadata,
        'analysis_config': analysis_config,
        'metrics': metrics,
    }


def write_metrics_json(json_path: Path, payload: Dict[str, Any]):
    json_path.parent.mkdir(parents=True, exist_ok=True)
    with open(json_path, 'w') as f:
        json.dump(payload, f, indent=2)
    log.info(f"Saved metrics: {json_path.name}")
