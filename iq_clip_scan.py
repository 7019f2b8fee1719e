#!/usr/bin/env python3
"""
RTL-SDR .iq Clipping Scanner

Scans raw interleaved unsigned 8-bit I/Q captures for samples pinned at 0 or
255 and reports:
- Global clipping counters per channel and extreme
- Clipping percentage over all samples
- Clipped pairs per second of capture, optionally labeled with wall-clock time
- Fast single-second breakout (--break_out) using direct file offsets
"""

import argparse
import logging
import math
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from iq_clip_report import (
    build_metrics_payload,
    render_breakout_report,
    render_full_report,
    to_datetime,
    write_metrics_json,
    write_report,
)
from iq_clip_scanner import DEFAULT_CHUNK_BYTES, run_breakout, run_full_scan
from iq_sample_source import ClipScanError, SampleSource

log = logging.getLogger('iq_clip_scan')

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class ScanConfig:
    """Configuration for one clipping scan."""
    filepath: Path
    sample_rate: float
    break_out: Optional[int] = None
    epoch_utc: Optional[int] = None
    output_localtime: bool = False
    chunk_size: int = DEFAULT_CHUNK_BYTES
    json_path: Optional[Path] = None


def _positive_rate(value: str) -> float:
    try:
        rate = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"sample_rate must be a floating-point number, got '{value}'")
    if not math.isfinite(rate) or rate <= 0:
        raise argparse.ArgumentTypeError(f"sample_rate must be a positive finite number, got '{value}'")
    return rate


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got '{value}'")
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got '{value}'")
    return number


def _even_chunk_size(value: str) -> int:
    size = _non_negative_int(value)
    if size == 0 or size % 2:
        raise argparse.ArgumentTypeError(f"chunk size must be a positive even number of bytes, got '{value}'")
    return size


def _epoch_seconds(value: str) -> int:
    try:
        epoch = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"epoch must be an integer number of seconds, got '{value}'")
    try:
        to_datetime(epoch, localtime=True)
    except (OverflowError, ValueError, OSError):
        raise argparse.ArgumentTypeError(f"epoch {value} is outside the representable date range")
    return epoch


def _bool_flag(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized not in ('true', 'false'):
        raise argparse.ArgumentTypeError(f"expected 'true' or 'false', got '{value}'")
    return normalized == 'true'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='RTL-SDR .iq clipping scanner',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  %(prog)s capture.iq 2.4e6
  %(prog)s capture.iq 2048000 --break_out 42
  %(prog)s capture.iq 2048000 --epoch_UTC 1748786700 --output_localtime true
  %(prog)s capture.iq 2048000 --json out/capture_clipping.json
        '''
    )

    parser.add_argument('file', type=Path,
                       help='Raw interleaved u8 I/Q capture file')

    parser.add_argument('sample_rate', type=_positive_rate,
                       help='Sample rate of the capture in samples per second')

    parser.add_argument('--break_out', type=_non_negative_int, default=None, metavar='N',
                       help='Only report clipping detail for second N (skips the full scan)')

    parser.add_argument('--epoch_UTC', type=_epoch_seconds, default=None, metavar='N',
                       help='UTC epoch seconds of the first sample, enables wall-clock labels')

    parser.add_argument('--output_localtime', type=_bool_flag, default=False,
                       metavar='{true,false}',
                       help='Render wall-clock labels in local time instead of UTC (default: false)')

    parser.add_argument('--chunk-size', type=_even_chunk_size, default=DEFAULT_CHUNK_BYTES,
                       help='Read buffer size in bytes for the full scan (default: 64 MB)')

    parser.add_argument('--json', type=Path, default=None, metavar='PATH',
                       help='Also write the metrics as JSON to PATH')

    parser.add_argument('-v', '--verbose', action='store_true',
                       help='Enable verbose output')

    return parser


def configure_logging(verbose: bool = False):
    # stdout carries the report, so log records go to stderr
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def run_scan(config: ScanConfig) -> List[str]:
    """Run the selected pipeline and return the report lines."""
    with SampleSource.open(config.filepath) as source:
        if config.break_out is not None:
            result = run_breakout(source, config.sample_rate, config.break_out)
            lines = render_breakout_report(result)
            mode = 'breakout'
        else:
            result = run_full_scan(source, config.sample_rate, chunk_size=config.chunk_size)
            lines = render_full_report(config.filepath, result,
                                       epoch=config.epoch_utc,
                                       localtime=config.output_localtime)
            mode = 'full'

    if config.json_path is not None:
        payload = build_metrics_payload(config.filepath, config.sample_rate, result.to_dict(),
                                        epoch=config.epoch_utc,
                                        localtime=config.output_localtime,
                                        mode=mode)
        write_metrics_json(config.json_path, payload)
    return lines


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    config = ScanConfig(
        filepath=args.file,
        sample_rate=args.sample_rate,
        break_out=args.break_out,
        epoch_utc=args.epoch_UTC,
        output_localtime=args.output_localtime,
        chunk_size=args.chunk_size,
        json_path=args.json,
    )
    log.debug(f"Scan config: {config}")
    if config.output_localtime and config.epoch_utc is None:
        log.warning("--output_localtime has no effect without --epoch_UTC")

    log.info(f"Processing: {config.filepath}")
    try:
        lines = run_scan(config)
    except (ClipScanError, OSError) as e:
        log.error(f"Error: {e}")
        return 1

    write_report(lines)
    return 0


if __name__ == "__main__":
    sys.exit(main())
