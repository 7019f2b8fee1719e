"""
Clipping scanner for raw u8 I/Q captures.

Two pipelines share one classification step:

- run_full_scan: streams the whole file in fixed-size chunks and builds the
  global per-channel counters plus a per-second clipped-pair map.
- run_breakout: computes the byte window of a single second directly from
  the sample rate and classifies only that window.

The two aggregation rules are deliberately separate. The global counters count
per channel and per extreme, so a pair clipped on I and Q adds to two
counters. The per-second map counts each clipped pair once.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import numpy as np

from iq_sample_source import BYTES_PER_PAIR, SampleSource

log = logging.getLogger(__name__)

SAMPLE_MIN = 0
SAMPLE_MAX = 255
DEFAULT_CHUNK_BYTES = 1024 * 1024 * 64  # 64 MB, must stay even
SCAN_BLOCK_PAIRS = 1 << 17  # pairs classified at once; bounds numpy temporaries per chunk


# =============================================================================
# DATA MODEL
# =============================================================================

@dataclass
class ClipCounters:
    """Per-channel, per-extreme clipping counts."""
    i_low: int = 0
    i_high: int = 0
    q_low: int = 0
    q_high: int = 0

    @property
    def total(self) -> int:
        return self.i_low + self.i_high + self.q_low + self.q_high

    def to_dict(self) -> Dict[str, int]:
        return {
            'i_low': self.i_low,
            'i_high': self.i_high,
            'q_low': self.q_low,
            'q_high': self.q_high,
            'total': self.total,
        }


@dataclass
class FullScanResult:
    """Aggregates produced by a full pass over the capture."""
    sample_rate: float
    counters: ClipCounters = field(default_factory=ClipCounters)
    per_second: Dict[int, int] = field(default_factory=dict)
    total_pairs: int = 0
    residual_bytes: int = 0

    @property
    def total_samples(self) -> int:
        return self.total_pairs * 2

    @property
    def clipping_percentage(self) -> float:
        if self.total_pairs == 0:
            return 0.0
        return 100.0 * self.counters.total / self.total_samples

    def sorted_seconds(self) -> List[Tuple[int, int]]:
        return sorted(self.per_second.items())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_pairs': self.total_pairs,
            'total_samples': self.total_samples,
            'clipping': self.counters.to_dict(),
            'clipping_percentage': float(self.clipping_percentage),
            'residual_bytes': self.residual_bytes,
            'clipping_per_second': [
                {'second': sec, 'clipped_pairs': count}
                for sec, count in self.sorted_seconds()
            ],
        }


@dataclass
class BreakoutResult:
    """Clipping detail for a single second of the capture."""
    second: int
    samples_per_second: int
    start_byte: int
    length: int
    counters: ClipCounters = field(default_factory=ClipCounters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'second': self.second,
            'samples_per_second': self.samples_per_second,
            'start_byte': self.start_byte,
            'length_bytes': self.length,
            'clipping': self.counters.to_dict(),
        }


@dataclass
class PairClassification:
    """Boolean masks over the pairs of one buffer."""
    i_low: np.ndarray
    i_high: np.ndarray
    q_low: np.ndarray
    q_high: np.ndarray

    @property
    def clipped(self) -> np.ndarray:
        return self.i_low | self.i_high | self.q_low | self.q_high


# =============================================================================
# CLASSIFICATION & ACCUMULATION
# =============================================================================

def split_pairs(raw: bytes) -> Tuple[np.ndarray, np.ndarray, int]:
    """
    View a byte buffer as I and Q channels.

    Returns:
        (i_values, q_values, residual_bytes) where residual_bytes is 1 when a
        trailing byte could not form a complete pair and was dropped.
    """
    data = np.frombuffer(raw, dtype=np.uint8)
    residual = len(data) % BYTES_PER_PAIR
    if residual:
        data = data[:-residual]
    return data[0::2], data[1::2], residual


def classify_pairs(i_vals: np.ndarray, q_vals: np.ndarray) -> PairClassification:
    return PairClassification(
        i_low=i_vals == SAMPLE_MIN,
        i_high=i_vals == SAMPLE_MAX,
        q_low=q_vals == SAMPLE_MIN,
        q_high=q_vals == SAMPLE_MAX,
    )


def accumulate_extremes(counters: ClipCounters, flags: PairClassification):
    counters.i_low += int(np.count_nonzero(flags.i_low))
    counters.i_high += int(np.count_nonzero(flags.i_high))
    counters.q_low += int(np.count_nonzero(flags.q_low))
    counters.q_high += int(np.count_nonzero(flags.q_high))


def time_buckets(pair_indices: np.ndarray, sample_rate: float) -> np.ndarray:
    """floor(index / sample_rate) in float64, truncated to uint64."""
    seconds = pair_indices.astype(np.float64)
    with np.errstate(invalid='ignore', over='ignore', divide='ignore'):
        np.divide(seconds, sample_rate, out=seconds)
        np.floor(seconds, out=seconds)
        return seconds.astype(np.uint64)


def time_bucket(pair_index: int, sample_rate: float) -> int:
    return int(time_buckets(np.array([pair_index], dtype=np.float64), sample_rate)[0])


def accumulate_seconds(per_second: Dict[int, int], flags: PairClassification,
                       first_pair_index: int, sample_rate: float):
    """Add one count per clipped pair to its time bucket."""
    clipped_idx = np.flatnonzero(flags.clipped)
    if clipped_idx.size == 0:
        return
    pair_indices = clipped_idx.astype(np.float64)
    pair_indices += float(first_pair_index)
    buckets = time_buckets(pair_indices, sample_rate)

    # buckets ascend with pair index, so count runs instead of sorting
    starts = np.flatnonzero(buckets[1:] != buckets[:-1]) + 1
    starts = np.concatenate(([0], starts))
    counts = np.diff(np.append(starts, buckets.size))
    for sec, count in zip(buckets[starts].tolist(), counts.tolist()):
        per_second[sec] = per_second.get(sec, 0) + count


def _check_sample_rate(sample_rate: float):
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")


# =============================================================================
# PIPELINES
# =============================================================================

def run_full_scan(source: SampleSource, sample_rate: float,
                  chunk_size: int = DEFAULT_CHUNK_BYTES) -> FullScanResult:
    """
    Scan the whole capture and aggregate clipping statistics.

    Memory use is bounded by ``chunk_size`` plus the temporaries of one
    ``SCAN_BLOCK_PAIRS`` block; read errors propagate and no partial result
    is returned.
    """
    _check_sample_rate(sample_rate)
    if chunk_size <= 0 or chunk_size % BYTES_PER_PAIR:
        raise ValueError(f"chunk_size must be a positive even number of bytes, got {chunk_size}")

    result = FullScanResult(sample_rate=sample_rate)
    for chunk_idx, raw in enumerate(source.iter_chunks(chunk_size)):
        i_vals, q_vals, residual = split_pairs(raw)
        if residual:
            result.residual_bytes += residual
            log.warning(f"Chunk {chunk_idx}: {residual} trailing byte(s) dropped (incomplete I/Q pair)")

        for start in range(0, len(i_vals), SCAN_BLOCK_PAIRS):
            stop = start + SCAN_BLOCK_PAIRS
            flags = classify_pairs(i_vals[start:stop], q_vals[start:stop])
            accumulate_extremes(result.counters, flags)
            accumulate_seconds(result.per_second, flags, result.total_pairs + start, sample_rate)
        result.total_pairs += len(i_vals)
        log.debug(f"Chunk {chunk_idx}: {len(i_vals):,} pairs, running total {result.total_pairs:,}")

    log.info(f"Scanned {result.total_pairs:,} I/Q pairs, "
             f"{len(result.per_second)} second(s) with clipping")
    return result


def breakout_window(sample_rate: float, second: int) -> Tuple[int, int, int]:
    """
    Byte window of one second of capture.

    The sample rate is truncated to a whole number of samples per second,
    unlike the float bucket boundaries of the full scan. For fractional rates
    the two can disagree near second boundaries.

    Returns:
        (samples_per_second, start_byte, length)
    """
    _check_sample_rate(sample_rate)
    if second < 0:
        raise ValueError(f"second must be non-negative, got {second}")
    samples_per_second = int(sample_rate)
    if samples_per_second < 1:
        raise ValueError(f"sample_rate {sample_rate} gives less than one sample per second")
    length = samples_per_second * BYTES_PER_PAIR
    return samples_per_second, second * length, length


def run_breakout(source: SampleSource, sample_rate: float, second: int) -> BreakoutResult:
    """Classify exactly one second of the capture via a direct seek."""
    samples_per_second, start_byte, length = breakout_window(sample_rate, second)
    log.info(f"Breakout second {second}: bytes {start_byte:,}..{start_byte + length:,}")

    raw = source.read_range(start_byte, length, second=second, sample_rate=sample_rate)
    i_vals, q_vals, _ = split_pairs(raw)

    result = BreakoutResult(
        second=second,
        samples_per_second=samples_per_second,
        start_byte=start_byte,
        length=length,
    )
    accumulate_extremes(result.counters, classify_pairs(i_vals, q_vals))
    return result
