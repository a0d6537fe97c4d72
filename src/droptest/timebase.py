"""
Sample-rate estimation, uniform resampling and free-fall origin detection.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from loguru import logger

from droptest.config import settings
from droptest.errors import (
    DegenerateTimebase,
    InsufficientData,
    NonFiniteSample,
    NonMonotonicTimebase,
)

# 샘플링 레이트 추정 시 평균낼 최대 구간 수
RATE_ESTIMATE_DELTAS = 10


@dataclass(frozen=True)
class ResampleResult:
    time_ms: np.ndarray
    accel_g: np.ndarray
    sample_rate_hz: float
    median_dt_ms: float


def validate_samples(time_ms, accel_g) -> Tuple[np.ndarray, np.ndarray]:
    """
    Rejects empty, mismatched, non-finite or non-monotonic input.
    Returns float copies so callers never alias the caller's buffers.
    """
    time_ms = np.array(time_ms, dtype=float)
    accel_g = np.array(accel_g, dtype=float)

    if time_ms.ndim != 1 or accel_g.ndim != 1:
        raise InsufficientData("Time and acceleration must be 1-D series")
    if len(time_ms) == 0:
        raise InsufficientData("No samples")
    if len(time_ms) != len(accel_g):
        raise InsufficientData(
            f"Length mismatch: {len(time_ms)} timestamps vs {len(accel_g)} values"
        )
    if not (np.all(np.isfinite(time_ms)) and np.all(np.isfinite(accel_g))):
        raise NonFiniteSample("Input contains NaN or infinite values")

    backwards = np.flatnonzero(np.diff(time_ms) < 0)
    if len(backwards) > 0:
        i = int(backwards[0])
        raise NonMonotonicTimebase(
            f"Timestamps must be non-decreasing: t[{i}]={time_ms[i]} > t[{i + 1}]={time_ms[i + 1]}"
        )
    return time_ms, accel_g


def estimate_sample_rate_hz(time_ms, min_points: int = 2) -> float:
    """
    Averages the first (up to 10) positive inter-sample deltas.
    Sub-Hz precision is kept; use `design_rate_hz` for filter design.
    """
    time_ms = np.asarray(time_ms, dtype=float)
    if len(time_ms) < max(2, min_points):
        raise InsufficientData(
            f"Need at least {max(2, min_points)} points to estimate sample rate, got {len(time_ms)}"
        )

    deltas = np.diff(time_ms)
    deltas = deltas[deltas > 0][:RATE_ESTIMATE_DELTAS]
    avg_dt = float(np.mean(deltas)) if len(deltas) > 0 else 0.0

    if avg_dt <= 0:
        raise DegenerateTimebase("Average time delta is zero - cannot estimate sample rate")

    return 1000.0 / avg_dt


def design_rate_hz(sample_rate_hz: float) -> float:
    """Sample rate rounded to the nearest integer Hz for IIR filter design."""
    return float(round(sample_rate_hz))


def _merge_duplicate_times(time_ms: np.ndarray, accel_g: np.ndarray):
    # 동일 timestamp 는 합산이 아니라 평균
    unique_t, inverse, counts = np.unique(time_ms, return_inverse=True, return_counts=True)
    if len(unique_t) == len(time_ms):
        return time_ms, accel_g
    sums = np.bincount(inverse, weights=accel_g)
    return unique_t, sums / counts


def resample_to_uniform(time_ms, accel_g) -> ResampleResult:
    """
    Resample an irregular series onto a uniform grid by linear interpolation.

    - Grid spacing = median of the positive deltas (robust to gaps/duplicates)
    - Grid runs from the first to the last timestamp
    - Outside the data span the first/last value is held
    """
    time_ms = np.asarray(time_ms, dtype=float)
    accel_g = np.asarray(accel_g, dtype=float)
    if len(time_ms) < 2:
        raise InsufficientData(f"Need at least 2 points to resample, got {len(time_ms)}")

    order = np.argsort(time_ms, kind="stable")
    t_sorted, a_sorted = _merge_duplicate_times(time_ms[order], accel_g[order])

    deltas = np.diff(t_sorted)
    deltas = deltas[deltas > 0]
    if len(deltas) == 0:
        raise DegenerateTimebase("All samples share the same timestamp")

    median_dt_ms = float(np.median(deltas))
    t0 = t_sorted[0]
    t_end = t_sorted[-1]

    num_samples = int(round((t_end - t0) / median_dt_ms)) + 1
    grid = t0 + np.arange(num_samples) * median_dt_ms

    # np.interp: 구간 밖은 첫/마지막 값으로 clamp
    resampled = np.interp(grid, t_sorted, a_sorted)

    logger.debug(
        f"Resampled {len(time_ms)} -> {num_samples} samples (median dt {median_dt_ms:.4f} ms)"
    )

    return ResampleResult(
        time_ms=grid,
        accel_g=resampled,
        sample_rate_hz=1000.0 / median_dt_ms,
        median_dt_ms=median_dt_ms,
    )


def detect_origin_time(
    time_ms,
    accel_g,
    threshold_g: Optional[float] = None,
    pre_event_buffer_ms: Optional[float] = None,
) -> float:
    """
    Detects where the event starts based on free-fall logic.
    First sample below the threshold (~-0.5 G) marks free fall; the origin is
    moved back by the pre-event buffer so the resting baseline survives.
    Without a crossing the origin is the first sample (no trimming).
    """
    time_ms = np.asarray(time_ms, dtype=float)
    accel_g = np.asarray(accel_g, dtype=float)
    if len(time_ms) == 0:
        raise InsufficientData("No samples")

    threshold_g = settings.ORIGIN_THRESHOLD_G if threshold_g is None else threshold_g
    if pre_event_buffer_ms is None:
        pre_event_buffer_ms = settings.PRE_EVENT_BUFFER_MS

    below = np.flatnonzero(accel_g < threshold_g)
    if len(below) == 0:
        logger.debug("No free-fall crossing found; origin = first sample")
        return float(time_ms[0])

    trigger_idx = int(below[0])
    origin = max(float(time_ms[0]), float(time_ms[trigger_idx]) - pre_event_buffer_ms)
    logger.debug(f"Free-fall onset at {time_ms[trigger_idx]:.2f} ms -> origin {origin:.2f} ms")
    return origin


def rebase_to_origin(time_ms, accel_g, origin_ms: float) -> Tuple[np.ndarray, np.ndarray, float]:
    """
    Trims samples before the origin and shifts time so the first kept sample is t=0.
    The origin snaps to the first sample at or after `origin_ms`.
    Returns (time_ms, accel_g, snapped_origin_ms).
    """
    time_ms = np.asarray(time_ms, dtype=float)
    accel_g = np.asarray(accel_g, dtype=float)

    origin_idx = int(np.searchsorted(time_ms, origin_ms, side="left"))
    if origin_idx >= len(time_ms):
        raise InsufficientData(f"Origin {origin_ms} ms lies after the last sample")

    snapped = float(time_ms[origin_idx])
    return time_ms[origin_idx:] - snapped, accel_g[origin_idx:].copy(), snapped
