"""
Impact window detectors.

- first-hit window: baseline/peak heuristics, used for zoom and metric scoping
- generic impact window: symmetric +/-80 ms around the largest peak, spectral analysis only
- contact range: free-fall bounded range around the peak, shared by DRI and energy
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from loguru import logger

from droptest.config import settings
from droptest.core import ImpactWindow, ProcessedSignal, TimeRange
from droptest.errors import InsufficientData, NoFreeFallFound, NoSignificantPeak

BASELINE_MS = 200.0
BASELINE_MAX_FRACTION = 0.10
MIN_PEAK_DEVIATION = 5.0
PEAK_SIGMA = 4.0
ONSET_FRACTION = 0.05
ONSET_PAD_MS = 10.0
SETTLE_FRACTION = 0.10
SETTLE_RUN_MS = 40.0
MAX_HIT_DURATION_MS = 200.0
IMPACT_HALF_WIDTH_MS = 80.0


@dataclass(frozen=True)
class ContactRange:
    """Free-fall bounded range around an impact peak (indices inclusive)."""

    start_idx: int
    end_idx: int
    peak_idx: int
    peak_g: float
    found_start_free_fall: bool
    found_end_free_fall: bool

    @property
    def plate_press(self) -> bool:
        """No free fall on either side: a press onto a plate rather than a drop."""
        return not self.found_start_free_fall and not self.found_end_free_fall


def _baseline_stats(time_ms: np.ndarray, accel: np.ndarray) -> Tuple[float, float]:
    duration = time_ms[-1] - time_ms[0]
    span = min(BASELINE_MS, BASELINE_MAX_FRACTION * duration)
    mask = time_ms <= time_ms[0] + span
    if np.count_nonzero(mask) < 2:
        mask = np.zeros(len(time_ms), dtype=bool)
        mask[:2] = True
    segment = accel[mask]
    return float(np.mean(segment)), float(np.std(segment))


def find_first_hit_window(time_ms, accel) -> ImpactWindow:
    """
    Locate the first impact.

    1. Baseline mean/std from the first ~200 ms (at most 10% of the record)
    2. First excursion whose deviation exceeds max(5, 4*sigma); its local
       maximum is the peak (global maximum above threshold as fallback)
    3. Onset: walk back until the deviation drops below 5% of the peak, pad 10 ms
    4. Settle: first quiet run (>= 40 ms below 10% of the peak) after the peak,
       capped at 200 ms after the peak
    """
    time_ms = np.asarray(time_ms, dtype=float)
    accel = np.asarray(accel, dtype=float)
    n = len(time_ms)
    if n < 3:
        raise InsufficientData(f"Need at least 3 samples to detect an impact, got {n}")

    base_mean, base_std = _baseline_stats(time_ms, accel)
    deviation = np.abs(accel - base_mean)
    threshold = max(MIN_PEAK_DEVIATION, PEAK_SIGMA * base_std)

    above = np.flatnonzero(deviation > threshold)
    if len(above) == 0:
        raise NoSignificantPeak(
            f"No sample deviates more than {threshold:.2f} from baseline {base_mean:.2f}"
        )

    # 첫 번째 excursion 안에서 local maximum 찾기
    first = int(above[0])
    last = first
    while last + 1 < n and deviation[last + 1] > threshold:
        last += 1
    peak_idx = first + int(np.argmax(deviation[first : last + 1]))

    is_local_max = (
        0 < peak_idx < n - 1
        and deviation[peak_idx] >= deviation[peak_idx - 1]
        and deviation[peak_idx] >= deviation[peak_idx + 1]
    )
    if not is_local_max:
        # Fallback: 전역 최대값 (기록이 excursion 도중에 끝나는 경우)
        peak_idx = int(np.argmax(deviation))
        logger.warning(f"First-hit: no local maximum found, using global maximum at {peak_idx}")

    amplitude = float(deviation[peak_idx])

    # Onset (backward walk)
    onset_idx = peak_idx
    while onset_idx > 0 and deviation[onset_idx] >= ONSET_FRACTION * amplitude:
        onset_idx -= 1
    onset_time = max(time_ms[0], time_ms[onset_idx] - ONSET_PAD_MS)
    start_idx = int(np.searchsorted(time_ms, onset_time, side="left"))

    # Settle (forward walk)
    # cap: peak 이후 200 ms
    cap_time = time_ms[peak_idx] + MAX_HIT_DURATION_MS
    cap_idx = min(n - 1, int(np.searchsorted(time_ms, cap_time, side="right")) - 1)

    end_idx = cap_idx
    quiet_start = None
    for i in range(peak_idx + 1, cap_idx + 1):
        if deviation[i] < SETTLE_FRACTION * amplitude:
            if quiet_start is None:
                quiet_start = i
            if time_ms[i] - time_ms[quiet_start] >= SETTLE_RUN_MS:
                end_idx = quiet_start
                break
        else:
            quiet_start = None

    logger.debug(
        f"First hit: peak {accel[peak_idx]:.2f} G at {time_ms[peak_idx]:.1f} ms, "
        f"window {time_ms[start_idx]:.1f}-{time_ms[end_idx]:.1f} ms"
    )

    return ImpactWindow(
        start_idx=start_idx,
        end_idx=int(end_idx),
        peak_idx=peak_idx,
        start_time_ms=float(time_ms[start_idx]),
        end_time_ms=float(time_ms[end_idx]),
        peak_accel=float(accel[peak_idx]),
    )


def find_impact_window(
    time_ms,
    accel,
    half_width_ms: float = IMPACT_HALF_WIDTH_MS,
    min_peak: Optional[float] = None,
) -> ImpactWindow:
    """Symmetric window around the largest sample above `min_peak` (spectral analysis)."""
    time_ms = np.asarray(time_ms, dtype=float)
    accel = np.asarray(accel, dtype=float)
    min_peak = settings.MIN_PEAK_G if min_peak is None else min_peak

    candidates = np.flatnonzero(accel > min_peak)
    if len(candidates) == 0:
        raise NoSignificantPeak(f"No sample above {min_peak:g}")

    peak_idx = int(candidates[np.argmax(accel[candidates])])
    peak_time = time_ms[peak_idx]
    start_idx = int(np.searchsorted(time_ms, peak_time - half_width_ms, side="left"))
    end_idx = int(np.searchsorted(time_ms, peak_time + half_width_ms, side="right")) - 1

    return ImpactWindow(
        start_idx=start_idx,
        end_idx=end_idx,
        peak_idx=peak_idx,
        start_time_ms=float(time_ms[start_idx]),
        end_time_ms=float(time_ms[end_idx]),
        peak_accel=float(accel[peak_idx]),
    )


def window_indices(time_ms, window: TimeRange) -> Optional[Tuple[int, int]]:
    """Inclusive index span of samples inside [min_ms, max_ms]; None if fewer than 2."""
    time_ms = np.asarray(time_ms, dtype=float)
    if not window.is_valid():
        return None
    start_idx = int(np.searchsorted(time_ms, window.min_ms, side="left"))
    end_idx = int(np.searchsorted(time_ms, window.max_ms, side="right")) - 1
    if start_idx >= len(time_ms) or end_idx <= start_idx:
        return None
    return start_idx, end_idx


def find_contact_range(
    accel,
    start_idx: int,
    end_idx: int,
    min_peak_g: Optional[float] = None,
    free_fall_threshold_g: Optional[float] = None,
    require_free_fall: bool = False,
) -> Optional[ContactRange]:
    """
    Peak inside [start_idx, end_idx], then search outward for the bounding
    free-fall samples (< -0.85 G). Missing bounds fall back to the window edges.

    Returns None when the peak is below `min_peak_g`. With `require_free_fall`
    a record without any free-fall bound raises NoFreeFallFound.
    """
    accel = np.asarray(accel, dtype=float)
    min_peak_g = settings.MIN_PEAK_G if min_peak_g is None else min_peak_g
    ff = settings.FREE_FALL_THRESHOLD_G if free_fall_threshold_g is None else free_fall_threshold_g

    segment = accel[start_idx : end_idx + 1]
    peak_idx = start_idx + int(np.argmax(segment))
    peak_g = float(accel[peak_idx])
    if peak_g < min_peak_g:
        logger.debug(f"Peak too low for contact range: {peak_g:.2f} G")
        return None

    before = np.flatnonzero(accel[start_idx:peak_idx] < ff)
    after = np.flatnonzero(accel[peak_idx + 1 : end_idx + 1] < ff)

    found_start = len(before) > 0
    found_end = len(after) > 0
    contact_start = start_idx + int(before[-1]) if found_start else start_idx
    contact_end = peak_idx + 1 + int(after[0]) if found_end else end_idx

    if not found_start and not found_end:
        if require_free_fall:
            raise NoFreeFallFound(f"No sample below {ff:g} G around the peak")
        logger.warning("No free fall around the peak; using window edges (plate-press profile)")

    return ContactRange(
        start_idx=contact_start,
        end_idx=contact_end,
        peak_idx=peak_idx,
        peak_g=peak_g,
        found_start_free_fall=found_start,
        found_end_free_fall=found_end,
    )


def full_range(sig: ProcessedSignal) -> TimeRange:
    """Zoom command 'full range'."""
    if len(sig) == 0:
        raise InsufficientData("No samples")
    return TimeRange(float(sig.time_ms[0]), float(sig.time_ms[-1]))


def first_hit_range(sig: ProcessedSignal) -> TimeRange:
    """Zoom command 'first hit': the detected first-impact window on the metric series."""
    hit = find_first_hit_window(sig.time_ms, sig.metric_accel_g)
    return TimeRange(hit.start_time_ms, hit.end_time_ms)
