"""
Head Injury Criterion (HIC).

Continuous definition:
    HIC = max_{t1,t2 : 0 < (t2-t1) <= T} (t2 - t1) * (1/(t2-t1) * integral(a dt))^2.5

Discrete approximation (piecewise-constant per sample):
    an interval of N samples lasts N * dt and its mean is sum(a[k]) / N.
Prefix sums make every interval sum O(1); the search is O(n * maxN).
"""

from typing import Any, Dict, Iterable

import numpy as np

from droptest.config import settings
from droptest.core import ProcessedSignal, TimeRange
from droptest.metrics.base import MetricStrategy, scoped_segment

HIC_EXPONENT = 2.5


def calculate_hic(accel_g, window_ms: float, sample_rate_hz: float, exponent: float = HIC_EXPONENT) -> float:
    """
    Maximum HIC over all intervals no longer than `window_ms`.

    Acceleration is taken as magnitude (|a|) - a signed single-axis channel
    should already be the axis of interest. Returns 0 for an empty series
    or an invalid window / sample rate.
    """
    accel_g = np.abs(np.asarray(accel_g, dtype=float))
    n = len(accel_g)
    if n == 0:
        return 0.0
    if not (np.isfinite(window_ms) and window_ms > 0):
        return 0.0
    if not (np.isfinite(sample_rate_hz) and sample_rate_hz > 0):
        return 0.0

    dt = 1.0 / sample_rate_hz
    # floor 로 윈도우 길이를 넘지 않도록, 최소 1 샘플 (부동소수 오차 보정)
    max_n = max(1, int(np.floor(window_ms / 1000.0 * sample_rate_hz + 1e-9)))
    max_n = min(max_n, n)

    # prefix[i] = sum(accel[:i])
    prefix = np.concatenate(([0.0], np.cumsum(accel_g)))

    best = 0.0
    for count in range(1, max_n + 1):
        sums = prefix[count:] - prefix[:-count]
        mean = sums / count
        hic = (count * dt) * mean**exponent
        best = max(best, float(np.max(hic)))
    return best


class HICMetric(MetricStrategy):
    """HIC for each configured window (default HIC15 / HIC36)."""

    def calculate(self, sig: ProcessedSignal, window: TimeRange) -> Dict[str, Any]:
        windows_ms: Iterable[float] = self.params.get("windows_ms", settings.HIC_WINDOWS_MS)
        _, accel, _ = scoped_segment(sig, window)

        return {
            "hic": {
                float(w): calculate_hic(accel, w, sig.sample_rate_hz) for w in windows_ms
            }
        }
