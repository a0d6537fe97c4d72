"""
Basic Kinematic Metrics (Peak G, duration, time over threshold, EN limits)
"""

from typing import Any, Dict, Iterable, List

import numpy as np
from pydantic import BaseModel

from droptest.config import settings
from droptest.core import ProcessedSignal, TimeRange
from droptest.metrics.base import MetricStrategy, scoped_segment


class LimitCheck(BaseModel):
    """'threshold_g 를 max_ms 이상 초과하면 안 됨' 형태의 기준 1개"""

    threshold_g: float
    max_ms: float
    measured_ms: float
    exceeded: bool


def time_over_threshold(time_ms, accel_g, threshold_g: float, interpolate: bool = True) -> float:
    """
    Time (ms) the series spends above `threshold_g`.

    Trapezoidal accounting per interval:
    - both endpoints above  -> full interval
    - exactly one above     -> interpolated fraction up to the crossing
      (skipped when `interpolate` is False)
    - neither above         -> nothing
    """
    time_ms = np.asarray(time_ms, dtype=float)
    accel_g = np.asarray(accel_g, dtype=float)
    if len(time_ms) < 2:
        return 0.0

    a0, a1 = accel_g[:-1], accel_g[1:]
    dt = np.diff(time_ms)
    over0 = a0 > threshold_g
    over1 = a1 > threshold_g

    total = float(np.sum(dt[over0 & over1]))
    if not interpolate:
        return total

    partial = over0 ^ over1
    if np.any(partial):
        hi = np.where(over0, a0, a1)[partial]
        lo = np.where(over0, a1, a0)[partial]
        # (hi - threshold) / (hi - lo): 초과 구간이 차지하는 비율
        fraction = (hi - threshold_g) / (hi - lo)
        total += float(np.sum(dt[partial] * fraction))
    return total


def default_limits() -> Dict[float, float]:
    return {38.0: settings.LIMIT_38G_MS, 20.0: settings.LIMIT_20G_MS}


class BasicKinematics(MetricStrategy):
    def calculate(self, sig: ProcessedSignal, window: TimeRange) -> Dict[str, Any]:
        time_ms, accel, _ = scoped_segment(sig, window)

        thresholds: Iterable[float] = self.params.get("thresholds_g", settings.TIME_OVER_THRESHOLDS_G)
        limits: Dict[float, float] = self.params.get("limits_ms", default_limits())
        interpolate = self.params.get("interpolate", True)

        over = {
            float(g): time_over_threshold(time_ms, accel, g, interpolate=interpolate)
            for g in thresholds
        }

        checks: List[LimitCheck] = []
        for g, max_ms in sorted(limits.items(), reverse=True):
            measured = over.get(float(g))
            if measured is None:
                measured = time_over_threshold(time_ms, accel, g, interpolate=interpolate)
            checks.append(
                LimitCheck(threshold_g=g, max_ms=max_ms, measured_ms=measured, exceeded=measured >= max_ms)
            )

        i_peak = int(np.argmax(accel))
        return {
            "peak_accel": float(accel[i_peak]),
            "peak_time_ms": float(time_ms[i_peak]),
            "total_duration_ms": float(time_ms[-1] - time_ms[0]),
            "time_over_thresholds": over,
            "limit_checks": checks,
        }
