"""
Dynamic Response Index (DRI)
1-DOF biodynamic model used for spinal compression risk estimation.

Model:
    x'' + 2*zeta*omega_n*x' + omega_n^2*x = -a(t)
DRI:
    DRI = omega_n^2 * max|x| / g0

Acceleration convention: ~0 G at rest, ~-1 G in free fall.
The ODE is fed baseline-corrected acceleration, (a - baseline) * g0, so that
free fall maps to ~0 loading. Baseline = mean of the 200 ms before the
contact start; for a plate-press record (no free fall on either side) it is
the mean of the window edge samples instead.
"""

from typing import Any, Dict, Optional

import numpy as np
from loguru import logger
from pydantic import BaseModel

from droptest.core import ProcessedSignal, TimeRange
from droptest.errors import InsufficientData
from droptest.metrics.base import MetricStrategy
from droptest.windows import ContactRange, find_contact_range, window_indices

G0 = 9.80665
DRI_OMEGA_N = 52.9  # rad/s
DRI_ZETA = 0.224  # damping ratio
BASELINE_LOOKBACK_MS = 200.0
MAX_EDGE_SAMPLES = 5
# 샘플레이트 기반 dt 를 신뢰하는 허용 오차
RATE_TOLERANCE = 0.05


class DRIResult(BaseModel):
    dri: float
    delta_max_m: float
    delta_max_mm: float
    omega_n: float
    zeta: float

    # Actual range integrated (may differ from the requested window)
    actual_window_min_ms: float
    actual_window_max_ms: float
    peak_g: float
    plate_press: bool

    # Diagnostics
    baseline_g: float
    baseline_samples: int
    sample_count: int
    dt_s: float


def _edge_baseline(accel: np.ndarray, start_idx: int, end_idx: int):
    n_edge = max(1, min(MAX_EDGE_SAMPLES, (end_idx - start_idx) // 4))
    start_samples = accel[start_idx : start_idx + n_edge]
    end_samples = accel[end_idx - n_edge + 1 : end_idx + 1]
    baseline = 0.5 * (float(np.mean(start_samples)) + float(np.mean(end_samples)))
    return baseline, len(start_samples) + len(end_samples)


def _lookback_baseline(time_ms: np.ndarray, accel: np.ndarray, start_idx: int):
    start_t = time_ms[start_idx]
    lo = max(time_ms[0], start_t - BASELINE_LOOKBACK_MS)
    mask = (time_ms >= lo) & (time_ms <= start_t)
    count = int(np.count_nonzero(mask))
    if count == 0:
        return None, 0
    return float(np.mean(accel[mask])), count


def integrate_dri_response(
    accel_mps2: np.ndarray, dt_s: float, omega_n: float = DRI_OMEGA_N, zeta: float = DRI_ZETA
) -> float:
    """
    RK4 integration of the oscillator from rest; returns max|x| (m).
    Input is sampled at fixed `dt_s`; the midpoint load is the linear
    interpolation of the two bracketing samples.
    """
    x = 0.0
    v = 0.0
    delta_max = 0.0
    w2 = omega_n * omega_n
    c = 2.0 * zeta * omega_n

    def deriv(x0, v0, a):
        return v0, -c * v0 - w2 * x0 - a

    half = 0.5 * dt_s
    for i in range(len(accel_mps2) - 1):
        a0 = accel_mps2[i]
        a1 = accel_mps2[i + 1]
        a_mid = 0.5 * (a0 + a1)

        k1x, k1v = deriv(x, v, a0)
        k2x, k2v = deriv(x + half * k1x, v + half * k1v, a_mid)
        k3x, k3v = deriv(x + half * k2x, v + half * k2v, a_mid)
        k4x, k4v = deriv(x + dt_s * k3x, v + dt_s * k3v, a1)

        x += dt_s / 6.0 * (k1x + 2 * k2x + 2 * k3x + k4x)
        v += dt_s / 6.0 * (k1v + 2 * k2v + 2 * k3v + k4v)

        if abs(x) > delta_max:
            delta_max = abs(x)
    return delta_max


def compute_dri_for_window(
    time_ms,
    accel_g,
    window: TimeRange,
    sample_rate_hz: Optional[float] = None,
    min_peak_g: Optional[float] = None,
) -> Optional[DRIResult]:
    """
    DRI over the impact found inside `window`.

    1) Peak inside the window (None below 5 G)
    2) Outward search for free fall (< -0.85 G); missing bounds -> window edges
    3) Baseline: 200 ms lookback before the start, or edge means (plate-press)
    4) RK4 over the detected range
    """
    time_ms = np.asarray(time_ms, dtype=float)
    accel_g = np.asarray(accel_g, dtype=float)
    if len(time_ms) < 2:
        logger.debug(f"DRI: too few samples ({len(time_ms)})")
        return None

    span = window_indices(time_ms, window)
    if span is None:
        logger.debug(f"DRI: invalid window {window}")
        return None

    contact: Optional[ContactRange] = find_contact_range(accel_g, span[0], span[1], min_peak_g=min_peak_g)
    if contact is None:
        return None
    start_idx, end_idx = contact.start_idx, contact.end_idx
    if end_idx <= start_idx:
        return None

    if contact.plate_press:
        baseline_g, baseline_count = _edge_baseline(accel_g, start_idx, end_idx)
    else:
        baseline_g, baseline_count = _lookback_baseline(time_ms, accel_g, start_idx)
        if baseline_g is None:
            logger.debug("DRI: no baseline samples")
            return None

    # 타임스탬프 기반 dt 와 샘플레이트 기반 dt 가 5% 이내면 샘플레이트 사용
    num_steps = end_idx - start_idx
    dt_from_time = (time_ms[end_idx] - time_ms[start_idx]) / 1000.0 / num_steps
    if dt_from_time <= 0:
        raise InsufficientData("DRI range has zero duration")
    dt_s = dt_from_time
    if sample_rate_hz:
        dt_from_rate = 1.0 / sample_rate_hz
        if abs(dt_from_rate - dt_from_time) / dt_from_time < RATE_TOLERANCE:
            dt_s = dt_from_rate

    load = (accel_g[start_idx : end_idx + 1] - baseline_g) * G0
    delta_max = integrate_dri_response(load, dt_s)
    dri = DRI_OMEGA_N * DRI_OMEGA_N * delta_max / G0

    logger.debug(
        f"DRI: range {time_ms[start_idx]:.1f}-{time_ms[end_idx]:.1f} ms, "
        f"baseline {baseline_g:.3f} G, dx_max {delta_max * 1000:.3f} mm, DRI {dri:.2f}"
    )

    return DRIResult(
        dri=dri,
        delta_max_m=delta_max,
        delta_max_mm=delta_max * 1000.0,
        omega_n=DRI_OMEGA_N,
        zeta=DRI_ZETA,
        actual_window_min_ms=float(time_ms[start_idx]),
        actual_window_max_ms=float(time_ms[end_idx]),
        peak_g=contact.peak_g,
        plate_press=contact.plate_press,
        baseline_g=baseline_g,
        baseline_samples=baseline_count,
        sample_count=num_steps + 1,
        dt_s=dt_s,
    )


class DRIMetric(MetricStrategy):
    def calculate(self, sig: ProcessedSignal, window: TimeRange) -> Dict[str, Any]:
        result = compute_dri_for_window(
            sig.time_ms,
            sig.metric_accel_g,
            window,
            sample_rate_hz=sig.sample_rate_hz,
            min_peak_g=self.params.get("min_peak_g"),
        )
        return {"dri": result}
