"""
Impact energy / coefficient of restitution (per unit mass).

v(t) comes from one trapezoidal integration of rest-baseline-corrected
acceleration, v(origin) = 0. With the ~0 G rest / ~-1 G free-fall convention
free fall integrates to a negative (downward) velocity, so:
    impact speed  = |v| at contact entry
    rebound speed = max(0, v) at contact exit
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np
from loguru import logger
from pydantic import BaseModel
from scipy import integrate

from droptest.config import settings
from droptest.core import ProcessedSignal, TimeRange
from droptest.metrics.base import MetricStrategy
from droptest.windows import find_contact_range, window_indices

G0 = 9.80665
REST_BASELINE_MS = 200.0
REST_BAND_G = 0.2
MIN_REST_SAMPLES = 10
EPS_V = 1e-6


@dataclass(frozen=True)
class VelocityTimeline:
    baseline_g: float
    velocity_mps: np.ndarray  # same length as the samples; v(t0) = 0


class ImpactEnergyResult(BaseModel):
    # Contact window (ms)
    contact_start_ms: float
    contact_end_ms: float

    # Velocities (m/s)
    v_before_mps: float
    v_after_mps: float
    delta_v_mps: float
    impact_speed_mps: float
    rebound_speed_mps: float

    # Energies per unit mass (J/kg)
    impact_energy_j_per_kg: float
    rebound_energy_j_per_kg: float
    absorbed_energy_j_per_kg: float

    # Bounce metrics
    cor: Optional[float] = None
    energy_return_percent: Optional[float] = None
    bounce_height_m: float = 0.0
    bounce_height_cm: float = 0.0

    # Diagnostics
    peak_g: float
    baseline_g: float
    plate_press: bool


def estimate_rest_baseline_g(time_ms, accel_g, baseline_window_ms: float = REST_BASELINE_MS) -> float:
    """
    Accelerometer bias from the first `baseline_window_ms`.
    Rest-like samples (|a| <= 0.2 G) are preferred when there are enough of them.
    """
    time_ms = np.asarray(time_ms, dtype=float)
    accel_g = np.asarray(accel_g, dtype=float)
    if len(accel_g) == 0:
        return 0.0

    early = accel_g[time_ms <= time_ms[0] + baseline_window_ms]
    near_zero = early[np.abs(early) <= REST_BAND_G]
    if len(near_zero) >= MIN_REST_SAMPLES:
        return float(np.mean(near_zero))
    if len(early) > 0:
        return float(np.mean(early))
    return float(accel_g[0])


def compute_velocity_timeline(time_ms, accel_g, baseline_window_ms: float = REST_BASELINE_MS) -> VelocityTimeline:
    """v(t) for the whole record: integral of (a - baseline) * g0 dt."""
    time_ms = np.asarray(time_ms, dtype=float)
    accel_g = np.asarray(accel_g, dtype=float)
    baseline_g = estimate_rest_baseline_g(time_ms, accel_g, baseline_window_ms)

    if len(time_ms) < 2:
        return VelocityTimeline(baseline_g=baseline_g, velocity_mps=np.zeros(len(time_ms)))

    accel_mps2 = (accel_g - baseline_g) * G0
    velocity = integrate.cumulative_trapezoid(accel_mps2, time_ms / 1000.0, initial=0)
    return VelocityTimeline(baseline_g=baseline_g, velocity_mps=velocity)


def compute_impact_energy_for_window(
    time_ms,
    accel_g,
    velocity: VelocityTimeline,
    window: TimeRange,
    min_peak_g: Optional[float] = None,
    free_fall_threshold_g: Optional[float] = None,
) -> Optional[ImpactEnergyResult]:
    """
    Energy balance across the contact found inside `window`.

    Contact starts at the first sample leaving free fall before the peak and
    ends where free fall resumes. Without free fall (plate-press) the contact
    spans the window, the impact speed is taken at the peak and all of it is
    treated as absorbed (rebound = 0).
    """
    time_ms = np.asarray(time_ms, dtype=float)
    accel_g = np.asarray(accel_g, dtype=float)
    v = velocity.velocity_mps
    if len(time_ms) < 2 or len(v) != len(time_ms):
        return None

    ff = settings.FREE_FALL_THRESHOLD_G if free_fall_threshold_g is None else free_fall_threshold_g
    span = window_indices(time_ms, window)
    if span is None:
        return None

    contact = find_contact_range(
        accel_g, span[0], span[1], min_peak_g=min_peak_g, free_fall_threshold_g=ff
    )
    if contact is None:
        return None

    if contact.plate_press:
        start_idx, end_idx = contact.start_idx, contact.end_idx
        v_before = float(v[contact.peak_idx])
        v_after = float(v[end_idx])
        v_impact = abs(v_before)
        v_rebound = 0.0
    else:
        # 자유낙하에서 벗어나는 첫 샘플 = 접촉 시작
        start_idx = contact.start_idx
        if contact.found_start_free_fall:
            leaving = np.flatnonzero(accel_g[start_idx : contact.peak_idx + 1] >= ff)
            if len(leaving) > 0:
                start_idx += int(leaving[0])
        end_idx = contact.end_idx
        v_before = float(v[start_idx])
        v_after = float(v[end_idx])
        v_impact = abs(v_before)
        v_rebound = max(0.0, v_after)

    impact_energy = 0.5 * v_impact * v_impact
    rebound_energy = 0.5 * v_rebound * v_rebound
    bounce_height = v_rebound * v_rebound / (2.0 * G0) if v_rebound > EPS_V else 0.0

    logger.debug(
        f"Energy: contact {time_ms[start_idx]:.1f}-{time_ms[end_idx]:.1f} ms, "
        f"v_in {v_impact:.3f} m/s, v_out {v_rebound:.3f} m/s"
    )

    return ImpactEnergyResult(
        contact_start_ms=float(time_ms[start_idx]),
        contact_end_ms=float(time_ms[end_idx]),
        v_before_mps=v_before,
        v_after_mps=v_after,
        delta_v_mps=v_after - v_before,
        impact_speed_mps=v_impact,
        rebound_speed_mps=v_rebound,
        impact_energy_j_per_kg=impact_energy,
        rebound_energy_j_per_kg=rebound_energy,
        absorbed_energy_j_per_kg=impact_energy - rebound_energy,
        cor=v_rebound / v_impact if v_impact > EPS_V else None,
        energy_return_percent=rebound_energy / impact_energy * 100.0 if impact_energy > EPS_V else None,
        bounce_height_m=bounce_height,
        bounce_height_cm=bounce_height * 100.0,
        peak_g=contact.peak_g,
        baseline_g=velocity.baseline_g,
        plate_press=contact.plate_press,
    )


class ImpactEnergyMetric(MetricStrategy):
    """에너지 흡수 / 반발 계수 분석"""

    def calculate(self, sig: ProcessedSignal, window: TimeRange) -> Dict[str, Any]:
        accel = sig.metric_accel_g
        velocity = compute_velocity_timeline(sig.time_ms, accel)
        result = compute_impact_energy_for_window(
            sig.time_ms,
            accel,
            velocity,
            window,
            min_peak_g=self.params.get("min_peak_g"),
        )
        return {"energy": result}
