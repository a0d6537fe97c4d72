"""
Signal processing engine for harness / back-protector drop tests.
Raw samples -> validation -> uniform grid -> origin rebasing -> filter bank -> jerk.
"""

from typing import Optional

import numpy as np
from loguru import logger

from droptest.core import ProcessedSignal, RawSeries
from droptest.errors import DropTestError, InvalidWindow
from droptest.filter_config import (
    BandStopConfig,
    ButterworthConfig,
    CfcConfig,
    FilterConfig,
    MovingAverageConfig,
    PipelineConfig,
    SavitzkyGolayConfig,
)
from droptest.filters import (
    butterworth_bandstop,
    butterworth_lowpass,
    cfc_filter,
    moving_average,
    sanitize_odd_window,
    sanitize_polynomial,
    savitzky_golay,
)
from droptest.spectrum import analyze_impact
from droptest.timebase import (
    design_rate_hz,
    detect_origin_time,
    estimate_sample_rate_hz,
    rebase_to_origin,
    resample_to_uniform,
    validate_samples,
)


class SignalProcessor:
    """신호 처리 전용 클래스"""

    @staticmethod
    def process(raw: RawSeries, config: Optional[PipelineConfig] = None) -> ProcessedSignal:
        """
        Raw Data -> Resampling -> Origin -> Filtering -> Jerk

        Input errors (empty / unsorted / NaN) propagate. A failing filter is
        recorded in `failures` and its series stays absent; the others still run.
        """
        config = config or PipelineConfig()

        # 1. 데이터 검증
        time_ms, accel_g = validate_samples(raw.time_ms, raw.accel_g)

        # 2. Uniform grid
        resampled = False
        if config.resample and len(time_ms) >= 2:
            grid = resample_to_uniform(time_ms, accel_g)
            time_ms, accel_g = grid.time_ms, grid.accel_g
            fs = grid.sample_rate_hz
            resampled = True
        else:
            fs = estimate_sample_rate_hz(time_ms)

        # 3. Origin (free-fall onset - 200 ms)
        origin = float(time_ms[0])
        if config.detect_origin:
            origin = detect_origin_time(time_ms, accel_g)
        time_ms, accel_g, origin = rebase_to_origin(time_ms, accel_g, origin)

        sig = ProcessedSignal(
            time_ms=time_ms,
            raw_accel_g=accel_g,
            sample_rate_hz=fs,
            origin_ms=origin,
            resampled=resampled,
        )

        # 4. Filter bank
        SignalProcessor.apply_filter_bank(sig, config.filters)

        # 5. Jerk (primary series, else raw)
        SignalProcessor.apply_jerk(sig, config.filters)

        logger.debug(
            f"Processed {len(sig)} samples at {fs:.1f} Hz (origin {origin:.1f} ms), "
            f"series={sorted(sig.series)}, failures={sorted(sig.failures)}"
        )
        return sig

    @staticmethod
    def apply_filter_bank(sig: ProcessedSignal, filters: FilterConfig) -> None:
        for name, descriptor in filters.enabled_filters().items():
            try:
                sig.series[name] = SignalProcessor.run_filter(sig, descriptor)
            except DropTestError as e:
                logger.error(f"Filter '{name}' failed: {e}")
                sig.failures[name] = str(e)

        primary = filters.primary_name()
        if primary is not None and primary in sig.series:
            sig.primary = primary

    @staticmethod
    def run_filter(sig: ProcessedSignal, descriptor) -> np.ndarray:
        """Dispatch on the descriptor's type; parameters are sanitized against the series length."""
        data = sig.raw_accel_g
        n = len(data)
        fs_design = design_rate_hz(sig.sample_rate_hz)

        if isinstance(descriptor, CfcConfig):
            return cfc_filter(data, fs_design, descriptor.cfc)

        if isinstance(descriptor, ButterworthConfig):
            return butterworth_lowpass(
                data,
                fs_design,
                descriptor.cutoff_hz,
                order=descriptor.order,
                zero_phase=descriptor.zero_phase,
                deviations=sig.deviations,
            )

        if isinstance(descriptor, BandStopConfig):
            return butterworth_bandstop(
                data,
                fs_design,
                descriptor.center_hz,
                descriptor.bandwidth_hz,
                order=descriptor.order,
                zero_phase=descriptor.zero_phase,
                deviations=sig.deviations,
            )

        if isinstance(descriptor, SavitzkyGolayConfig):
            requested = descriptor.window_size
            if descriptor.auto_window:
                requested = SignalProcessor.auto_window(sig, requested)
            window = sanitize_odd_window(requested, n)
            if window is None:
                raise InvalidWindow(f"Series too short ({n}) for Savitzky-Golay smoothing")
            poly = sanitize_polynomial(descriptor.polynomial)
            if poly >= window:
                raise InvalidWindow(f"Polynomial order ({poly}) must be < window size ({window})")
            return savitzky_golay(data, window, poly, derivative=0, dt_s=sig.dt)

        if isinstance(descriptor, MovingAverageConfig):
            window = sanitize_odd_window(descriptor.window_size, n)
            if window is None:
                raise InvalidWindow(f"Series too short ({n}) for moving average")
            return moving_average(data, window)

        raise TypeError(f"Unknown filter descriptor: {descriptor!r}")

    @staticmethod
    def auto_window(sig: ProcessedSignal, fallback: float) -> float:
        """SG window from the ringing period of the raw impact; `fallback` if none."""
        try:
            analysis = analyze_impact(sig.time_ms, sig.raw_accel_g, sample_rate_hz=sig.sample_rate_hz)
        except DropTestError as e:
            logger.warning(f"Auto window unavailable ({e}); using {fallback}")
            return fallback
        if analysis.recommended_window_samples is None:
            return fallback
        return float(analysis.recommended_window_samples)

    @staticmethod
    def apply_jerk(sig: ProcessedSignal, filters: FilterConfig) -> None:
        if not filters.jerk.enabled:
            return
        source = sig.metric_accel_g
        n = len(source)
        try:
            window = sanitize_odd_window(filters.jerk.window_size, n, min_window=5)
            if window is None:
                raise InvalidWindow(f"Series too short ({n}) for jerk differentiation")
            poly = sanitize_polynomial(filters.jerk.polynomial)
            if poly >= window:
                raise InvalidWindow(f"Polynomial order ({poly}) must be < window size ({window})")
            sig.jerk = savitzky_golay(source, window, poly, derivative=1, dt_s=sig.dt)
        except DropTestError as e:
            logger.error(f"Jerk failed: {e}")
            sig.failures["jerk"] = str(e)

