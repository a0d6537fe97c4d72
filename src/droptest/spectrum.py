"""
Spectral / ringing analysis of the impact window.
The ringing frequency estimate drives auto-tuned smoothing window sizes.
"""

from typing import List, Optional

import numpy as np
from loguru import logger
from pydantic import BaseModel

from droptest.core import ImpactWindow
from droptest.errors import InsufficientData
from droptest.timebase import estimate_sample_rate_hz
from droptest.windows import IMPACT_HALF_WIDTH_MS, find_impact_window

MIN_FFT_POINTS = 8
NUM_PEAKS = 5
MIN_ZERO_CROSSINGS = 4
RECOMMENDED_MIN_WINDOW = 7
RECOMMENDED_MAX_WINDOW = 41
RECOMMENDED_POLYNOMIAL = 3


class ImpactTimeMetrics(BaseModel):
    peak_accel_g: float
    peak_time_ms: float
    min_accel_g: float
    min_time_ms: float
    peak_to_valley_g: float
    mean_g: float
    rms_g: float
    duration_ms: float
    num_zero_crossings: int


class SpectralPeak(BaseModel):
    freq_hz: float
    amplitude: float


class ImpactSpectrum(BaseModel):
    sample_rate_hz: float
    window_duration_ms: float
    num_points: int
    fft_size: int
    peaks: List[SpectralPeak]


class ImpactAnalysis(BaseModel):
    impact_window: ImpactWindow
    time_metrics: ImpactTimeMetrics
    spectrum: Optional[ImpactSpectrum] = None
    ringing_frequency_hz: Optional[float] = None
    ringing_period_ms: Optional[float] = None
    recommended_window_samples: Optional[int] = None
    recommended_polynomial: Optional[int] = None


def compute_time_metrics(time_ms, accel, window: ImpactWindow) -> ImpactTimeMetrics:
    """Basic time-domain metrics of the series inside the window."""
    seg_t = np.asarray(time_ms, dtype=float)[window.start_idx : window.end_idx + 1]
    seg = np.asarray(accel, dtype=float)[window.start_idx : window.end_idx + 1]

    i_max = int(np.argmax(seg))
    i_min = int(np.argmin(seg))

    # 0 을 지나가는 횟수 (부호 변화, 0 에서 출발하는 경우 포함)
    prev = seg[:-1]
    cur = seg[1:]
    crossings = int(np.count_nonzero(((prev <= 0) & (cur > 0)) | ((prev >= 0) & (cur < 0))))

    return ImpactTimeMetrics(
        peak_accel_g=float(seg[i_max]),
        peak_time_ms=float(seg_t[i_max]),
        min_accel_g=float(seg[i_min]),
        min_time_ms=float(seg_t[i_min]),
        peak_to_valley_g=float(seg[i_max] - seg[i_min]),
        mean_g=float(np.mean(seg)),
        rms_g=float(np.sqrt(np.mean(seg**2))),
        duration_ms=float(seg_t[-1] - seg_t[0]),
        num_zero_crossings=crossings,
    )


def compute_spectrum(
    accel,
    window: ImpactWindow,
    sample_rate_hz: float,
    min_freq_hz: float = 5.0,
    max_freq_hz: float = 300.0,
    num_peaks: int = NUM_PEAKS,
) -> Optional[ImpactSpectrum]:
    """
    Detrend (mean), Hann taper, zero-pad to the next power of two, one-sided
    magnitude spectrum. Returns the strongest bins in the band, sorted by frequency.
    """
    seg = np.asarray(accel, dtype=float)[window.start_idx : window.end_idx + 1]
    n = len(seg)
    if n < MIN_FFT_POINTS:
        return None

    detrended = seg - np.mean(seg)
    tapered = detrended * np.hanning(n)
    fft_size = 1 << int(np.ceil(np.log2(n)))

    spectrum = np.fft.rfft(tapered, n=fft_size)
    freqs = np.fft.rfftfreq(fft_size, d=1.0 / sample_rate_hz)
    amplitude = 2.0 * np.abs(spectrum) / n

    # DC 성분 제외
    band = (freqs >= min_freq_hz) & (freqs <= max_freq_hz)
    band[0] = False
    if not np.any(band):
        return None

    band_idx = np.flatnonzero(band)
    top = band_idx[np.argsort(amplitude[band_idx], kind="stable")[::-1][:num_peaks]]
    top = np.sort(top)

    return ImpactSpectrum(
        sample_rate_hz=sample_rate_hz,
        window_duration_ms=window.duration_ms,
        num_points=n,
        fft_size=fft_size,
        peaks=[SpectralPeak(freq_hz=float(freqs[k]), amplitude=float(amplitude[k])) for k in top],
    )


def estimate_ringing_frequency(metrics: ImpactTimeMetrics) -> Optional[float]:
    """Each cycle of a roughly sinusoidal ring has two zero crossings."""
    if metrics.num_zero_crossings < MIN_ZERO_CROSSINGS or metrics.duration_ms <= 0:
        return None
    cycles = metrics.num_zero_crossings / 2.0
    freq_hz = cycles / (metrics.duration_ms / 1000.0)
    if not np.isfinite(freq_hz) or freq_hz <= 0:
        return None
    return float(freq_hz)


def recommend_window(
    ringing_hz: float,
    sample_rate_hz: float,
    period_fraction: float = 1.0,
    min_window: int = RECOMMENDED_MIN_WINDOW,
    max_window: int = RECOMMENDED_MAX_WINDOW,
) -> int:
    """Smoothing window ~ a fraction (or multiple) of the ringing period, odd, in [7, 41]."""
    period_samples = sample_rate_hz / ringing_hz
    win = int(round(period_samples * period_fraction))
    win = min(max(win, min_window), max_window)
    if win % 2 == 0:
        win = win + 1 if win + 1 <= max_window else win - 1
    return win


def analyze_impact(
    time_ms,
    accel,
    sample_rate_hz: Optional[float] = None,
    half_width_ms: float = IMPACT_HALF_WIDTH_MS,
    min_peak: Optional[float] = None,
    period_fraction: float = 1.0,
) -> ImpactAnalysis:
    """
    High-level analysis of the largest impact: window, time metrics,
    spectrum, ringing estimate and recommended SG window size.
    """
    time_ms = np.asarray(time_ms, dtype=float)
    accel = np.asarray(accel, dtype=float)
    if len(time_ms) < 2:
        raise InsufficientData("Need at least 2 samples for impact analysis")
    if sample_rate_hz is None:
        sample_rate_hz = estimate_sample_rate_hz(time_ms)

    window = find_impact_window(time_ms, accel, half_width_ms=half_width_ms, min_peak=min_peak)
    time_metrics = compute_time_metrics(time_ms, accel, window)
    spectrum = compute_spectrum(accel, window, sample_rate_hz)

    ringing_hz = estimate_ringing_frequency(time_metrics)
    analysis = ImpactAnalysis(
        impact_window=window,
        time_metrics=time_metrics,
        spectrum=spectrum,
    )
    if ringing_hz is not None:
        analysis.ringing_frequency_hz = ringing_hz
        analysis.ringing_period_ms = 1000.0 / ringing_hz
        analysis.recommended_window_samples = recommend_window(
            ringing_hz, sample_rate_hz, period_fraction
        )
        analysis.recommended_polynomial = RECOMMENDED_POLYNOMIAL

    logger.debug(
        f"Impact analysis: peak {window.peak_accel:.2f} at {time_ms[window.peak_idx]:.1f} ms, "
        f"ringing {ringing_hz} Hz, SG window {analysis.recommended_window_samples}"
    )
    return analysis
