"""
Filter bank: pure (series, params) -> series functions of equal length.

Butterworth designs use second-order sections (scipy.signal) for numerical
stability at high orders. Zero-phase mode runs the cascade forward, then over
the reversed output, and reverses once more - no edge padding is added, so
the first/last few samples carry start-up transients.
"""

from typing import List, Optional, Tuple

import numpy as np
from loguru import logger
from scipy import signal

from droptest.config import settings
from droptest.errors import CutoffOutOfRange, InsufficientData, InvalidWindow

NYQUIST_SAFETY = 0.99
MIN_BUTTERWORTH_SAMPLES = 4
MAX_BUTTERWORTH_ORDER = 8
MAX_POLYNOMIAL = 7
# CFC: 2-pole Butterworth per pass, forward + backward = 4-pole phaseless
CFC_POLES = 4


def sanitize_odd_window(value: float, max_length: int, min_window: int = 3) -> Optional[int]:
    """
    Round and clamp a requested window to an odd size in [min_window, max_length].
    Returns None when the series is too short for any valid window.
    """
    max_win = int(max_length)
    if max_win % 2 == 0:
        max_win -= 1
    if max_win < min_window:
        return None

    if value is None or not np.isfinite(value):
        return None
    w = int(round(value))
    w = min(max(w, min_window), max_win)

    if w % 2 == 0:
        if w + 1 <= max_win:
            w += 1
        elif w - 1 >= min_window:
            w -= 1
        else:
            return None
    return w


def sanitize_polynomial(value: float) -> int:
    if value is None or not np.isfinite(value):
        return 1
    return int(min(max(round(value), 1), MAX_POLYNOMIAL))


def _check_length(data: np.ndarray, minimum: int, what: str):
    if len(data) < minimum:
        raise InsufficientData(f"Not enough samples ({len(data)}) for {what}")


def _clamp_cutoff(cutoff_hz: float, fs: float, deviations: Optional[List[str]]) -> float:
    """
    Fails fast at/above Nyquist; pulls requests inside the last 1% down to 0.99 * Nyquist.
    """
    nyq = 0.5 * fs
    if not np.isfinite(cutoff_hz) or cutoff_hz <= 0:
        raise CutoffOutOfRange(f"cutoff must be > 0 Hz, got {cutoff_hz}")
    if cutoff_hz >= nyq:
        raise CutoffOutOfRange(
            f"cutoff {cutoff_hz:.2f} Hz must be below Nyquist ({nyq:.2f} Hz at fs={fs:.1f} Hz)"
        )
    limit = NYQUIST_SAFETY * nyq
    if cutoff_hz > limit:
        note = f"cutoff {cutoff_hz:.2f} Hz clamped to {limit:.2f} Hz (0.99 * Nyquist)"
        logger.warning(note)
        if deviations is not None:
            deviations.append(note)
        return limit
    return cutoff_hz


def _check_order(order: int) -> int:
    if int(order) != order or not 1 <= order <= MAX_BUTTERWORTH_ORDER:
        raise InvalidWindow(f"Butterworth order must be an integer in 1..8, got {order}")
    return int(order)


def _run_sos(sos: np.ndarray, data: np.ndarray, zero_phase: bool) -> np.ndarray:
    # Forward pass (fresh state)
    y = signal.sosfilt(sos, data)
    if zero_phase:
        # Backward pass (fresh state) over the reversed output
        y = signal.sosfilt(sos, y[::-1])[::-1]
    return np.ascontiguousarray(y)


def butterworth_lowpass(
    data,
    fs: float,
    cutoff_hz: float,
    order: int = 4,
    zero_phase: bool = True,
    deviations: Optional[List[str]] = None,
) -> np.ndarray:
    """Butterworth low-pass of order 1..8, optionally zero-phase."""
    data = np.asarray(data, dtype=float)
    _check_length(data, MIN_BUTTERWORTH_SAMPLES, "Butterworth filtering")
    order = _check_order(order)
    fc = _clamp_cutoff(cutoff_hz, fs, deviations)

    sos = signal.butter(order, fc, btype="low", fs=fs, output="sos")
    return _run_sos(sos, data, zero_phase)


def bandstop_edges(
    center_hz: float, bandwidth_hz: float, fs: float, deviations: Optional[List[str]] = None
) -> Tuple[float, float]:
    """Stop-band edges around `center_hz`, kept inside (0, 0.99 * Nyquist]."""
    nyq = 0.5 * fs
    if bandwidth_hz <= 0:
        raise CutoffOutOfRange(f"bandwidth must be > 0 Hz, got {bandwidth_hz}")

    half_band = bandwidth_hz / 2.0
    low = center_hz - half_band
    high = center_hz + half_band
    if low >= nyq:
        raise CutoffOutOfRange(
            f"stop band {low:.2f}-{high:.2f} Hz lies above Nyquist ({nyq:.2f} Hz)"
        )

    limit = NYQUIST_SAFETY * nyq
    floor = 0.001
    fc1 = min(max(low, floor), limit)
    fc2 = min(max(high, floor), limit)
    if fc1 >= fc2:
        fc2 = fc1 + 1.0
        if fc2 > limit:
            fc1 = limit - 1.0
            fc2 = limit

    if (fc1, fc2) != (low, high):
        note = f"stop band {low:.2f}-{high:.2f} Hz adjusted to {fc1:.2f}-{fc2:.2f} Hz"
        logger.warning(note)
        if deviations is not None:
            deviations.append(note)
    return fc1, fc2


def butterworth_bandstop(
    data,
    fs: float,
    center_hz: float,
    bandwidth_hz: float,
    order: int = 2,
    zero_phase: bool = True,
    deviations: Optional[List[str]] = None,
) -> np.ndarray:
    """Band-stop (notch) Butterworth around `center_hz` +/- bandwidth/2."""
    data = np.asarray(data, dtype=float)
    _check_length(data, MIN_BUTTERWORTH_SAMPLES, "band-stop filtering")
    order = _check_order(order)
    fc1, fc2 = bandstop_edges(center_hz, bandwidth_hz, fs, deviations)

    sos = signal.butter(order, [fc1, fc2], btype="bandstop", fs=fs, output="sos")
    return _run_sos(sos, data, zero_phase)


def savitzky_golay(
    data,
    window: int,
    polynomial: int = 3,
    derivative: int = 0,
    dt_s: float = 1.0,
) -> np.ndarray:
    """
    Savitzky-Golay smoothing (derivative=0) or differentiation (derivative=1).

    The derivative is in units per second using the true spacing `dt_s`
    (acceleration in G -> jerk in G/s). Edges replicate the nearest value
    (mode='nearest'), which avoids the reflected spikes at t=0 that
    mirror padding produces on a derivative.
    """
    data = np.asarray(data, dtype=float)
    if derivative not in (0, 1):
        raise InvalidWindow(f"derivative must be 0 or 1, got {derivative}")

    min_window = 5 if derivative == 1 else 3
    if int(window) != window or window % 2 == 0 or window < min_window:
        raise InvalidWindow(f"Savitzky-Golay window must be odd and >= {min_window}, got {window}")
    if polynomial < derivative or polynomial >= window:
        raise InvalidWindow(
            f"Polynomial order ({polynomial}) must be < window size ({window}) and >= derivative"
        )
    if len(data) < window:
        raise InvalidWindow(f"Not enough samples ({len(data)}) for window {window}")
    if derivative == 1 and not dt_s > 0:
        raise InvalidWindow(f"Sample spacing must be > 0 s, got {dt_s}")

    return signal.savgol_filter(
        data,
        window_length=int(window),
        polyorder=int(polynomial),
        deriv=derivative,
        delta=dt_s,
        mode="nearest",
    )


def moving_average(data, window: int) -> np.ndarray:
    """
    Centered moving average. Near the edges the window shrinks
    asymmetrically instead of wrapping or padding.
    """
    data = np.asarray(data, dtype=float)
    if int(window) != window or window < 3 or window % 2 == 0:
        raise InvalidWindow(f"Moving average window must be odd and >= 3, got {window}")

    n = len(data)
    if n == 0:
        return data.copy()
    half = (int(window) - 1) // 2

    # prefix[i] = sum(data[:i])
    prefix = np.concatenate(([0.0], np.cumsum(data)))
    idx = np.arange(n)
    start = np.maximum(0, idx - half)
    end = np.minimum(n - 1, idx + half)
    return (prefix[end + 1] - prefix[start]) / (end - start + 1)


def cfc_cutoff_hz(cfc: float, scale: Optional[float] = None) -> float:
    """CFC -> design frequency (Hz), SAE J211/1 factor 2.0775 by default."""
    scale = settings.CFC_SCALE_FACTOR if scale is None else scale
    return cfc * scale


def cfc_filter(data, fs: float, cfc: float = 60) -> np.ndarray:
    """
    CFC (Channel Frequency Class) low-pass filter per SAE J211/1.
    "Order 4" is the effective phaseless order: a 2-pole Butterworth design
    run forward and backward. This is not `butterworth_lowpass(order=4)`,
    which runs a 4-pole design in both directions (8-pole magnitude).
    Requests above 0.99 * Nyquist are rejected rather than clamped, so the
    reported class always matches the applied response.
    """
    if cfc <= 0:
        raise CutoffOutOfRange(f"CFC class must be > 0, got {cfc}")
    fc = cfc_cutoff_hz(cfc)
    limit = NYQUIST_SAFETY * 0.5 * fs
    if fc > limit:
        raise CutoffOutOfRange(
            f"CFC {cfc:g} needs {fc:.2f} Hz, above 0.99 * Nyquist ({limit:.2f} Hz at fs={fs:.1f} Hz)"
        )
    return butterworth_lowpass(data, fs, fc, order=CFC_POLES // 2, zero_phase=True)
