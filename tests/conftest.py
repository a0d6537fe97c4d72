"""
Synthetic drop-test signals shared by the tests.
Convention: ~0 G at rest, ~-1 G in free fall, positive impact pulse.
"""

import numpy as np
import pytest

G0 = 9.80665


def make_drop(
    fs=1000.0,
    rest_ms=300,
    free_fall_ms=300,
    pulse_ms=20,
    peak_g=35.3,
    rebound_ms=100,
    settle_ms=300,
    ring_hz=None,
    ring_g=3.0,
):
    """rest -> free fall -> half-sine impact -> rebound flight -> rest (optional ringing)."""

    def n(ms):
        return int(round(ms * fs / 1000.0))

    # interior points of a half-sine: one sample sits exactly on the peak
    n_pulse = n(pulse_ms)
    pulse = peak_g * np.sin(np.pi * np.arange(1, n_pulse) / n_pulse)
    settle = np.zeros(n(settle_ms))
    if ring_hz is not None:
        t = np.arange(len(settle)) / fs
        settle = ring_g * np.exp(-t / 0.08) * np.sin(2 * np.pi * ring_hz * t)

    accel = np.concatenate(
        [
            np.zeros(n(rest_ms)),
            -np.ones(n(free_fall_ms)),
            pulse,
            -np.ones(n(rebound_ms)),
            settle,
        ]
    )
    time_ms = np.arange(len(accel)) * 1000.0 / fs
    return time_ms, accel


def make_plate_press(fs=1000.0, rest_ms=200, press_ms=40, peak_g=20.0):
    """Rest -> press onto a plate -> rest. No free fall anywhere."""
    n_rest = int(rest_ms * fs / 1000.0)
    n_press = int(press_ms * fs / 1000.0)
    press = peak_g * np.sin(np.pi * np.arange(1, n_press) / n_press)
    accel = np.concatenate([np.zeros(n_rest), press, np.zeros(n_rest)])
    return np.arange(len(accel)) * 1000.0 / fs, accel


@pytest.fixture
def drop_signal():
    return make_drop()


@pytest.fixture
def ringing_drop_signal():
    return make_drop(ring_hz=100.0, settle_ms=400)


@pytest.fixture
def plate_press_signal():
    return make_plate_press()
