import numpy as np
import pytest

from conftest import make_drop
from droptest.core import TimeRange
from droptest.errors import InsufficientData, NoFreeFallFound, NoSignificantPeak
from droptest.windows import (
    find_contact_range,
    find_first_hit_window,
    find_impact_window,
    window_indices,
)


def test_first_hit_window_brackets_the_pulse(drop_signal):
    time_ms, accel = drop_signal

    hit = find_first_hit_window(time_ms, accel)

    # half-sine 600-618 ms, peak at 609 ms
    assert hit.peak_idx == 609
    assert hit.peak_accel == pytest.approx(35.3)
    # onset walks back into free fall (599 ms) then pads 10 ms
    assert hit.start_time_ms == pytest.approx(589.0)
    # quiet from the pulse tail on
    assert hit.end_time_ms == pytest.approx(619.0)
    assert hit.start_idx <= hit.peak_idx <= hit.end_idx


def test_first_hit_prefers_first_excursion_over_larger_later_one():
    time_ms, accel = make_drop(peak_g=20.0)
    accel = accel.copy()
    accel[900:905] = [10.0, 30.0, 60.0, 30.0, 10.0]

    hit = find_first_hit_window(time_ms, accel)

    assert 600 <= hit.peak_idx < 620
    assert hit.end_time_ms < 900


def test_first_hit_window_is_capped():
    # 계속 흔들리는 신호 - quiet run 이 없으면 peak + 200 ms 에서 끝
    time_ms = np.arange(2000.0)
    accel = np.zeros(2000)
    accel[500:] = 20.0 * np.sin(2 * np.pi * 50.0 * np.arange(1500) / 1000.0 + 0.3)

    hit = find_first_hit_window(time_ms, accel)

    assert hit.end_time_ms == pytest.approx(time_ms[hit.peak_idx] + 200.0)


def test_first_hit_no_peak():
    with pytest.raises(NoSignificantPeak):
        find_first_hit_window(np.arange(100.0), np.zeros(100))


def test_first_hit_too_short():
    with pytest.raises(InsufficientData):
        find_first_hit_window([0.0, 1.0], [0.0, 10.0])


def test_impact_window_is_symmetric(drop_signal):
    time_ms, accel = drop_signal

    window = find_impact_window(time_ms, accel)

    assert window.peak_idx == 609
    assert window.start_time_ms == pytest.approx(529.0)
    assert window.end_time_ms == pytest.approx(689.0)
    assert window.duration_ms == pytest.approx(160.0)


def test_impact_window_clipped_at_record_edges():
    time_ms = np.arange(50.0)
    accel = np.zeros(50)
    accel[10] = 12.0

    window = find_impact_window(time_ms, accel)

    assert window.start_idx == 0
    assert window.end_idx == 49


def test_impact_window_needs_peak_above_minimum():
    with pytest.raises(NoSignificantPeak):
        find_impact_window(np.arange(100.0), np.full(100, 4.0))
    window = find_impact_window(np.arange(100.0), np.full(100, 4.0), min_peak=3.0)
    assert window.peak_idx == 0


def test_window_indices():
    time_ms = np.arange(100.0)

    assert window_indices(time_ms, TimeRange(10.0, 20.0)) == (10, 20)
    assert window_indices(time_ms, TimeRange(10.5, 20.5)) == (11, 20)
    assert window_indices(time_ms, TimeRange(-50.0, 500.0)) == (0, 99)
    assert window_indices(time_ms, TimeRange(20.0, 10.0)) is None
    assert window_indices(time_ms, TimeRange(200.0, 300.0)) is None
    assert window_indices(time_ms, TimeRange(10.2, 10.8)) is None
    assert window_indices(time_ms, TimeRange(float("nan"), 10.0)) is None


def test_contact_range_bounded_by_free_fall(drop_signal):
    _, accel = drop_signal

    contact = find_contact_range(accel, 0, len(accel) - 1)

    assert contact.peak_idx == 609
    assert contact.start_idx == 599  # last free-fall sample before the pulse
    assert contact.end_idx == 619  # first free-fall sample after it
    assert contact.found_start_free_fall and contact.found_end_free_fall
    assert not contact.plate_press


def test_contact_range_plate_press_uses_window_edges(plate_press_signal):
    _, accel = plate_press_signal

    contact = find_contact_range(accel, 50, 350)

    assert contact.plate_press
    assert (contact.start_idx, contact.end_idx) == (50, 350)
    assert contact.peak_idx == 219
    assert contact.peak_g == pytest.approx(20.0)


def test_contact_range_require_free_fall(plate_press_signal):
    _, accel = plate_press_signal
    with pytest.raises(NoFreeFallFound):
        find_contact_range(accel, 0, len(accel) - 1, require_free_fall=True)


def test_contact_range_one_sided_free_fall():
    # 자유낙하 후 충격, 이후 반동 없이 정지
    accel = np.concatenate([np.zeros(50), -np.ones(50), np.full(5, 20.0), np.zeros(50)])

    contact = find_contact_range(accel, 0, len(accel) - 1)

    assert contact.found_start_free_fall
    assert not contact.found_end_free_fall
    assert not contact.plate_press
    assert contact.end_idx == len(accel) - 1


def test_contact_range_peak_below_minimum():
    assert find_contact_range(np.full(20, 2.0), 0, 19) is None
    assert find_contact_range(np.full(20, 2.0), 0, 19, min_peak_g=1.0) is not None


def test_first_hit_low_peak_keeps_decay():
    # 15 G: 5% of the peak is below the free-fall deviation, so the onset
    # walks back to the end of the rest period
    time_ms, accel = make_drop(peak_g=15.0)

    hit = find_first_hit_window(time_ms, accel)

    assert hit.start_time_ms == pytest.approx(289.0)
    assert hit.peak_idx == 609
    assert hit.end_idx > hit.peak_idx
    assert hit.end_time_ms == pytest.approx(619.0)
